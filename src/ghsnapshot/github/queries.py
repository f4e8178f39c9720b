from __future__ import annotations

from ghsnapshot.pagination import ConnectionKind

# `author`/`actor` are `Actor` interfaces: only `login` is selectable
# directly, ids need type-specific inline fragments.
_ACTOR = """
  __typename
  login
  ... on User { id databaseId }
  ... on Organization { id databaseId }
  ... on Bot { id databaseId }
  ... on Mannequin { id databaseId }
""".strip()

PAGE_INFO = "pageInfo { hasNextPage endCursor }"

FRAGMENTS = f"""
fragment IssueCommentFields on IssueComment {{
  id
  databaseId
  body
  url
  createdAt
  updatedAt
  author {{ {_ACTOR} }}
}}

fragment ReviewCommentFields on PullRequestReviewComment {{
  id
  databaseId
  body
  url
  path
  position
  originalPosition
  diffHunk
  createdAt
  updatedAt
  commit {{ oid }}
  author {{ {_ACTOR} }}
}}

fragment ReviewFields on PullRequestReview {{
  id
  databaseId
  body
  state
  url
  submittedAt
  author {{ {_ACTOR} }}
  comments(first: $pullRequestReviewCommentsPage) {{
    {PAGE_INFO}
    nodes {{ ...ReviewCommentFields }}
  }}
}}

fragment IssueFields on Issue {{
  id
  databaseId
  number
  title
  body
  state
  url
  locked
  createdAt
  updatedAt
  closedAt
  author {{ {_ACTOR} }}
  assignees(first: $assigneesPage) {{ {PAGE_INFO} nodes {{ login }} }}
  labels(first: $labelsPage) {{ {PAGE_INFO} nodes {{ name }} }}
  comments(first: $issueCommentsPage) {{
    {PAGE_INFO}
    nodes {{ ...IssueCommentFields }}
  }}
}}

fragment PullRequestFields on PullRequest {{
  id
  databaseId
  number
  title
  body
  state
  url
  locked
  isDraft
  merged
  mergedAt
  createdAt
  updatedAt
  closedAt
  baseRefName
  headRefName
  additions
  deletions
  changedFiles
  author {{ {_ACTOR} }}
  assignees(first: $assigneesPage) {{ {PAGE_INFO} nodes {{ login }} }}
  labels(first: $labelsPage) {{ {PAGE_INFO} nodes {{ name }} }}
  comments(first: $issueCommentsPage) {{
    {PAGE_INFO}
    nodes {{ ...IssueCommentFields }}
  }}
  reviews(first: $pullRequestReviewsPage) {{
    {PAGE_INFO}
    nodes {{ ...ReviewFields }}
  }}
}}

fragment UserFields on User {{
  id
  databaseId
  login
  name
  email
  company
  location
  bio
  url
  createdAt
}}
""".strip()


def _document(body: str, *fragment_names: str) -> str:
    # GitHub rejects documents carrying unused fragments.
    blocks = [b for b in FRAGMENTS.split("\n\n") if b.split()[1] in _closure(fragment_names)]
    return "\n\n".join([body.strip(), *blocks])


_FRAGMENT_DEPS: dict[str, tuple[str, ...]] = {
    "IssueCommentFields": (),
    "ReviewCommentFields": (),
    "ReviewFields": ("ReviewCommentFields",),
    "IssueFields": ("IssueCommentFields",),
    "PullRequestFields": ("IssueCommentFields", "ReviewFields"),
    "UserFields": (),
}


def _closure(names: tuple[str, ...]) -> set[str]:
    out: set[str] = set()
    stack = list(names)
    while stack:
        name = stack.pop()
        if name in out:
            continue
        out.add(name)
        stack.extend(_FRAGMENT_DEPS[name])
    return out


REPOSITORY_QUERY = _document(
    """
query GetRepository(
  $owner: String!, $name: String!,
  $topicsPage: Int!, $issuesPage: Int!, $pullRequestsPage: Int!,
  $assigneesPage: Int!, $labelsPage: Int!, $issueCommentsPage: Int!,
  $pullRequestReviewsPage: Int!, $pullRequestReviewCommentsPage: Int!
) {
  repository(owner: $owner, name: $name) {
    id
    databaseId
    name
    nameWithOwner
    owner { login }
    description
    url
    homepageUrl
    primaryLanguage { name }
    defaultBranchRef { name }
    isFork
    isArchived
    isPrivate
    stargazerCount
    forkCount
    createdAt
    updatedAt
    pushedAt
    repositoryTopics(first: $topicsPage) {
      pageInfo { hasNextPage endCursor }
      nodes { topic { name } }
    }
    issues(first: $issuesPage, orderBy: {field: CREATED_AT, direction: ASC}) {
      pageInfo { hasNextPage endCursor }
      nodes { ...IssueFields }
    }
    pullRequests(first: $pullRequestsPage, orderBy: {field: CREATED_AT, direction: ASC}) {
      pageInfo { hasNextPage endCursor }
      nodes { ...PullRequestFields }
    }
  }
}
""",
    "IssueFields",
    "PullRequestFields",
)

ORGANIZATION_QUERY = _document(
    """
query GetOrganization($login: String!, $membersPage: Int!) {
  organization(login: $login) {
    id
    databaseId
    login
    name
    description
    email
    url
    createdAt
    membersWithRole(first: $membersPage) {
      pageInfo { hasNextPage endCursor }
      nodes { ...UserFields }
    }
  }
}
""",
    "UserFields",
)

RATE_LIMIT_QUERY = """
query GetRateLimit {
  rateLimit { limit remaining resetAt }
}
""".strip()


# Page queries select one connection under `node(id:)`; nested first pages
# use the same size variables as the root query.
_PAGE_SPECS: dict[ConnectionKind, tuple[str, str, str, tuple[str, ...]]] = {
    ConnectionKind.ISSUES: (
        "Repository",
        "issues(first: $first, after: $after, orderBy: {field: CREATED_AT, direction: ASC})",
        "...IssueFields",
        ("IssueFields",),
    ),
    ConnectionKind.PULL_REQUESTS: (
        "Repository",
        "pullRequests(first: $first, after: $after, orderBy: {field: CREATED_AT, direction: ASC})",
        "...PullRequestFields",
        ("PullRequestFields",),
    ),
    ConnectionKind.REPOSITORY_TOPICS: (
        "Repository",
        "repositoryTopics(first: $first, after: $after)",
        "topic { name }",
        (),
    ),
    ConnectionKind.ISSUE_ASSIGNEES: (
        "Issue",
        "assignees(first: $first, after: $after)",
        "login",
        (),
    ),
    ConnectionKind.ISSUE_LABELS: (
        "Issue",
        "labels(first: $first, after: $after)",
        "name",
        (),
    ),
    ConnectionKind.ISSUE_COMMENTS: (
        "Issue",
        "comments(first: $first, after: $after)",
        "...IssueCommentFields",
        ("IssueCommentFields",),
    ),
    ConnectionKind.PULL_REQUEST_ASSIGNEES: (
        "PullRequest",
        "assignees(first: $first, after: $after)",
        "login",
        (),
    ),
    ConnectionKind.PULL_REQUEST_LABELS: (
        "PullRequest",
        "labels(first: $first, after: $after)",
        "name",
        (),
    ),
    ConnectionKind.PULL_REQUEST_COMMENTS: (
        "PullRequest",
        "comments(first: $first, after: $after)",
        "...IssueCommentFields",
        ("IssueCommentFields",),
    ),
    ConnectionKind.PULL_REQUEST_REVIEWS: (
        "PullRequest",
        "reviews(first: $first, after: $after)",
        "...ReviewFields",
        ("ReviewFields",),
    ),
    ConnectionKind.PULL_REQUEST_REVIEW_COMMENTS: (
        "PullRequestReview",
        "comments(first: $first, after: $after)",
        "...ReviewCommentFields",
        ("ReviewCommentFields",),
    ),
    ConnectionKind.ORGANIZATION_MEMBERS: (
        "Organization",
        "membersWithRole(first: $first, after: $after)",
        "...UserFields",
        ("UserFields",),
    ),
}

# Variables each page query needs besides $id/$first/$after.
NESTED_PAGE_VARIABLES: dict[ConnectionKind, tuple[str, ...]] = {
    ConnectionKind.ISSUES: ("assigneesPage", "labelsPage", "issueCommentsPage"),
    ConnectionKind.PULL_REQUESTS: (
        "assigneesPage",
        "labelsPage",
        "issueCommentsPage",
        "pullRequestReviewsPage",
        "pullRequestReviewCommentsPage",
    ),
    ConnectionKind.PULL_REQUEST_REVIEWS: ("pullRequestReviewCommentsPage",),
}


def connection_field(kind: ConnectionKind) -> str:
    """GraphQL field name the page query returns, e.g. `membersWithRole`."""
    return _PAGE_SPECS[kind][1].split("(", 1)[0]


def page_query(kind: ConnectionKind) -> str:
    type_name, field_call, node_selection, fragments = _PAGE_SPECS[kind]
    extra = "".join(f", ${var}: Int!" for var in NESTED_PAGE_VARIABLES.get(kind, ()))
    body = f"""
query Get{type_name}{connection_field(kind)[0].upper()}{connection_field(kind)[1:]}Page(
  $id: ID!, $first: Int!, $after: String{extra}
) {{
  node(id: $id) {{
    __typename
    ... on {type_name} {{
      {field_call} {{
        {PAGE_INFO}
        nodes {{ {node_selection} }}
      }}
    }}
  }}
}}
"""
    return _document(body, *fragments)
