from __future__ import annotations

import logging
from typing import Any, Callable

from ghsnapshot.config import PageSizes
from ghsnapshot.models import (
    Issue,
    IssueComment,
    Organization,
    Page,
    PullRequest,
    PullRequestReview,
    PullRequestReviewComment,
    Repository,
    User,
    parse_label_name,
    parse_login,
    parse_topic_name,
)
from ghsnapshot.pagination import ConnectionKind

from . import queries
from .client import GitHubApiError, GitHubGraphQLClient

logger = logging.getLogger(__name__)

_NODE_PARSERS: dict[ConnectionKind, Callable[[Any], Any]] = {
    ConnectionKind.ISSUES: Issue.from_graphql,
    ConnectionKind.PULL_REQUESTS: PullRequest.from_graphql,
    ConnectionKind.REPOSITORY_TOPICS: parse_topic_name,
    ConnectionKind.ISSUE_ASSIGNEES: parse_login,
    ConnectionKind.ISSUE_LABELS: parse_label_name,
    ConnectionKind.ISSUE_COMMENTS: IssueComment.from_graphql,
    ConnectionKind.PULL_REQUEST_ASSIGNEES: parse_login,
    ConnectionKind.PULL_REQUEST_LABELS: parse_label_name,
    ConnectionKind.PULL_REQUEST_COMMENTS: IssueComment.from_graphql,
    ConnectionKind.PULL_REQUEST_REVIEWS: PullRequestReview.from_graphql,
    ConnectionKind.PULL_REQUEST_REVIEW_COMMENTS: PullRequestReviewComment.from_graphql,
    ConnectionKind.ORGANIZATION_MEMBERS: User.from_graphql,
}


def nested_page_variables(page_sizes: PageSizes) -> dict[str, int]:
    return {
        "topicsPage": page_sizes.topics,
        "issuesPage": page_sizes.issues,
        "pullRequestsPage": page_sizes.pull_requests,
        "assigneesPage": page_sizes.assignees,
        "labelsPage": page_sizes.labels,
        "issueCommentsPage": page_sizes.issue_comments,
        "pullRequestReviewsPage": page_sizes.pull_request_reviews,
        "pullRequestReviewCommentsPage": page_sizes.pull_request_review_comments,
    }


class GitHubSource:
    """
    GitHub GraphQL adapter for the traversal.

    Root fetches return the entity with the first page of every nested
    connection embedded. `fetch_page` serves all later pages through
    `node(id:)` lookups, so it works for any parent by its global id.
    """

    def __init__(self, client: GitHubGraphQLClient, *, page_sizes: PageSizes | None = None) -> None:
        self._client = client
        self._page_sizes = page_sizes or PageSizes()

    @property
    def client(self) -> GitHubGraphQLClient:
        return self._client

    def fetch_repository(
        self, owner: str, name: str, page_sizes: PageSizes | None = None
    ) -> Repository:
        sizes = page_sizes or self._page_sizes
        variables = {"owner": owner, "name": name, **nested_page_variables(sizes)}
        data = self._client.query(queries.REPOSITORY_QUERY, variables)
        raw = data.get("repository")
        if raw is None:
            raise GitHubApiError(
                f"repository not found: {owner}/{name}", status=404, url=f"{owner}/{name}"
            )
        return Repository.from_graphql(raw)

    def fetch_organization(
        self, login: str, page_sizes: PageSizes | None = None
    ) -> Organization:
        sizes = page_sizes or self._page_sizes
        variables = {"login": login, "membersPage": sizes.organization_members}
        data = self._client.query(queries.ORGANIZATION_QUERY, variables)
        raw = data.get("organization")
        if raw is None:
            raise GitHubApiError(f"organization not found: {login}", status=404, url=login)
        return Organization.from_graphql(raw)

    def fetch_page(
        self,
        parent_id: str,
        kind: ConnectionKind,
        page_size: int,
        cursor: str,
        page_sizes: PageSizes | None = None,
    ) -> Page[Any]:
        nested = nested_page_variables(page_sizes or self._page_sizes)
        variables: dict[str, Any] = {"id": parent_id, "first": page_size, "after": cursor}
        for var in queries.NESTED_PAGE_VARIABLES.get(kind, ()):
            variables[var] = nested[var]

        data = self._client.query(queries.page_query(kind), variables)
        node = data.get("node")
        if node is None:
            raise GitHubApiError(
                f"{kind.value}: parent node not found: {parent_id}", status=404, url=parent_id
            )
        field = queries.connection_field(kind)
        if field not in node:
            raise GitHubApiError(
                f"{kind.value}: node {parent_id} is a {node.get('__typename')}, "
                f"not the expected parent type",
                status=422,
                url=parent_id,
            )
        return Page.from_graphql(node[field], _NODE_PARSERS[kind], where=f"{kind.value}")

    def rate_remaining(self) -> int:
        data = self._client.query(queries.RATE_LIMIT_QUERY)
        rate = data.get("rateLimit") or {}
        remaining = rate.get("remaining")
        if not isinstance(remaining, int):
            raise GitHubApiError("rateLimit.remaining missing", status=200, url="rateLimit")
        return remaining
