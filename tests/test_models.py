from __future__ import annotations

import unittest

import pytest

from ghsnapshot.models import Issue, Organization, Page, PullRequest, Repository, User


def _conn(nodes, *, next_cursor=None):  # noqa: ANN001
    return {
        "pageInfo": {"hasNextPage": next_cursor is not None, "endCursor": next_cursor},
        "nodes": nodes,
    }


PR_PAYLOAD = {
    "id": "PR_kwDO",
    "databaseId": 1234,
    "number": 42,
    "title": "Add widget API",
    "body": None,
    "state": "OPEN",
    "url": "https://github.com/acme/widget/pull/42",
    "locked": False,
    "isDraft": True,
    "merged": False,
    "mergedAt": None,
    "createdAt": "2026-01-20T00:00:00Z",
    "updatedAt": "2026-01-21T00:00:00Z",
    "closedAt": None,
    "baseRefName": "main",
    "headRefName": "feature/widget",
    "additions": 10,
    "deletions": 2,
    "changedFiles": 3,
    "author": None,
    "assignees": _conn([{"login": "alice"}, {"login": "bob"}], next_cursor="AS"),
    "labels": _conn([{"name": "api"}]),
    "comments": _conn(
        [
            {
                "id": "IC_1",
                "databaseId": 5,
                "body": "first",
                "url": None,
                "createdAt": "2026-01-20T01:00:00Z",
                "updatedAt": None,
                "author": {"__typename": "User", "login": "carol", "id": "U_1", "databaseId": 7},
            }
        ]
    ),
    "reviews": _conn(
        [
            {
                "id": "PRR_1",
                "databaseId": 99,
                "body": "",
                "state": "APPROVED",
                "url": None,
                "submittedAt": "2026-01-21T00:00:00Z",
                "author": {"__typename": "Bot", "login": "ci-bot"},
                "comments": _conn(
                    [
                        {
                            "id": "RC_1",
                            "databaseId": 100,
                            "body": "nit",
                            "path": "src/a.py",
                            "position": None,
                            "originalPosition": 4,
                            "diffHunk": "@@",
                            "commit": {"oid": "abc123"},
                            "author": {"login": "dave"},
                        }
                    ],
                    next_cursor="RCX",
                ),
            }
        ]
    ),
}


class TestPullRequestParsing(unittest.TestCase):
    def test_scalars_and_first_pages(self) -> None:
        pr = PullRequest.from_graphql(PR_PAYLOAD)

        self.assertEqual(pr.number, 42)
        self.assertEqual(pr.body, "")
        self.assertIsNone(pr.author_login)
        self.assertTrue(pr.is_draft)
        self.assertEqual((pr.base_ref_name, pr.head_ref_name), ("main", "feature/widget"))
        self.assertEqual(pr.assignees.nodes, ("alice", "bob"))
        self.assertTrue(pr.assignees.has_next_page)
        self.assertEqual(pr.assignees.end_cursor, "AS")
        self.assertEqual(pr.labels.nodes, ("api",))
        self.assertFalse(pr.labels.has_next_page)
        self.assertEqual(pr.comments.nodes[0].author_login, "carol")

    def test_nested_review_comments(self) -> None:
        review = PullRequest.from_graphql(PR_PAYLOAD).reviews.nodes[0]

        self.assertEqual(review.database_id, 99)
        self.assertEqual(review.author_login, "ci-bot")
        self.assertEqual(review.comments.end_cursor, "RCX")
        comment = review.comments.nodes[0]
        self.assertEqual(comment.commit_oid, "abc123")
        self.assertEqual(comment.original_position, 4)

    def test_to_dict_has_scalars_only(self) -> None:
        data = PullRequest.from_graphql(PR_PAYLOAD).to_dict()

        self.assertEqual(data["number"], 42)
        self.assertEqual(data["changed_files"], 3)
        for nested in ("assignees", "labels", "comments", "reviews"):
            self.assertNotIn(nested, data)


def test_missing_connection_is_an_empty_page() -> None:
    issue = Issue.from_graphql({"id": "I_1", "number": 1, "state": "OPEN", "title": "t"})

    assert issue.comments == Page()
    assert issue.assignees.nodes == ()


def test_wrong_type_names_the_field() -> None:
    with pytest.raises(TypeError, match="issue.number"):
        Issue.from_graphql({"id": "I_1", "number": "1", "state": "OPEN"})


def test_null_nodes_are_dropped() -> None:
    page = Page.from_graphql(_conn([{"login": "a"}, None]), lambda n: n["login"], where="x")

    assert page.nodes == ("a",)


def test_repository_topics_and_nested_names() -> None:
    repo = Repository.from_graphql(
        {
            "id": "R_1",
            "name": "widget",
            "nameWithOwner": "acme/widget",
            "owner": {"login": "acme"},
            "primaryLanguage": {"name": "Python"},
            "defaultBranchRef": None,
            "repositoryTopics": _conn([{"topic": {"name": "graphql"}}]),
        }
    )

    assert repo.owner_login == "acme"
    assert repo.primary_language == "Python"
    assert repo.default_branch is None
    assert repo.topics.nodes == ("graphql",)
    assert repo.issues == Page()


def test_hidden_emails_become_none() -> None:
    user = User.from_graphql({"id": "U_1", "login": "alice", "email": ""})
    org = Organization.from_graphql(
        {"id": "O_1", "login": "acme", "membersWithRole": _conn([{"id": "U_1", "login": "alice"}])}
    )

    assert user.email is None
    assert [m.login for m in org.members.nodes] == ["alice"]
