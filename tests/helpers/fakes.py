from __future__ import annotations

from typing import Any, Sequence

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
)
from ghsnapshot.pagination import ConnectionKind
from ghsnapshot.store.base import InvalidStateError, NotFoundError


def page(*nodes: Any, cursor: str | None = None) -> Page[Any]:
    """A page; passing `cursor` marks it as having a next page."""
    return Page(nodes=tuple(nodes), has_next_page=cursor is not None, end_cursor=cursor)


def make_comment(comment_id: str, body: str = "looks good", author: str = "octocat") -> IssueComment:
    return IssueComment(
        id=comment_id,
        database_id=None,
        author_login=author,
        body=body,
        created_at="2026-01-20T00:00:00Z",
    )


def make_review_comment(comment_id: str, body: str = "nit") -> PullRequestReviewComment:
    return PullRequestReviewComment(
        id=comment_id,
        database_id=None,
        author_login="reviewer",
        body=body,
        path="src/app.py",
        position=3,
        created_at="2026-01-21T00:00:00Z",
    )


def make_review(
    database_id: int,
    *,
    state: str = "COMMENTED",
    comments: Page[Any] | None = None,
) -> PullRequestReview:
    return PullRequestReview(
        id=f"PRR_{database_id}",
        database_id=database_id,
        author_login="reviewer",
        body=f"review {database_id}",
        state=state,
        submitted_at="2026-01-21T00:00:00Z",
        comments=comments or page(),
    )


def make_issue(
    number: int,
    *,
    assignees: Page[Any] | None = None,
    labels: Page[Any] | None = None,
    comments: Page[Any] | None = None,
) -> Issue:
    return Issue(
        id=f"I_{number}",
        database_id=number,
        number=number,
        title=f"Issue {number}",
        body="",
        state="OPEN",
        assignees=assignees or page(),
        labels=labels or page(),
        comments=comments or page(),
    )


def make_pull_request(
    number: int,
    *,
    state: str = "OPEN",
    assignees: Page[Any] | None = None,
    labels: Page[Any] | None = None,
    comments: Page[Any] | None = None,
    reviews: Page[Any] | None = None,
) -> PullRequest:
    return PullRequest(
        id=f"PR_{number}",
        database_id=number,
        number=number,
        title=f"Pull request {number}",
        body=f"Body of {number}",
        state=state,
        base_ref_name="main",
        head_ref_name=f"feature-{number}",
        assignees=assignees or page(),
        labels=labels or page(),
        comments=comments or page(),
        reviews=reviews or page(),
    )


def make_repository(
    *,
    owner: str = "acme",
    name: str = "widget",
    topics: Page[Any] | None = None,
    issues: Page[Any] | None = None,
    pull_requests: Page[Any] | None = None,
) -> Repository:
    return Repository(
        id="R_1",
        database_id=1,
        owner_login=owner,
        name=name,
        name_with_owner=f"{owner}/{name}",
        topics=topics or page(),
        issues=issues or page(),
        pull_requests=pull_requests or page(),
    )


def make_user(login: str) -> User:
    return User(id=f"U_{login}", database_id=None, login=login)


def make_organization(login: str = "acme", members: Page[Any] | None = None) -> Organization:
    return Organization(id="O_1", database_id=1, login=login, members=members or page())


class FakePageSource:
    """Scripted source: pages are looked up by (parent_id, kind, cursor)."""

    def __init__(
        self,
        *,
        repository: Repository | None = None,
        organization: Organization | None = None,
        pages: dict[tuple[str, ConnectionKind, str], Page[Any] | Exception] | None = None,
        remaining: int = 5000,
    ) -> None:
        self.repository = repository
        self.organization = organization
        self.pages = pages or {}
        self.remaining = remaining
        self.calls: list[tuple[str, ConnectionKind, int, str]] = []
        self.root_calls: list[tuple[str, ...]] = []
        self.page_size_configs: list[PageSizes | None] = []

    def fetch_repository(
        self, owner: str, name: str, page_sizes: PageSizes | None = None
    ) -> Repository:
        self.root_calls.append(("repository", owner, name))
        if self.repository is None:
            raise LookupError(f"no repository scripted for {owner}/{name}")
        return self.repository

    def fetch_organization(
        self, login: str, page_sizes: PageSizes | None = None
    ) -> Organization:
        self.root_calls.append(("organization", login))
        if self.organization is None:
            raise LookupError(f"no organization scripted for {login}")
        return self.organization

    def fetch_page(
        self,
        parent_id: str,
        kind: ConnectionKind,
        page_size: int,
        cursor: str,
        page_sizes: PageSizes | None = None,
    ) -> Page[Any]:
        self.calls.append((parent_id, kind, page_size, cursor))
        self.page_size_configs.append(page_sizes)
        result = self.pages[(parent_id, kind, cursor)]
        if isinstance(result, Exception):
            raise result
        return result

    def rate_remaining(self) -> int:
        return self.remaining


class RecordingStore:
    """
    Versioned in-process `Storer` for traversal tests.

    Rows are keyed by (version, kind, *natural key). `begin` snapshots the
    rows and `rollback` restores the snapshot. Every save is also appended to
    `calls` as (method, key) so tests can assert ordering.
    """

    def __init__(self) -> None:
        self.rows: dict[tuple[Any, ...], Any] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.events: list[str] = []
        self.version: int | None = None
        self.active_version: int | None = None
        self._snapshot: dict[tuple[Any, ...], Any] | None = None

    @property
    def in_transaction(self) -> bool:
        return self._snapshot is not None

    def keys(self, kind: str, version: int | None = None) -> list[tuple[Any, ...]]:
        return [
            key[2:]
            for key in self.rows
            if key[1] == kind and (version is None or key[0] == version)
        ]

    def saved(self, method: str) -> list[tuple[Any, ...]]:
        return [key for name, key in self.calls if name == method]

    def _put(
        self,
        method: str,
        kind: str,
        key: tuple[Any, ...],
        value: Any,
        *,
        parent: tuple[Any, ...] | None = None,
    ) -> None:
        if not self.in_transaction:
            raise InvalidStateError(f"{method}() called without begin()")
        if parent is not None and (self.version, *parent) not in self.rows:
            raise NotFoundError(f"{method}: {parent} not found in version {self.version}")
        self.rows[(self.version, kind, *key)] = value
        self.calls.append((method, key))

    def save_organization(self, organization: Organization) -> None:
        self._put("save_organization", "organization", (organization.login,), organization)

    def save_user(self, organization_login: str, user: User) -> None:
        self._put(
            "save_user",
            "user",
            (organization_login, user.login),
            user,
            parent=("organization", organization_login),
        )

    def save_repository(self, repository: Repository, topics: Sequence[str]) -> None:
        self._put(
            "save_repository",
            "repository",
            (repository.owner_login, repository.name),
            (repository, list(topics)),
        )

    def save_issue(
        self,
        repository_owner: str,
        repository_name: str,
        issue: Issue,
        assignees: Sequence[str],
        labels: Sequence[str],
    ) -> None:
        self._put(
            "save_issue",
            "issue",
            (repository_owner, repository_name, issue.number),
            (issue, list(assignees), list(labels)),
            parent=("repository", repository_owner, repository_name),
        )

    def save_issue_comment(
        self,
        repository_owner: str,
        repository_name: str,
        issue_number: int,
        comment: IssueComment,
    ) -> None:
        self._put(
            "save_issue_comment",
            "issue_comment",
            (repository_owner, repository_name, issue_number, comment.id),
            comment,
            parent=("issue", repository_owner, repository_name, issue_number),
        )

    def save_pull_request(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request: PullRequest,
        assignees: Sequence[str],
        labels: Sequence[str],
    ) -> None:
        self._put(
            "save_pull_request",
            "pull_request",
            (repository_owner, repository_name, pull_request.number),
            (pull_request, list(assignees), list(labels)),
            parent=("repository", repository_owner, repository_name),
        )

    def save_pull_request_comment(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        comment: IssueComment,
    ) -> None:
        self._put(
            "save_pull_request_comment",
            "pull_request_comment",
            (repository_owner, repository_name, pull_request_number, comment.id),
            comment,
            parent=("pull_request", repository_owner, repository_name, pull_request_number),
        )

    def save_pull_request_review(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        review: PullRequestReview,
    ) -> None:
        self._put(
            "save_pull_request_review",
            "pull_request_review",
            (repository_owner, repository_name, pull_request_number, review.database_id),
            review,
            parent=("pull_request", repository_owner, repository_name, pull_request_number),
        )

    def save_pull_request_review_comment(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        pull_request_review_id: int,
        comment: PullRequestReviewComment,
    ) -> None:
        self._put(
            "save_pull_request_review_comment",
            "pull_request_review_comment",
            (
                repository_owner,
                repository_name,
                pull_request_number,
                pull_request_review_id,
                comment.id,
            ),
            comment,
            parent=(
                "pull_request_review",
                repository_owner,
                repository_name,
                pull_request_number,
                pull_request_review_id,
            ),
        )

    def set_version(self, version: int) -> None:
        if self.in_transaction:
            raise InvalidStateError("set_version() must be called before begin()")
        self.version = version
        self.events.append(f"set_version:{version}")

    def begin(self) -> None:
        if self.in_transaction:
            raise InvalidStateError("begin() called while a transaction is open")
        if self.version is None:
            raise InvalidStateError("set_version() must be called before begin()")
        self._snapshot = dict(self.rows)
        self.events.append("begin")

    def commit(self) -> None:
        if not self.in_transaction:
            raise InvalidStateError("commit() called without begin()")
        self._snapshot = None
        self.events.append("commit")

    def rollback(self) -> None:
        if self._snapshot is None:
            return
        self.rows, self._snapshot = self._snapshot, None
        self.events.append("rollback")

    def set_active_version(self, version: int) -> None:
        roots = {"repository", "organization"}
        if not any(key[0] == version and key[1] in roots for key in self.rows):
            raise NotFoundError(f"version {version} has no data")
        self.active_version = version
        self.events.append(f"set_active_version:{version}")

    def cleanup(self, current_version: int) -> None:
        keep = {current_version, self.active_version}
        self.rows = {key: value for key, value in self.rows.items() if key[0] in keep}
        self.events.append(f"cleanup:{current_version}")
