from __future__ import annotations

from typing import Protocol, Sequence

from ghsnapshot.models import (
    Issue,
    IssueComment,
    Organization,
    PullRequest,
    PullRequestReview,
    PullRequestReviewComment,
    Repository,
    User,
)


class StorageError(RuntimeError):
    pass


class NotFoundError(StorageError):
    pass


class InvalidStateError(StorageError):
    pass


class Storer(Protocol):
    """
    Sink for one traversal at a time.

    Call order per traversal: `set_version` -> `begin` -> save_* -> `commit`
    (or `rollback`). `set_active_version` and `cleanup` run separately, after
    commit, and are expected to be serialized by the caller.

    Saves are upserts keyed by the entity's natural key within the current
    version. A save whose parent is missing from the same version raises
    `NotFoundError`.
    """

    def save_organization(self, organization: Organization) -> None: ...

    def save_user(self, organization_login: str, user: User) -> None: ...

    def save_repository(self, repository: Repository, topics: Sequence[str]) -> None: ...

    def save_issue(
        self,
        repository_owner: str,
        repository_name: str,
        issue: Issue,
        assignees: Sequence[str],
        labels: Sequence[str],
    ) -> None: ...

    def save_issue_comment(
        self,
        repository_owner: str,
        repository_name: str,
        issue_number: int,
        comment: IssueComment,
    ) -> None: ...

    def save_pull_request(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request: PullRequest,
        assignees: Sequence[str],
        labels: Sequence[str],
    ) -> None: ...

    def save_pull_request_comment(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        comment: IssueComment,
    ) -> None: ...

    def save_pull_request_review(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        review: PullRequestReview,
    ) -> None: ...

    def save_pull_request_review_comment(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        pull_request_review_id: int,
        comment: PullRequestReviewComment,
    ) -> None: ...

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def set_version(self, version: int) -> None: ...

    def set_active_version(self, version: int) -> None: ...

    def cleanup(self, current_version: int) -> None: ...


def trim(text: str, limit: int = 40) -> str:
    if len(text) > limit:
        return text[: limit - 1] + "..."
    return text
