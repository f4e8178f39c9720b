from __future__ import annotations

import sys
from typing import Sequence, TextIO

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

from .base import trim


class StdoutStore:
    """Dry-run sink: prints one line per save and persists nothing."""

    def __init__(self, out: TextIO | None = None) -> None:
        self._out = out

    def _print(self, line: str) -> None:
        print(line, file=self._out if self._out is not None else sys.stdout)

    def save_organization(self, organization: Organization) -> None:
        self._print(
            f"organization data fetched for {organization.login}"
            f" ({organization.name or '-'})"
        )

    def save_user(self, organization_login: str, user: User) -> None:
        self._print(f"  user data fetched for {user.login} (member of {organization_login})")

    def save_repository(self, repository: Repository, topics: Sequence[str]) -> None:
        self._print(
            f"repository data fetched for {repository.owner_login}/{repository.name}"
            f" topics={list(topics)}"
        )

    def save_issue(
        self,
        repository_owner: str,
        repository_name: str,
        issue: Issue,
        assignees: Sequence[str],
        labels: Sequence[str],
    ) -> None:
        self._print(
            f"issue data fetched for {repository_owner}/{repository_name}#{issue.number}"
            f" {issue.title!r} assignees={list(assignees)} labels={list(labels)}"
        )

    def save_issue_comment(
        self,
        repository_owner: str,
        repository_name: str,
        issue_number: int,
        comment: IssueComment,
    ) -> None:
        self._print(
            f"  issue comment data fetched by {comment.author_login} at"
            f" {comment.created_at}: {trim(comment.body)!r}"
        )

    def save_pull_request(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request: PullRequest,
        assignees: Sequence[str],
        labels: Sequence[str],
    ) -> None:
        self._print(
            f"PR data fetched for {repository_owner}/{repository_name}#{pull_request.number}"
            f" {pull_request.title!r} assignees={list(assignees)} labels={list(labels)}"
        )

    def save_pull_request_comment(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        comment: IssueComment,
    ) -> None:
        self._print(
            f"  PR comment data fetched by {comment.author_login} at"
            f" {comment.created_at}: {trim(comment.body)!r}"
        )

    def save_pull_request_review(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        review: PullRequestReview,
    ) -> None:
        self._print(
            f"  PR review data fetched by {review.author_login} at"
            f" {review.submitted_at} ({review.state}): {trim(review.body)!r}"
        )

    def save_pull_request_review_comment(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        pull_request_review_id: int,
        comment: PullRequestReviewComment,
    ) -> None:
        self._print(
            f"    PR review comment data fetched by {comment.author_login} at"
            f" {comment.created_at}: {trim(comment.body)!r}"
        )

    def begin(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    def set_version(self, version: int) -> None:
        pass

    def set_active_version(self, version: int) -> None:
        pass

    def cleanup(self, current_version: int) -> None:
        pass
