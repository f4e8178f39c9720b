from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Sequence

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

from .base import NotFoundError, trim

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReviewRecord:
    review: PullRequestReview
    comments: list[PullRequestReviewComment] = field(default_factory=list)


@dataclass(slots=True)
class PullRequestRecord:
    pull_request: PullRequest
    assignees: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    comments: list[IssueComment] = field(default_factory=list)
    reviews: dict[int, ReviewRecord] = field(default_factory=dict)


@dataclass(slots=True)
class RepoRecord:
    repository: Repository
    topics: list[str] = field(default_factory=list)
    prs: dict[int, PullRequestRecord] = field(default_factory=dict)


class MemoryStore:
    """
    Short-lived sink that accumulates pull requests into `repos[owner][name]`.

    Meant as a bridge for a single synchronous download feeding another
    writer (see `ghsnapshot.bridge`). There are no generations and no
    transactions: every version/transaction call is a no-op and a failed
    download leaves whatever was saved before the failure.

    Precondition: one `Downloader` drives the store sequentially. The lock
    only keeps individual saves consistent; it does not make interleaved
    downloads of the same repository meaningful.

    Organizations, users, issues and issue comments are only logged.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._repos: dict[str, dict[str, RepoRecord]] = {}

    @property
    def repos(self) -> dict[str, dict[str, RepoRecord]]:
        return self._repos

    def get_repository(self, owner: str, name: str) -> RepoRecord:
        with self._lock:
            record = self._repos.get(owner, {}).get(name)
        if record is None:
            raise NotFoundError(f"repository not found: {owner}/{name}")
        return record

    def _pull_request(self, owner: str, name: str, number: int) -> PullRequestRecord:
        repo = self._repos.get(owner, {}).get(name)
        if repo is None:
            raise NotFoundError(f"repository not found: {owner}/{name}")
        record = repo.prs.get(number)
        if record is None:
            raise NotFoundError(f"pull request not found: {owner}/{name}#{number}")
        return record

    def save_organization(self, organization: Organization) -> None:
        logger.info("organization data fetched for %s", organization.login)

    def save_user(self, organization_login: str, user: User) -> None:
        logger.info("user data fetched for %s", user.login)

    def save_repository(self, repository: Repository, topics: Sequence[str]) -> None:
        with self._lock:
            logger.info(
                "repository data fetched for %s/%s", repository.owner_login, repository.name
            )
            self._repos.setdefault(repository.owner_login, {})[repository.name] = RepoRecord(
                repository=repository, topics=list(topics)
            )

    def save_issue(
        self,
        repository_owner: str,
        repository_name: str,
        issue: Issue,
        assignees: Sequence[str],
        labels: Sequence[str],
    ) -> None:
        logger.info("issue data fetched for #%d %s", issue.number, issue.title)

    def save_issue_comment(
        self,
        repository_owner: str,
        repository_name: str,
        issue_number: int,
        comment: IssueComment,
    ) -> None:
        logger.debug(
            "issue comment data fetched by %s at %s: %r",
            comment.author_login,
            comment.created_at,
            trim(comment.body),
        )

    def save_pull_request(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request: PullRequest,
        assignees: Sequence[str],
        labels: Sequence[str],
    ) -> None:
        with self._lock:
            logger.info("PR data fetched for #%d %s", pull_request.number, pull_request.title)
            repo = self._repos.get(repository_owner, {}).get(repository_name)
            if repo is None:
                raise NotFoundError(
                    f"repository not found: {repository_owner}/{repository_name}"
                )
            repo.prs[pull_request.number] = PullRequestRecord(
                pull_request=pull_request,
                assignees=list(assignees),
                labels=list(labels),
            )

    def save_pull_request_comment(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        comment: IssueComment,
    ) -> None:
        with self._lock:
            logger.debug(
                "PR comment data fetched by %s at %s: %r",
                comment.author_login,
                comment.created_at,
                trim(comment.body),
            )
            record = self._pull_request(repository_owner, repository_name, pull_request_number)
            record.comments.append(comment)

    def save_pull_request_review(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        review: PullRequestReview,
    ) -> None:
        with self._lock:
            logger.debug(
                "PR review data fetched by %s at %s: %r",
                review.author_login,
                review.submitted_at,
                trim(review.body),
            )
            record = self._pull_request(repository_owner, repository_name, pull_request_number)
            record.reviews[review.database_id] = ReviewRecord(review=review)

    def save_pull_request_review_comment(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        pull_request_review_id: int,
        comment: PullRequestReviewComment,
    ) -> None:
        with self._lock:
            logger.debug(
                "PR review comment data fetched by %s at %s: %r",
                comment.author_login,
                comment.created_at,
                trim(comment.body),
            )
            record = self._pull_request(repository_owner, repository_name, pull_request_number)
            review = record.reviews.get(pull_request_review_id)
            if review is None:
                raise NotFoundError(
                    f"review not found: {repository_owner}/{repository_name}"
                    f"#{pull_request_number} review {pull_request_review_id}"
                )
            review.comments.append(comment)

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
