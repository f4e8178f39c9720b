from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Protocol

from .config import PageSizes
from .models import (
    Issue,
    Organization,
    Page,
    PullRequest,
    PullRequestReview,
    Repository,
    User,
)
from .pagination import ConnectionKind, PageSource, collect, walk
from .store.base import Storer
from .store.memory import MemoryStore
from .store.postgres import PostgresStore
from .store.stdout import StdoutStore

logger = logging.getLogger(__name__)


class GitHubDataSource(PageSource, Protocol):
    def fetch_repository(
        self, owner: str, name: str, page_sizes: PageSizes | None = None
    ) -> Repository: ...

    def fetch_organization(
        self, login: str, page_sizes: PageSizes | None = None
    ) -> Organization: ...

    def rate_remaining(self) -> int: ...


@dataclass
class TraversalStats:
    repositories: int = 0
    organizations: int = 0
    users: int = 0
    issues: int = 0
    issue_comments: int = 0
    pull_requests: int = 0
    pull_request_comments: int = 0
    pull_request_reviews: int = 0
    pull_request_review_comments: int = 0
    pages: int = 0


class Downloader:
    """
    Drives one traversal per call into a `Storer`.

    Every download runs inside its own generation: `set_version` then
    `begin`, saves in parent-before-child order, then `commit`. Any failure
    rolls the generation back and is re-raised unchanged.
    """

    def __init__(
        self,
        storer: Storer,
        source: GitHubDataSource,
        page_sizes: PageSizes | None = None,
    ) -> None:
        self._storer = storer
        self._source = source
        self._page_sizes = page_sizes or PageSizes()

    @property
    def storer(self) -> Storer:
        return self._storer

    @contextmanager
    def _generation(self, version: int, subject: str) -> Iterator[None]:
        self._storer.set_version(version)
        self._storer.begin()
        try:
            yield
        except BaseException as error:
            logger.warning(
                "download of %s failed, rolling back version %d: %s", subject, version, error
            )
            try:
                self._storer.rollback()
            except Exception:
                logger.exception("rollback of version %d failed", version)
            raise
        self._storer.commit()

    def _walk(
        self,
        stats: TraversalStats,
        parent_id: str,
        kind: ConnectionKind,
        first_page: Page[Any],
        on_node: Callable[[Any], None],
    ) -> None:
        stats.pages += walk(
            self._source,
            parent_id=parent_id,
            kind=kind,
            page_size=self._page_sizes.for_kind(kind),
            first_page=first_page,
            on_node=on_node,
            page_sizes=self._page_sizes,
        )

    def _collect(self, parent_id: str, kind: ConnectionKind, first_page: Page[str]) -> list[str]:
        return collect(
            self._source,
            parent_id=parent_id,
            kind=kind,
            page_size=self._page_sizes.for_kind(kind),
            first_page=first_page,
            page_sizes=self._page_sizes,
        )

    # Repository traversal

    def download_repository(self, owner: str, name: str, version: int) -> TraversalStats:
        subject = f"{owner}/{name}"
        stats = TraversalStats()
        logger.info("downloading repository %s into version %d", subject, version)
        with self._generation(version, subject):
            repository = self._source.fetch_repository(owner, name, self._page_sizes)
            topics = self._collect(
                repository.id, ConnectionKind.REPOSITORY_TOPICS, repository.topics
            )
            self._storer.save_repository(repository, topics)
            stats.repositories += 1

            self._walk(
                stats,
                repository.id,
                ConnectionKind.ISSUES,
                repository.issues,
                lambda issue: self._save_issue(repository, issue, stats),
            )
            self._walk(
                stats,
                repository.id,
                ConnectionKind.PULL_REQUESTS,
                repository.pull_requests,
                lambda pull_request: self._save_pull_request(repository, pull_request, stats),
            )
        logger.info(
            "repository %s done: %d issues, %d pull requests, %d reviews",
            subject,
            stats.issues,
            stats.pull_requests,
            stats.pull_request_reviews,
        )
        return stats

    def _save_issue(self, repository: Repository, issue: Issue, stats: TraversalStats) -> None:
        owner, name = repository.owner_login, repository.name
        assignees = self._collect(issue.id, ConnectionKind.ISSUE_ASSIGNEES, issue.assignees)
        labels = self._collect(issue.id, ConnectionKind.ISSUE_LABELS, issue.labels)
        self._storer.save_issue(owner, name, issue, assignees, labels)
        stats.issues += 1
        logger.debug("saved issue %s/%s#%d", owner, name, issue.number)

        def save_comment(comment) -> None:
            self._storer.save_issue_comment(owner, name, issue.number, comment)
            stats.issue_comments += 1

        self._walk(stats, issue.id, ConnectionKind.ISSUE_COMMENTS, issue.comments, save_comment)

    def _save_pull_request(
        self, repository: Repository, pull_request: PullRequest, stats: TraversalStats
    ) -> None:
        owner, name = repository.owner_login, repository.name
        number = pull_request.number
        assignees = self._collect(
            pull_request.id, ConnectionKind.PULL_REQUEST_ASSIGNEES, pull_request.assignees
        )
        labels = self._collect(
            pull_request.id, ConnectionKind.PULL_REQUEST_LABELS, pull_request.labels
        )
        self._storer.save_pull_request(owner, name, pull_request, assignees, labels)
        stats.pull_requests += 1
        logger.debug("saved pull request %s/%s#%d", owner, name, number)

        def save_comment(comment) -> None:
            self._storer.save_pull_request_comment(owner, name, number, comment)
            stats.pull_request_comments += 1

        self._walk(
            stats,
            pull_request.id,
            ConnectionKind.PULL_REQUEST_COMMENTS,
            pull_request.comments,
            save_comment,
        )
        self._walk(
            stats,
            pull_request.id,
            ConnectionKind.PULL_REQUEST_REVIEWS,
            pull_request.reviews,
            lambda review: self._save_review(owner, name, number, review, stats),
        )

    def _save_review(
        self,
        owner: str,
        name: str,
        pull_request_number: int,
        review: PullRequestReview,
        stats: TraversalStats,
    ) -> None:
        self._storer.save_pull_request_review(owner, name, pull_request_number, review)
        stats.pull_request_reviews += 1

        def save_comment(comment) -> None:
            self._storer.save_pull_request_review_comment(
                owner, name, pull_request_number, review.database_id, comment
            )
            stats.pull_request_review_comments += 1

        self._walk(
            stats,
            review.id,
            ConnectionKind.PULL_REQUEST_REVIEW_COMMENTS,
            review.comments,
            save_comment,
        )

    # Organization traversal

    def download_organization(self, login: str, version: int) -> TraversalStats:
        stats = TraversalStats()
        logger.info("downloading organization %s into version %d", login, version)
        with self._generation(version, login):
            organization = self._source.fetch_organization(login, self._page_sizes)
            self._storer.save_organization(organization)
            stats.organizations += 1

            def save_member(user: User) -> None:
                self._storer.save_user(organization.login, user)
                stats.users += 1

            self._walk(
                stats,
                organization.id,
                ConnectionKind.ORGANIZATION_MEMBERS,
                organization.members,
                save_member,
            )
        logger.info("organization %s done: %d members", login, stats.users)
        return stats

    # Publication

    def set_current(self, version: int) -> None:
        logger.info("activating version %d", version)
        self._storer.set_active_version(version)

    def cleanup(self, version: int) -> None:
        logger.info("removing generations other than %d", version)
        self._storer.cleanup(version)

    def rate_remaining(self) -> int:
        return self._source.rate_remaining()


def new_downloader(
    source: GitHubDataSource, database_url: str, page_sizes: PageSizes | None = None
) -> Downloader:
    return Downloader(PostgresStore(database_url), source, page_sizes)


def new_stdout_downloader(
    source: GitHubDataSource, page_sizes: PageSizes | None = None
) -> Downloader:
    return Downloader(StdoutStore(), source, page_sizes)


def new_memory_downloader(
    source: GitHubDataSource, page_sizes: PageSizes | None = None
) -> Downloader:
    return Downloader(MemoryStore(), source, page_sizes)


def download_to_memory(
    source: GitHubDataSource,
    owner: str,
    name: str,
    page_sizes: PageSizes | None = None,
) -> MemoryStore:
    """Download one repository into a fresh `MemoryStore` and return it."""
    store = MemoryStore()
    Downloader(store, source, page_sizes).download_repository(owner, name, 1)
    return store
