from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Protocol, TypeVar

from .models import Page

if TYPE_CHECKING:
    from .config import PageSizes

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConnectionKind(str, Enum):
    ISSUES = "issues"
    PULL_REQUESTS = "pull_requests"
    ISSUE_ASSIGNEES = "issue_assignees"
    ISSUE_LABELS = "issue_labels"
    ISSUE_COMMENTS = "issue_comments"
    PULL_REQUEST_ASSIGNEES = "pull_request_assignees"
    PULL_REQUEST_LABELS = "pull_request_labels"
    PULL_REQUEST_COMMENTS = "pull_request_comments"
    PULL_REQUEST_REVIEWS = "pull_request_reviews"
    PULL_REQUEST_REVIEW_COMMENTS = "pull_request_review_comments"
    REPOSITORY_TOPICS = "repository_topics"
    ORGANIZATION_MEMBERS = "organization_members"


class PaginationError(RuntimeError):
    pass


class PageSource(Protocol):
    def fetch_page(
        self,
        parent_id: str,
        kind: ConnectionKind,
        page_size: int,
        cursor: str,
        page_sizes: PageSizes | None = None,
    ) -> Page[Any]: ...


def walk(
    source: PageSource,
    *,
    parent_id: str,
    kind: ConnectionKind,
    page_size: int,
    first_page: Page[T],
    on_node: Callable[[T], None],
    max_pages: int | None = None,
    page_sizes: PageSizes | None = None,
) -> int:
    """
    Drain one connection, calling `on_node` for every node in arrival order.

    - `first_page` came embedded in the parent's own response and is never
      re-fetched.
    - Every node of page k is handed to `on_node` before page k+1 is
      requested; the next request uses page k's `end_cursor`.
    - Errors from `source` or `on_node` propagate untouched. Retrying is the
      fetch layer's job.
    - `page_sizes` is forwarded to every fetch so nodes on later pages embed
      their nested first pages at the same sizes as the root fetch did.

    Returns the number of pages processed (including the first one).
    """
    page = first_page
    pages = 1
    while True:
        for node in page.nodes:
            on_node(node)

        if not page.has_next_page:
            return pages

        if not page.end_cursor:
            raise PaginationError(
                f"{kind.value} of {parent_id}: hasNextPage without endCursor (page {pages})"
            )
        if max_pages is not None and pages >= max_pages:
            raise PaginationError(
                f"{kind.value} of {parent_id}: exceeded max_pages={max_pages}"
            )

        logger.debug(
            "fetching %s page %d of %s (size=%d)", kind.value, pages + 1, parent_id, page_size
        )
        page = source.fetch_page(
            parent_id, kind, page_size, page.end_cursor, page_sizes=page_sizes
        )
        pages += 1


def collect(
    source: PageSource,
    *,
    parent_id: str,
    kind: ConnectionKind,
    page_size: int,
    first_page: Page[T],
    max_pages: int | None = None,
    page_sizes: PageSizes | None = None,
) -> list[T]:
    out: list[T] = []
    walk(
        source,
        parent_id=parent_id,
        kind=kind,
        page_size=page_size,
        first_page=first_page,
        on_node=out.append,
        max_pages=max_pages,
        page_sizes=page_sizes,
    )
    return out
