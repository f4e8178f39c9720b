from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ghsnapshot.models import IssueComment, PullRequestReview, PullRequestReviewComment
from ghsnapshot.store.base import trim
from ghsnapshot.store.memory import MemoryStore, PullRequestRecord

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 1000


class BitbucketApiError(RuntimeError):
    def __init__(self, message: str, *, status: int, url: str) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


def _ref(branch: str, *, project_key: str, slug: str) -> dict[str, Any]:
    return {
        "id": branch,
        "repository": {"slug": slug, "project": {"key": project_key}},
    }


class BitbucketServerClient:
    """Minimal Bitbucket Server REST (1.0) client: pull requests and their comments."""

    def __init__(
        self,
        base_url: str,
        *,
        user: str,
        password: str,
        timeout_sec: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._user = user
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/rest/api/1.0",
            auth=(user, password),
            timeout=timeout_sec,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @property
    def user(self) -> str:
        return self._user

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "BitbucketServerClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _post(self, path: str, payload: dict[str, Any]) -> int:
        """POST `payload` and return the `id` of the created object."""
        response = self._client.post(path, json=payload)
        url = str(response.request.url)
        if response.status_code not in (200, 201):
            raise BitbucketApiError(
                f"Bitbucket API error ({response.status_code}): {response.text}",
                status=response.status_code,
                url=url,
            )
        try:
            body = response.json()
        except ValueError:
            raise BitbucketApiError(
                f"Bitbucket API returned a non-JSON body: {response.text[:200]}",
                status=response.status_code,
                url=url,
            ) from None
        try:
            return int(body["id"])
        except (TypeError, KeyError, ValueError):
            raise BitbucketApiError(
                "Bitbucket API response has no usable id",
                status=response.status_code,
                url=url,
            ) from None

    def create_pull_request(
        self,
        project_key: str,
        slug: str,
        *,
        title: str,
        description: str,
        from_branch: str,
        to_branch: str,
        reviewers: list[str] | None = None,
    ) -> int:
        payload = {
            "title": title,
            "description": description,
            "state": "OPEN",
            "open": True,
            "closed": False,
            "fromRef": _ref(from_branch, project_key=project_key, slug=slug),
            "toRef": _ref(to_branch, project_key=project_key, slug=slug),
            "locked": False,
            "reviewers": [{"user": {"name": name}} for name in reviewers or []],
        }
        return self._post(f"/projects/{project_key}/repos/{slug}/pull-requests", payload)

    def create_pull_request_comment(
        self,
        project_key: str,
        slug: str,
        pull_request_id: int,
        text: str,
        *,
        parent_id: int | None = None,
    ) -> int:
        payload: dict[str, Any] = {"text": text}
        if parent_id is not None:
            payload["parent"] = {"id": parent_id}
        return self._post(
            f"/projects/{project_key}/repos/{slug}/pull-requests/{pull_request_id}/comments",
            payload,
        )


def format_comment(comment: IssueComment) -> str:
    return trim(
        f"{comment.author_login or 'ghost'} commented at {comment.created_at}:\n\n{comment.body}",
        MAX_COMMENT_LENGTH,
    )


def format_review(review: PullRequestReview) -> str:
    return trim(
        f"{review.author_login or 'ghost'} reviewed ({review.state}) at"
        f" {review.submitted_at}:\n\n{review.body}",
        MAX_COMMENT_LENGTH,
    )


def format_review_comment(comment: PullRequestReviewComment) -> str:
    location = comment.path or ""
    if comment.position is not None:
        location = f"{location}:{comment.position}"
    return trim(
        f"{comment.author_login or 'ghost'} on {location or 'the diff'}:\n\n{comment.body}",
        MAX_COMMENT_LENGTH,
    )


@dataclass
class MigrationReport:
    migrated: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


def _migrate_pull_request(
    client: BitbucketServerClient,
    record: PullRequestRecord,
    *,
    project_key: str,
    slug: str,
    reviewers: list[str],
) -> int:
    pull_request = record.pull_request
    bitbucket_id = client.create_pull_request(
        project_key,
        slug,
        title=pull_request.title,
        description=pull_request.body,
        from_branch=pull_request.head_ref_name or "",
        to_branch=pull_request.base_ref_name or "",
        reviewers=reviewers,
    )
    logger.info("created Bitbucket PR %d for #%d", bitbucket_id, pull_request.number)

    for comment in record.comments:
        client.create_pull_request_comment(
            project_key, slug, bitbucket_id, format_comment(comment)
        )

    for review_record in record.reviews.values():
        review_comment_id = client.create_pull_request_comment(
            project_key, slug, bitbucket_id, format_review(review_record.review)
        )
        for comment in review_record.comments:
            client.create_pull_request_comment(
                project_key,
                slug,
                bitbucket_id,
                format_review_comment(comment),
                parent_id=review_comment_id,
            )
    return bitbucket_id


def migrate_repository(
    store: MemoryStore,
    owner: str,
    name: str,
    client: BitbucketServerClient,
    *,
    project_key: str,
    slug: str | None = None,
    reviewer: str | None = None,
) -> MigrationReport:
    """
    Replay the open pull requests of one downloaded repository on Bitbucket Server.

    Pull requests go in ascending number. Each becomes a Bitbucket PR in
    `project_key/slug` (same branch names), followed by its comments and then
    one comment per review with that review's comments as replies. Non-open
    pull requests are skipped. A pull request that fails is logged and
    counted; the rest still run.
    """
    repo = store.get_repository(owner, name)
    slug = slug or name
    reviewers = [reviewer or client.user]
    report = MigrationReport()

    for number in sorted(repo.prs):
        record = repo.prs[number]
        if record.pull_request.state != "OPEN":
            logger.info("skipping #%d (state %s)", number, record.pull_request.state)
            report.skipped.append(number)
            continue
        try:
            _migrate_pull_request(
                client, record, project_key=project_key, slug=slug, reviewers=reviewers
            )
        except (BitbucketApiError, httpx.HTTPError) as error:
            logger.error("failed to migrate PR #%d: %s", number, error)
            report.failed.append(number)
            continue
        report.migrated.append(number)

    logger.info(
        "migration of %s/%s done: %d migrated, %d skipped, %d failed",
        owner,
        name,
        len(report.migrated),
        len(report.skipped),
        len(report.failed),
    )
    return report
