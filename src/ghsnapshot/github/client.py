from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True, slots=True)
class RateLimitInfo:
    limit: int | None = None
    remaining: int | None = None
    reset_at: str | None = None
    resource: str | None = None


class GitHubApiError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status: int,
        url: str,
        rate_limit: RateLimitInfo | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.url = url
        self.rate_limit = rate_limit


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _iso_from_unix_seconds(value: str | None) -> str | None:
    seconds = _parse_int(value)
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def parse_rate_limit(headers: Mapping[str, str]) -> RateLimitInfo | None:
    limit = _parse_int(headers.get("X-RateLimit-Limit"))
    remaining = _parse_int(headers.get("X-RateLimit-Remaining"))
    reset_at = _iso_from_unix_seconds(headers.get("X-RateLimit-Reset"))
    resource = headers.get("X-RateLimit-Resource")

    if limit is None and remaining is None and reset_at is None and resource is None:
        return None
    return RateLimitInfo(limit=limit, remaining=remaining, reset_at=reset_at, resource=resource)


def compute_retry_sleep(
    headers: Mapping[str, str],
    attempt: int,
    *,
    default_s: float = 5.0,
    now: float | None = None,
) -> float:
    retry_after = headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after) + random.random()
        except ValueError:
            pass
    reset = _parse_int(headers.get("X-RateLimit-Reset"))
    remaining = _parse_int(headers.get("X-RateLimit-Remaining"))
    if reset is not None and remaining == 0:
        current = int(now if now is not None else time.time())
        if reset > current:
            return float(min(reset - current + 1, 60)) + random.random()
    return float(min(default_s * (2 ** (attempt - 1)), 60)) + random.random()


def is_secondary_rate_limit(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return "secondary rate limit" in str(payload.get("message") or "").lower()


def _safe_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class GitHubGraphQLClient:
    """
    GraphQL transport with retry/backoff.

    Retries connection errors, 429/5xx and secondary rate limits up to
    `max_retries` times. Anything else (4xx, GraphQL `errors`) fails at once
    with `GitHubApiError`. Callers never see a retryable failure.
    """

    def __init__(
        self,
        *,
        token: str | None,
        url: str = "https://api.github.com/graphql",
        user_agent: str = "ghsnapshot",
        timeout_sec: float = 90.0,
        max_retries: int = 6,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._token = token
        self._url = url
        self._user_agent = user_agent
        self._timeout_sec = timeout_sec
        self._max_retries = max_retries
        self._session = session or requests.Session()
        self._sleep = sleep

        self.requests_sent: int = 0
        self.rate_limit_events: int = 0
        self.last_rate_limit: RateLimitInfo | None = None

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def query(self, document: str, variables: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """POST one GraphQL document and return its `data` object."""
        body = {"query": document, "variables": dict(variables or {})}

        attempt = 0
        while True:
            attempt += 1
            self.requests_sent += 1
            try:
                response = self._session.post(
                    self._url, json=body, headers=self._headers(), timeout=self._timeout_sec
                )
            except requests.RequestException as error:
                if attempt > self._max_retries:
                    raise GitHubApiError(
                        f"GraphQL request failed after {attempt} attempts: {error}",
                        status=0,
                        url=self._url,
                        rate_limit=self.last_rate_limit,
                    ) from error
                delay = compute_retry_sleep({}, attempt)
                logger.warning(
                    "GraphQL request error (attempt %d), retrying in %.1fs: %s",
                    attempt,
                    delay,
                    error,
                )
                self._sleep(delay)
                continue

            rate_limit = parse_rate_limit(response.headers)
            if rate_limit is not None:
                self.last_rate_limit = rate_limit

            payload = _safe_json(response)
            status = response.status_code

            retryable = status in RETRYABLE_STATUSES
            if status == 403 and is_secondary_rate_limit(payload):
                retryable = True
            if status in (403, 429):
                self.rate_limit_events += 1

            if retryable:
                if attempt > self._max_retries:
                    raise GitHubApiError(
                        f"GraphQL request failed after {attempt} attempts (HTTP {status})",
                        status=status,
                        url=self._url,
                        rate_limit=self.last_rate_limit,
                    )
                default_s = 60.0 if status == 403 else 5.0
                delay = compute_retry_sleep(response.headers, attempt, default_s=default_s)
                logger.warning(
                    "GraphQL HTTP %d (attempt %d), retrying in %.1fs", status, attempt, delay
                )
                self._sleep(delay)
                continue

            if status >= 400:
                message = f"GitHub GraphQL request failed ({status})"
                if isinstance(payload, dict) and payload.get("message"):
                    message = str(payload["message"])
                raise GitHubApiError(
                    message, status=status, url=self._url, rate_limit=self.last_rate_limit
                )

            return self._data(payload, status)

    def _data(self, payload: Any, status: int) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise GitHubApiError(
                "GraphQL response is not a JSON object", status=status, url=self._url
            )
        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else {}
            message = first.get("message") if isinstance(first, dict) else None
            path = first.get("path") if isinstance(first, dict) else None
            error_type = first.get("type") if isinstance(first, dict) else None
            raise GitHubApiError(
                f"GraphQL returned {len(errors)} error(s). First: {message!r} path={path!r}",
                status=404 if error_type == "NOT_FOUND" else status,
                url=self._url,
                rate_limit=self.last_rate_limit,
            )
        data = payload.get("data")
        if not isinstance(data, dict):
            raise GitHubApiError("GraphQL response has no data", status=status, url=self._url)
        return data
