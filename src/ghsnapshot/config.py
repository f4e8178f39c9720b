from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Mapping

from .pagination import ConnectionKind

DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"

# GitHub rejects `first:` values above 100.
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PageSizes:
    issues: int = 50
    pull_requests: int = 50
    issue_comments: int = 10
    pull_request_reviews: int = 5
    pull_request_review_comments: int = 5
    assignees: int = 2
    labels: int = 2
    topics: int = 50
    organization_members: int = 100

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"page size `{f.name}` must be an integer")
            if not 1 <= value <= MAX_PAGE_SIZE:
                raise ValueError(
                    f"page size `{f.name}` must be within 1..{MAX_PAGE_SIZE} (got {value})"
                )

    def for_kind(self, kind: ConnectionKind) -> int:
        return getattr(self, _KIND_TO_FIELD[kind])


_KIND_TO_FIELD: dict[ConnectionKind, str] = {
    ConnectionKind.ISSUES: "issues",
    ConnectionKind.PULL_REQUESTS: "pull_requests",
    ConnectionKind.ISSUE_ASSIGNEES: "assignees",
    ConnectionKind.ISSUE_LABELS: "labels",
    ConnectionKind.ISSUE_COMMENTS: "issue_comments",
    ConnectionKind.PULL_REQUEST_ASSIGNEES: "assignees",
    ConnectionKind.PULL_REQUEST_LABELS: "labels",
    ConnectionKind.PULL_REQUEST_COMMENTS: "issue_comments",
    ConnectionKind.PULL_REQUEST_REVIEWS: "pull_request_reviews",
    ConnectionKind.PULL_REQUEST_REVIEW_COMMENTS: "pull_request_review_comments",
    ConnectionKind.REPOSITORY_TOPICS: "topics",
    ConnectionKind.ORGANIZATION_MEMBERS: "organization_members",
}


@dataclass(frozen=True)
class Settings:
    github_token: str | None = None
    graphql_url: str = DEFAULT_GRAPHQL_URL
    http_timeout_sec: float = 90.0
    max_retries: int = 6
    database_url: str | None = None
    page_sizes: PageSizes = field(default_factory=PageSizes)


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"`{key}` must be an integer (got {raw!r})") from None


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"`{key}` must be a number (got {raw!r})") from None


def load_page_sizes(env: Mapping[str, str] | None = None) -> PageSizes:
    """Read `GHSNAPSHOT_PAGE_SIZE_<FIELD>` overrides, e.g. `GHSNAPSHOT_PAGE_SIZE_ISSUES=25`."""
    if env is None:
        env = os.environ

    defaults = PageSizes()
    overrides = {
        f.name: _env_int(env, f"GHSNAPSHOT_PAGE_SIZE_{f.name.upper()}", getattr(defaults, f.name))
        for f in fields(PageSizes)
    }
    return PageSizes(**overrides)


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    if env is None:
        env = os.environ

    token = env.get("GITHUB_TOKEN") or env.get("GH_TOKEN") or None
    max_retries = _env_int(env, "GHSNAPSHOT_MAX_RETRIES", 6)
    if max_retries < 0:
        raise ValueError("`GHSNAPSHOT_MAX_RETRIES` must be >= 0")

    return Settings(
        github_token=token,
        graphql_url=env.get("GITHUB_GRAPHQL_URL") or DEFAULT_GRAPHQL_URL,
        http_timeout_sec=_env_float(env, "GHSNAPSHOT_HTTP_TIMEOUT", 90.0),
        max_retries=max_retries,
        database_url=env.get("DATABASE_URL") or None,
        page_sizes=load_page_sizes(env),
    )


def load_dotenv(*, path: str | Path = ".env", override: bool = False) -> bool:
    """
    Copy KEY=value lines from a local .env file into os.environ.

    Existing variables win unless `override` is set. Values are never logged.
    """
    env_path = Path(path)
    if not env_path.is_file():
        return False

    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        line = line.removeprefix("export ").lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue

        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]

        if override or key not in os.environ:
            os.environ[key] = value

    return True
