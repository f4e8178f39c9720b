from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Callable, Sequence

from .bridge.bitbucket import BitbucketServerClient, migrate_repository
from .config import Settings, load_dotenv, load_settings
from .downloader import Downloader, download_to_memory, new_downloader, new_stdout_downloader
from .github import GitHubApiError, GitHubGraphQLClient, GitHubSource
from .pagination import PaginationError
from .store.base import StorageError
from .store.migrate import run_migrations

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Failures that end one download; anything else is a bug and propagates.
DOWNLOAD_ERRORS = (GitHubApiError, PaginationError, StorageError)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def build_source(settings: Settings) -> GitHubSource:
    client = GitHubGraphQLClient(
        token=settings.github_token,
        url=settings.graphql_url,
        timeout_sec=settings.http_timeout_sec,
        max_retries=settings.max_retries,
    )
    return GitHubSource(client, page_sizes=settings.page_sizes)


def _repository_target(value: str) -> tuple[str, str]:
    owner, sep, name = value.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise argparse.ArgumentTypeError(f"expected OWNER/NAME, got {value!r}")
    return owner, name


def _version(value: str) -> int:
    try:
        version = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"version must be an integer, got {value!r}") from None
    if version < 0:
        raise argparse.ArgumentTypeError("version must be >= 0")
    return version


def _add_download_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--version", type=_version, required=True, help="Generation to write.")
    sink = p.add_mutually_exclusive_group()
    sink.add_argument("--db", default=None, help="PostgreSQL URL (default: DATABASE_URL).")
    sink.add_argument(
        "--dry-run", action="store_true", help="Print what would be stored instead of writing."
    )
    p.add_argument(
        "--activate", action="store_true", help="Make the version current after all downloads."
    )
    p.add_argument(
        "--cleanup", action="store_true", help="Delete other generations after all downloads."
    )
    p.add_argument(
        "--keep-going",
        action="store_true",
        help="Log a failed download and continue with the next target.",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ghsnapshot",
        description="Replicate GitHub repository/organization metadata into a versioned store.",
    )
    p.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        help="Logging level (default: LOG_LEVEL or INFO).",
    )
    p.add_argument("--env-file", default=".env", help="Optional .env file to load first.")
    sub = p.add_subparsers(dest="command", required=True)

    repo = sub.add_parser("repository", help="Download repositories.")
    repo.add_argument("targets", nargs="+", type=_repository_target, metavar="OWNER/NAME")
    _add_download_options(repo)
    repo.set_defaults(handler=cmd_repository)

    org = sub.add_parser("organization", help="Download organizations and their members.")
    org.add_argument("targets", nargs="+", metavar="LOGIN")
    _add_download_options(org)
    org.set_defaults(handler=cmd_organization)

    migrate_db = sub.add_parser("migrate-db", help="Apply pending schema migrations.")
    migrate_db.add_argument("--db", default=None, help="PostgreSQL URL (default: DATABASE_URL).")
    migrate_db.set_defaults(handler=cmd_migrate_db)

    rate = sub.add_parser("rate-limit", help="Print the remaining GraphQL rate limit.")
    rate.set_defaults(handler=cmd_rate_limit)

    bb = sub.add_parser(
        "bitbucket-migrate", help="Copy open pull requests of one repository to Bitbucket Server."
    )
    bb.add_argument("target", type=_repository_target, metavar="OWNER/NAME")
    bb.add_argument("--server", default=None, help="Base URL (default: BITBUCKET_SERVER_URL).")
    bb.add_argument("--user", default=None, help="User (default: BITBUCKET_USER).")
    bb.add_argument("--password", default=None, help="Password (default: BITBUCKET_PASSWORD).")
    bb.add_argument(
        "--project-key", default=None, help="Project key (default: BITBUCKET_PROJECT_KEY)."
    )
    bb.add_argument("--slug", default=None, help="Repository slug (default: the GitHub name).")
    bb.add_argument("--reviewer", default=None, help="Reviewer to add (default: --user).")
    bb.set_defaults(handler=cmd_bitbucket_migrate)

    return p


def _require_token(settings: Settings) -> bool:
    if settings.github_token:
        return True
    print(
        "Missing GitHub token. Set env var GITHUB_TOKEN (recommended) or GH_TOKEN.",
        file=sys.stderr,
    )
    return False


def _make_downloader(args: argparse.Namespace, settings: Settings) -> Downloader | None:
    source = build_source(settings)
    if args.dry_run:
        return new_stdout_downloader(source, settings.page_sizes)
    database_url = args.db or settings.database_url
    if not database_url:
        print("Missing database URL. Pass --db or set DATABASE_URL.", file=sys.stderr)
        return None
    return new_downloader(source, database_url, settings.page_sizes)


def _run_downloads(
    args: argparse.Namespace,
    settings: Settings,
    targets: Sequence[str],
    download: Callable[[Downloader, str], object],
) -> int:
    if not _require_token(settings):
        return 2
    downloader = _make_downloader(args, settings)
    if downloader is None:
        return 2

    failed: list[str] = []
    for target in targets:
        try:
            download(downloader, target)
        except DOWNLOAD_ERRORS as error:
            logger.error("download of %s failed: %s", target, error)
            failed.append(target)
            if not args.keep_going:
                return 1

    if failed:
        logger.error("%d of %d downloads failed: %s", len(failed), len(targets), ", ".join(failed))
        return 1

    try:
        if args.activate:
            downloader.set_current(args.version)
        if args.cleanup:
            downloader.cleanup(args.version)
    except StorageError as error:
        logger.error("publishing version %d failed: %s", args.version, error)
        return 1
    return 0


def cmd_repository(args: argparse.Namespace, settings: Settings) -> int:
    by_label = {f"{owner}/{name}": (owner, name) for owner, name in args.targets}

    def download(downloader: Downloader, label: str) -> object:
        owner, name = by_label[label]
        return downloader.download_repository(owner, name, args.version)

    return _run_downloads(args, settings, list(by_label), download)


def cmd_organization(args: argparse.Namespace, settings: Settings) -> int:
    def download(downloader: Downloader, login: str) -> object:
        return downloader.download_organization(login, args.version)

    return _run_downloads(args, settings, args.targets, download)


def cmd_migrate_db(args: argparse.Namespace, settings: Settings) -> int:
    database_url = args.db or settings.database_url
    if not database_url:
        print("Missing database URL. Pass --db or set DATABASE_URL.", file=sys.stderr)
        return 2
    applied = run_migrations(database_url=database_url)
    for filename in applied:
        print(f"applied {filename}")
    if not applied:
        print("schema is up to date")
    return 0


def cmd_rate_limit(args: argparse.Namespace, settings: Settings) -> int:
    if not _require_token(settings):
        return 2
    try:
        remaining = build_source(settings).rate_remaining()
    except GitHubApiError as error:
        logger.error("rate limit query failed: %s", error)
        return 1
    print(remaining)
    return 0


def cmd_bitbucket_migrate(args: argparse.Namespace, settings: Settings) -> int:
    server = args.server or os.environ.get("BITBUCKET_SERVER_URL")
    user = args.user or os.environ.get("BITBUCKET_USER")
    password = args.password or os.environ.get("BITBUCKET_PASSWORD")
    project_key = args.project_key or os.environ.get("BITBUCKET_PROJECT_KEY")
    missing = [
        flag
        for flag, value in (
            ("--server", server),
            ("--user", user),
            ("--password", password),
            ("--project-key", project_key),
        )
        if not value
    ]
    if missing:
        print(f"Missing Bitbucket settings: {', '.join(missing)}", file=sys.stderr)
        return 2
    if not _require_token(settings):
        return 2

    owner, name = args.target
    try:
        store = download_to_memory(build_source(settings), owner, name, settings.page_sizes)
    except DOWNLOAD_ERRORS as error:
        logger.error("download of %s/%s failed: %s", owner, name, error)
        return 1

    with BitbucketServerClient(server, user=user, password=password) as client:
        try:
            report = migrate_repository(
                store,
                owner,
                name,
                client,
                project_key=project_key,
                slug=args.slug,
                reviewer=args.reviewer,
            )
        except StorageError as error:
            logger.error("migration of %s/%s failed: %s", owner, name, error)
            return 1
    print(
        f"migrated={len(report.migrated)} skipped={len(report.skipped)}"
        f" failed={len(report.failed)}"
    )
    return 1 if report.failed else 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    load_dotenv(path=args.env_file)
    try:
        settings = load_settings()
    except ValueError as error:
        print(f"Invalid configuration: {error}", file=sys.stderr)
        return 2
    return args.handler(args, settings)


if __name__ == "__main__":
    raise SystemExit(main())
