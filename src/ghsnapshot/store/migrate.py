from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import psycopg

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    filename: str
    sql: str


def default_migrations_dir() -> Path:
    return Path(__file__).resolve().parent / "migrations"


def load_migrations(migrations_dir: Path | None = None) -> list[Migration]:
    directory = migrations_dir or default_migrations_dir()
    return [
        Migration(filename=path.name, sql=path.read_text(encoding="utf-8"))
        for path in sorted(directory.glob("*.sql"))
    ]


def run_migrations(*, database_url: str, migrations_dir: Path | None = None) -> list[str]:
    """Apply pending migrations in filename order; returns the newly applied filenames."""
    migrations = load_migrations(migrations_dir)
    if not migrations:
        return []

    applied_now: list[str] = []
    with psycopg.connect(database_url) as conn:
        with conn.transaction(), conn.cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                  filename text PRIMARY KEY,
                  applied_at timestamptz NOT NULL DEFAULT now()
                );
                """
            )
            cur.execute("SELECT filename FROM schema_migrations;")
            applied = {row[0] for row in cur.fetchall()}

        for migration in migrations:
            if migration.filename in applied:
                continue
            with conn.transaction(), conn.cursor() as cur:
                cur.execute(migration.sql)
                cur.execute(
                    "INSERT INTO schema_migrations (filename) VALUES (%s);",
                    (migration.filename,),
                )
            logger.info("applied migration %s", migration.filename)
            applied_now.append(migration.filename)

    return applied_now
