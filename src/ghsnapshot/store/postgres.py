from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping, Sequence

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

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

from .base import InvalidStateError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

# Children first, so a failed cleanup never strands rows without parents.
_VERSIONED_TABLES = (
    "pull_request_review_comments_versioned",
    "pull_request_reviews_versioned",
    "pull_request_comments_versioned",
    "pull_requests_versioned",
    "issue_comments_versioned",
    "issues_versioned",
    "repositories_versioned",
    "users_versioned",
    "organizations_versioned",
)

_SAVE_ORGANIZATION = """
INSERT INTO organizations_versioned (version, login, id, data)
VALUES (%(version)s, %(login)s, %(id)s, %(data)s)
ON CONFLICT (version, login) DO UPDATE
SET id = EXCLUDED.id, data = EXCLUDED.data;
"""

_SAVE_USER = """
INSERT INTO users_versioned (version, organization_login, login, id, data)
SELECT %(version)s::integer, %(organization_login)s, %(login)s, %(id)s, %(data)s
WHERE EXISTS (
  SELECT 1 FROM organizations_versioned
  WHERE version = %(version)s::integer AND login = %(organization_login)s
)
ON CONFLICT (version, organization_login, login) DO UPDATE
SET id = EXCLUDED.id, data = EXCLUDED.data;
"""

_SAVE_REPOSITORY = """
INSERT INTO repositories_versioned (version, owner, name, id, topics, data)
VALUES (%(version)s, %(owner)s, %(name)s, %(id)s, %(topics)s, %(data)s)
ON CONFLICT (version, owner, name) DO UPDATE
SET id = EXCLUDED.id, topics = EXCLUDED.topics, data = EXCLUDED.data;
"""

_REPOSITORY_EXISTS = """
SELECT 1 FROM repositories_versioned
WHERE version = %(version)s::integer AND owner = %(owner)s AND name = %(name)s
"""

_SAVE_ISSUE = f"""
INSERT INTO issues_versioned (
  version, repository_owner, repository_name, number, id, assignees, labels, data
)
SELECT %(version)s::integer, %(owner)s, %(name)s, %(number)s::integer, %(id)s,
       %(assignees)s::text[], %(labels)s::text[], %(data)s
WHERE EXISTS ({_REPOSITORY_EXISTS})
ON CONFLICT (version, repository_owner, repository_name, number) DO UPDATE
SET id = EXCLUDED.id, assignees = EXCLUDED.assignees,
    labels = EXCLUDED.labels, data = EXCLUDED.data;
"""

_SAVE_ISSUE_COMMENT = """
INSERT INTO issue_comments_versioned (
  version, repository_owner, repository_name, issue_number, id, data
)
SELECT %(version)s::integer, %(owner)s, %(name)s, %(number)s::integer, %(id)s, %(data)s
WHERE EXISTS (
  SELECT 1 FROM issues_versioned
  WHERE version = %(version)s::integer AND repository_owner = %(owner)s
    AND repository_name = %(name)s AND number = %(number)s::integer
)
ON CONFLICT (version, id) DO UPDATE
SET repository_owner = EXCLUDED.repository_owner,
    repository_name = EXCLUDED.repository_name,
    issue_number = EXCLUDED.issue_number,
    data = EXCLUDED.data;
"""

_SAVE_PULL_REQUEST = f"""
INSERT INTO pull_requests_versioned (
  version, repository_owner, repository_name, number, id, assignees, labels, data
)
SELECT %(version)s::integer, %(owner)s, %(name)s, %(number)s::integer, %(id)s,
       %(assignees)s::text[], %(labels)s::text[], %(data)s
WHERE EXISTS ({_REPOSITORY_EXISTS})
ON CONFLICT (version, repository_owner, repository_name, number) DO UPDATE
SET id = EXCLUDED.id, assignees = EXCLUDED.assignees,
    labels = EXCLUDED.labels, data = EXCLUDED.data;
"""

_PULL_REQUEST_EXISTS = """
SELECT 1 FROM pull_requests_versioned
WHERE version = %(version)s::integer AND repository_owner = %(owner)s
  AND repository_name = %(name)s AND number = %(number)s::integer
"""

_SAVE_PULL_REQUEST_COMMENT = f"""
INSERT INTO pull_request_comments_versioned (
  version, repository_owner, repository_name, pull_request_number, id, data
)
SELECT %(version)s::integer, %(owner)s, %(name)s, %(number)s::integer, %(id)s, %(data)s
WHERE EXISTS ({_PULL_REQUEST_EXISTS})
ON CONFLICT (version, id) DO UPDATE
SET repository_owner = EXCLUDED.repository_owner,
    repository_name = EXCLUDED.repository_name,
    pull_request_number = EXCLUDED.pull_request_number,
    data = EXCLUDED.data;
"""

_SAVE_PULL_REQUEST_REVIEW = f"""
INSERT INTO pull_request_reviews_versioned (
  version, repository_owner, repository_name, pull_request_number, review_id, id, data
)
SELECT %(version)s::integer, %(owner)s, %(name)s, %(number)s::integer,
       %(review_id)s::bigint, %(id)s, %(data)s
WHERE EXISTS ({_PULL_REQUEST_EXISTS})
ON CONFLICT (version, repository_owner, repository_name, pull_request_number, review_id)
DO UPDATE SET id = EXCLUDED.id, data = EXCLUDED.data;
"""

_SAVE_PULL_REQUEST_REVIEW_COMMENT = """
INSERT INTO pull_request_review_comments_versioned (
  version, repository_owner, repository_name, pull_request_number, review_id, id, data
)
SELECT %(version)s::integer, %(owner)s, %(name)s, %(number)s::integer,
       %(review_id)s::bigint, %(id)s, %(data)s
WHERE EXISTS (
  SELECT 1 FROM pull_request_reviews_versioned
  WHERE version = %(version)s::integer AND repository_owner = %(owner)s
    AND repository_name = %(name)s AND pull_request_number = %(number)s::integer
    AND review_id = %(review_id)s::bigint
)
ON CONFLICT (version, id) DO UPDATE
SET repository_owner = EXCLUDED.repository_owner,
    repository_name = EXCLUDED.repository_name,
    pull_request_number = EXCLUDED.pull_request_number,
    review_id = EXCLUDED.review_id,
    data = EXCLUDED.data;
"""


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except psycopg.Error as error:
        raise StorageError(f"{action} failed: {error}") from error


class PostgresStore:
    """
    Versioned snapshot store on PostgreSQL.

    One `begin`..`commit` spans one download on a dedicated connection, so a
    download is invisible to other sessions until commit and gone after
    rollback. Readers go through the plain views (`repositories`, `issues`,
    ...) which only show `snapshot_state.active_version`; switching that one
    row is the whole publish step.
    """

    def __init__(
        self,
        database_url: str,
        *,
        connect: Callable[..., psycopg.Connection[Any]] = psycopg.connect,
    ) -> None:
        self._database_url = database_url
        self._connect_impl = connect
        self._conn: psycopg.Connection[Any] | None = None
        self._version: int | None = None

    @property
    def database_url(self) -> str:
        return self._database_url

    def _connect(self) -> psycopg.Connection[Any]:
        with _storage_errors("connect"):
            return self._connect_impl(self._database_url)

    # Transaction boundary

    def set_version(self, version: int) -> None:
        if self._conn is not None:
            raise InvalidStateError("set_version() must be called before begin().")
        self._version = int(version)

    def begin(self) -> None:
        if self._conn is not None:
            raise InvalidStateError("begin() called while a transaction is open.")
        if self._version is None:
            raise InvalidStateError("set_version() must be called before begin().")
        self._conn = self._connect()
        logger.debug("began transaction for version %d", self._version)

    def commit(self) -> None:
        conn = self._require_conn("commit")
        try:
            with _storage_errors("commit"):
                conn.commit()
        finally:
            self._close()
        logger.info("committed version %d", self._version)

    def rollback(self) -> None:
        conn = self._conn
        if conn is None:
            return
        try:
            with _storage_errors("rollback"):
                conn.rollback()
        finally:
            self._close()
        logger.info("rolled back version %d", self._version)

    def _close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    def _require_conn(self, action: str) -> psycopg.Connection[Any]:
        if self._conn is None:
            raise InvalidStateError(f"{action}() called without begin().")
        return self._conn

    def _write(self, action: str, query: str, params: Mapping[str, Any]) -> int:
        conn = self._require_conn(action)
        with _storage_errors(action), conn.cursor() as cur:
            cur.execute(query, {"version": self._version, **params})
            return cur.rowcount

    def _write_child(
        self, action: str, query: str, params: Mapping[str, Any], *, parent: str
    ) -> None:
        if self._write(action, query, params) == 0:
            raise NotFoundError(f"{action}: {parent} not found in version {self._version}")

    # Saves

    def save_organization(self, organization: Organization) -> None:
        self._write(
            "save_organization",
            _SAVE_ORGANIZATION,
            {
                "login": organization.login,
                "id": organization.id,
                "data": Jsonb(organization.to_dict()),
            },
        )

    def save_user(self, organization_login: str, user: User) -> None:
        self._write_child(
            "save_user",
            _SAVE_USER,
            {
                "organization_login": organization_login,
                "login": user.login,
                "id": user.id,
                "data": Jsonb(user.to_dict()),
            },
            parent=f"organization {organization_login}",
        )

    def save_repository(self, repository: Repository, topics: Sequence[str]) -> None:
        self._write(
            "save_repository",
            _SAVE_REPOSITORY,
            {
                "owner": repository.owner_login,
                "name": repository.name,
                "id": repository.id,
                "topics": list(topics),
                "data": Jsonb(repository.to_dict()),
            },
        )

    def save_issue(
        self,
        repository_owner: str,
        repository_name: str,
        issue: Issue,
        assignees: Sequence[str],
        labels: Sequence[str],
    ) -> None:
        self._write_child(
            "save_issue",
            _SAVE_ISSUE,
            {
                "owner": repository_owner,
                "name": repository_name,
                "number": issue.number,
                "id": issue.id,
                "assignees": list(assignees),
                "labels": list(labels),
                "data": Jsonb(issue.to_dict()),
            },
            parent=f"repository {repository_owner}/{repository_name}",
        )

    def save_issue_comment(
        self,
        repository_owner: str,
        repository_name: str,
        issue_number: int,
        comment: IssueComment,
    ) -> None:
        self._write_child(
            "save_issue_comment",
            _SAVE_ISSUE_COMMENT,
            {
                "owner": repository_owner,
                "name": repository_name,
                "number": issue_number,
                "id": comment.id,
                "data": Jsonb(comment.to_dict()),
            },
            parent=f"issue {repository_owner}/{repository_name}#{issue_number}",
        )

    def save_pull_request(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request: PullRequest,
        assignees: Sequence[str],
        labels: Sequence[str],
    ) -> None:
        self._write_child(
            "save_pull_request",
            _SAVE_PULL_REQUEST,
            {
                "owner": repository_owner,
                "name": repository_name,
                "number": pull_request.number,
                "id": pull_request.id,
                "assignees": list(assignees),
                "labels": list(labels),
                "data": Jsonb(pull_request.to_dict()),
            },
            parent=f"repository {repository_owner}/{repository_name}",
        )

    def save_pull_request_comment(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        comment: IssueComment,
    ) -> None:
        self._write_child(
            "save_pull_request_comment",
            _SAVE_PULL_REQUEST_COMMENT,
            {
                "owner": repository_owner,
                "name": repository_name,
                "number": pull_request_number,
                "id": comment.id,
                "data": Jsonb(comment.to_dict()),
            },
            parent=f"pull request {repository_owner}/{repository_name}#{pull_request_number}",
        )

    def save_pull_request_review(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        review: PullRequestReview,
    ) -> None:
        self._write_child(
            "save_pull_request_review",
            _SAVE_PULL_REQUEST_REVIEW,
            {
                "owner": repository_owner,
                "name": repository_name,
                "number": pull_request_number,
                "review_id": review.database_id,
                "id": review.id,
                "data": Jsonb(review.to_dict()),
            },
            parent=f"pull request {repository_owner}/{repository_name}#{pull_request_number}",
        )

    def save_pull_request_review_comment(
        self,
        repository_owner: str,
        repository_name: str,
        pull_request_number: int,
        pull_request_review_id: int,
        comment: PullRequestReviewComment,
    ) -> None:
        self._write_child(
            "save_pull_request_review_comment",
            _SAVE_PULL_REQUEST_REVIEW_COMMENT,
            {
                "owner": repository_owner,
                "name": repository_name,
                "number": pull_request_number,
                "review_id": pull_request_review_id,
                "id": comment.id,
                "data": Jsonb(comment.to_dict()),
            },
            parent=(
                f"review {pull_request_review_id} of"
                f" {repository_owner}/{repository_name}#{pull_request_number}"
            ),
        )

    # Generations

    def set_active_version(self, version: int) -> None:
        with self._connect() as conn, _storage_errors("set_active_version"):
            with conn.transaction(), conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT EXISTS (SELECT 1 FROM repositories_versioned WHERE version = %(v)s)
                        OR EXISTS (SELECT 1 FROM organizations_versioned WHERE version = %(v)s);
                    """,
                    {"v": version},
                )
                row = cur.fetchone()
                if row is None or not row[0]:
                    raise NotFoundError(f"version {version} has no committed data")

                cur.execute(
                    "UPDATE snapshot_state SET active_version = %s WHERE singleton;",
                    (version,),
                )
                if cur.rowcount == 0:
                    raise InvalidStateError("snapshot_state is missing; run migrations first.")
        logger.info("active version set to %d", version)

    def cleanup(self, current_version: int) -> None:
        with self._connect() as conn, _storage_errors("cleanup"):
            with conn.transaction(), conn.cursor() as cur:
                # Row lock serializes with set_active_version().
                cur.execute(
                    "SELECT active_version FROM snapshot_state WHERE singleton FOR UPDATE;"
                )
                row = cur.fetchone()
                active = row[0] if row is not None else None
                if active is not None and active != current_version:
                    logger.warning(
                        "cleanup(%d) keeps active version %d as well", current_version, active
                    )

                deleted = 0
                for table in _VERSIONED_TABLES:
                    cur.execute(
                        sql.SQL(
                            "DELETE FROM {} WHERE version <> %s AND version IS DISTINCT FROM %s;"
                        ).format(sql.Identifier(table)),
                        (current_version, active),
                    )
                    deleted += max(cur.rowcount, 0)
        logger.info("cleanup kept version %d, deleted %d rows", current_version, deleted)

    # Readers

    def active_version(self) -> int | None:
        with self._connect() as conn, _storage_errors("active_version"), conn.cursor() as cur:
            cur.execute("SELECT active_version FROM snapshot_state WHERE singleton;")
            row = cur.fetchone()
            return row[0] if row is not None else None

    def versions(self) -> list[int]:
        with self._connect() as conn, _storage_errors("versions"), conn.cursor() as cur:
            cur.execute(
                """
                SELECT version FROM repositories_versioned
                UNION
                SELECT version FROM organizations_versioned
                ORDER BY 1;
                """
            )
            return [row[0] for row in cur.fetchall()]

    def load_repository(
        self, owner: str, name: str, *, version: int | None = None
    ) -> dict[str, Any] | None:
        """
        Read one repository snapshot as nested dicts.

        Defaults to the active version. The whole read runs in one
        REPEATABLE READ transaction, so a concurrent `set_active_version`
        yields either the old or the new generation, never both.
        """
        conn = self._connect()
        try:
            conn.isolation_level = psycopg.IsolationLevel.REPEATABLE_READ
            with _storage_errors("load_repository"), conn.transaction():
                with conn.cursor() as cur:
                    if version is None:
                        cur.execute(
                            "SELECT active_version FROM snapshot_state WHERE singleton;"
                        )
                        row = cur.fetchone()
                        version = row[0] if row is not None else None
                        if version is None:
                            return None
                    return _read_repository(cur, owner, name, version)
        finally:
            conn.close()

    def load_organization(
        self, login: str, *, version: int | None = None
    ) -> dict[str, Any] | None:
        conn = self._connect()
        try:
            conn.isolation_level = psycopg.IsolationLevel.REPEATABLE_READ
            with _storage_errors("load_organization"), conn.transaction():
                with conn.cursor() as cur:
                    if version is None:
                        cur.execute(
                            "SELECT active_version FROM snapshot_state WHERE singleton;"
                        )
                        row = cur.fetchone()
                        version = row[0] if row is not None else None
                        if version is None:
                            return None
                    cur.execute(
                        "SELECT data FROM organizations_versioned WHERE version = %s AND login = %s;",
                        (version, login),
                    )
                    row = cur.fetchone()
                    if row is None:
                        return None
                    cur.execute(
                        """
                        SELECT data FROM users_versioned
                        WHERE version = %s AND organization_login = %s
                        ORDER BY login;
                        """,
                        (version, login),
                    )
                    return {
                        "version": version,
                        "organization": row[0],
                        "members": [r[0] for r in cur.fetchall()],
                    }
        finally:
            conn.close()


def _read_repository(
    cur: psycopg.Cursor[Any], owner: str, name: str, version: int
) -> dict[str, Any] | None:
    key = {"v": version, "owner": owner, "name": name}
    cur.execute(
        """
        SELECT data, topics FROM repositories_versioned
        WHERE version = %(v)s AND owner = %(owner)s AND name = %(name)s;
        """,
        key,
    )
    row = cur.fetchone()
    if row is None:
        return None
    snapshot: dict[str, Any] = {
        "version": version,
        "repository": row[0],
        "topics": list(row[1]),
        "issues": [],
        "pull_requests": [],
    }

    cur.execute(
        """
        SELECT number, data, assignees, labels FROM issues_versioned
        WHERE version = %(v)s AND repository_owner = %(owner)s AND repository_name = %(name)s
        ORDER BY number;
        """,
        key,
    )
    issues = {
        number: {"issue": data, "assignees": list(a), "labels": list(lb), "comments": []}
        for number, data, a, lb in cur.fetchall()
    }
    cur.execute(
        """
        SELECT issue_number, data FROM issue_comments_versioned
        WHERE version = %(v)s AND repository_owner = %(owner)s AND repository_name = %(name)s
        ORDER BY seq;
        """,
        key,
    )
    for number, data in cur.fetchall():
        issues[number]["comments"].append(data)
    snapshot["issues"] = list(issues.values())

    cur.execute(
        """
        SELECT number, data, assignees, labels FROM pull_requests_versioned
        WHERE version = %(v)s AND repository_owner = %(owner)s AND repository_name = %(name)s
        ORDER BY number;
        """,
        key,
    )
    prs = {
        number: {
            "pull_request": data,
            "assignees": list(a),
            "labels": list(lb),
            "comments": [],
            "reviews": {},
        }
        for number, data, a, lb in cur.fetchall()
    }
    cur.execute(
        """
        SELECT pull_request_number, data FROM pull_request_comments_versioned
        WHERE version = %(v)s AND repository_owner = %(owner)s AND repository_name = %(name)s
        ORDER BY seq;
        """,
        key,
    )
    for number, data in cur.fetchall():
        prs[number]["comments"].append(data)
    cur.execute(
        """
        SELECT pull_request_number, review_id, data FROM pull_request_reviews_versioned
        WHERE version = %(v)s AND repository_owner = %(owner)s AND repository_name = %(name)s
        ORDER BY seq;
        """,
        key,
    )
    for number, review_id, data in cur.fetchall():
        prs[number]["reviews"][review_id] = {"review": data, "comments": []}
    cur.execute(
        """
        SELECT pull_request_number, review_id, data FROM pull_request_review_comments_versioned
        WHERE version = %(v)s AND repository_owner = %(owner)s AND repository_name = %(name)s
        ORDER BY seq;
        """,
        key,
    )
    for number, review_id, data in cur.fetchall():
        prs[number]["reviews"][review_id]["comments"].append(data)

    for pr in prs.values():
        pr["reviews"] = list(pr["reviews"].values())
    snapshot["pull_requests"] = list(prs.values())
    return snapshot
