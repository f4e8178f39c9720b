from __future__ import annotations

import json
import unittest

import httpx
import pytest

from ghsnapshot.bridge.bitbucket import (
    MAX_COMMENT_LENGTH,
    BitbucketApiError,
    BitbucketServerClient,
    format_comment,
    migrate_repository,
)
from ghsnapshot.store.base import trim
from ghsnapshot.store.memory import MemoryStore
from tests.helpers.fakes import (
    make_comment,
    make_pull_request,
    make_repository,
    make_review,
    make_review_comment,
)


class _FakeBitbucket:
    """Records requests and hands out increasing ids."""

    def __init__(
        self, *, fail_for_title: str | None = None, garble_for_title: str | None = None
    ) -> None:
        self.requests: list[tuple[str, str, dict]] = []
        self._next_id = 100
        self._fail_for_title = fail_for_title
        self._garble_for_title = garble_for_title

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.method, request.url.path, body))
        if self._fail_for_title and body.get("title") == self._fail_for_title:
            return httpx.Response(409, json={"errors": [{"message": "duplicate"}]})
        if self._garble_for_title and body.get("title") == self._garble_for_title:
            return httpx.Response(201, text="<html>proxy ok</html>")
        self._next_id += 1
        return httpx.Response(201, json={"id": self._next_id})


def _client(fake: _FakeBitbucket) -> BitbucketServerClient:
    return BitbucketServerClient(
        "http://bitbucket.local:7990/",
        user="johnny",
        password="secret",
        transport=httpx.MockTransport(fake),
    )


def _store() -> MemoryStore:
    store = MemoryStore()
    store.save_repository(make_repository(), [])
    for number, state in ((3, "OPEN"), (1, "OPEN"), (2, "MERGED")):
        store.save_pull_request("acme", "widget", make_pull_request(number, state=state), [], [])
    store.save_pull_request_comment("acme", "widget", 1, make_comment("c1", body="hello"))
    store.save_pull_request_review("acme", "widget", 1, make_review(9))
    store.save_pull_request_review_comment("acme", "widget", 1, 9, make_review_comment("r1"))
    return store


PR_PATH = "/rest/api/1.0/projects/JOH/repos/widget/pull-requests"


class TestMigrateRepository(unittest.TestCase):
    def test_open_pull_requests_in_ascending_order(self) -> None:
        fake = _FakeBitbucket()
        with _client(fake) as client:
            report = migrate_repository(_store(), "acme", "widget", client, project_key="JOH")

        self.assertEqual(report.migrated, [1, 3])
        self.assertEqual(report.skipped, [2])
        self.assertEqual(report.failed, [])

        paths = [path for _method, path, _body in fake.requests]
        self.assertEqual(
            paths,
            [
                PR_PATH,
                f"{PR_PATH}/101/comments",
                f"{PR_PATH}/101/comments",
                f"{PR_PATH}/101/comments",
                PR_PATH,
            ],
        )

    def test_pull_request_payload(self) -> None:
        fake = _FakeBitbucket()
        with _client(fake) as client:
            migrate_repository(_store(), "acme", "widget", client, project_key="JOH")

        _method, _path, body = fake.requests[0]
        self.assertEqual(body["title"], "Pull request 1")
        self.assertEqual(body["description"], "Body of 1")
        self.assertEqual(body["fromRef"]["id"], "feature-1")
        self.assertEqual(body["toRef"]["id"], "main")
        self.assertEqual(
            body["toRef"]["repository"], {"slug": "widget", "project": {"key": "JOH"}}
        )
        self.assertEqual(body["reviewers"], [{"user": {"name": "johnny"}}])

    def test_review_comments_reply_to_review(self) -> None:
        fake = _FakeBitbucket()
        with _client(fake) as client:
            migrate_repository(_store(), "acme", "widget", client, project_key="JOH")

        comment, review, reply = (body for _m, _p, body in fake.requests[1:4])
        self.assertIn("hello", comment["text"])
        self.assertNotIn("parent", comment)
        self.assertIn("(COMMENTED)", review["text"])
        self.assertNotIn("parent", review)
        self.assertEqual(reply["parent"], {"id": 103})
        self.assertIn("src/app.py:3", reply["text"])

    def test_failed_pull_request_does_not_stop_the_loop(self) -> None:
        fake = _FakeBitbucket(fail_for_title="Pull request 1")
        with _client(fake) as client:
            report = migrate_repository(_store(), "acme", "widget", client, project_key="JOH")

        self.assertEqual(report.failed, [1])
        self.assertEqual(report.migrated, [3])

    def test_unreadable_success_body_fails_only_that_pull_request(self) -> None:
        fake = _FakeBitbucket(garble_for_title="Pull request 1")
        with _client(fake) as client:
            report = migrate_repository(_store(), "acme", "widget", client, project_key="JOH")

        self.assertEqual(report.failed, [1])
        self.assertEqual(report.migrated, [3])
        self.assertEqual(fake.requests[-1][2]["title"], "Pull request 3")


def test_basic_auth_header_is_sent() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": 7})

    client = BitbucketServerClient(
        "http://bb", user="u", password="p", transport=httpx.MockTransport(handler)
    )
    comment_id = client.create_pull_request_comment("K", "s", 5, "hi", parent_id=2)
    client.close()

    assert comment_id == 7
    assert seen[0].headers["Authorization"].startswith("Basic ")
    assert seen[0].url.path == "/rest/api/1.0/projects/K/repos/s/pull-requests/5/comments"


def test_error_status_raises() -> None:
    client = BitbucketServerClient(
        "http://bb",
        user="u",
        password="p",
        transport=httpx.MockTransport(lambda request: httpx.Response(400, text="nope")),
    )

    with client, pytest.raises(BitbucketApiError, match="nope") as info:
        client.create_pull_request(
            "K", "s", title="t", description="", from_branch="a", to_branch="b"
        )

    assert info.value.status == 400


def test_texts_are_trimmed_to_1000_characters() -> None:
    assert trim("a" * 1000, MAX_COMMENT_LENGTH) == "a" * 1000
    trimmed = trim("a" * 1001, MAX_COMMENT_LENGTH)
    assert len(trimmed) == 1002
    assert trimmed.endswith("...")
    assert len(format_comment(make_comment("c", body="b" * 5000))) == 1002


def test_created_response_without_id_raises() -> None:
    client = BitbucketServerClient(
        "http://bb",
        user="u",
        password="p",
        transport=httpx.MockTransport(lambda request: httpx.Response(201, json={"ok": True})),
    )

    with client, pytest.raises(BitbucketApiError, match="no usable id") as info:
        client.create_pull_request_comment("K", "s", 5, "hi")

    assert info.value.status == 201
