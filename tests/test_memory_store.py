from __future__ import annotations

import unittest

from ghsnapshot.store.base import NotFoundError
from ghsnapshot.store.memory import MemoryStore
from tests.helpers.fakes import (
    make_comment,
    make_issue,
    make_organization,
    make_pull_request,
    make_repository,
    make_review,
    make_review_comment,
    make_user,
)


class TestMemoryStore(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryStore()
        self.store.save_repository(make_repository(), ["python"])

    def test_repository_is_indexed_by_owner_and_name(self) -> None:
        record = self.store.get_repository("acme", "widget")
        self.assertEqual(record.topics, ["python"])
        self.assertEqual(record.prs, {})
        self.assertIs(self.store.repos["acme"]["widget"], record)

    def test_missing_repository(self) -> None:
        with self.assertRaises(NotFoundError):
            self.store.get_repository("acme", "nope")

    def test_pull_request_tree(self) -> None:
        pr = make_pull_request(42)
        self.store.save_pull_request("acme", "widget", pr, ["alice"], ["bug"])
        self.store.save_pull_request_comment("acme", "widget", 42, make_comment("c1"))
        self.store.save_pull_request_review("acme", "widget", 42, make_review(9))
        self.store.save_pull_request_review_comment(
            "acme", "widget", 42, 9, make_review_comment("r1")
        )

        record = self.store.get_repository("acme", "widget").prs[42]
        self.assertIs(record.pull_request, pr)
        self.assertEqual(record.assignees, ["alice"])
        self.assertEqual(record.labels, ["bug"])
        self.assertEqual([c.id for c in record.comments], ["c1"])
        self.assertEqual([c.id for c in record.reviews[9].comments], ["r1"])

    def test_pull_request_for_unknown_repository(self) -> None:
        with self.assertRaises(NotFoundError):
            self.store.save_pull_request("acme", "other", make_pull_request(1), [], [])

    def test_comment_for_unsaved_pull_request(self) -> None:
        with self.assertRaisesRegex(NotFoundError, "#7"):
            self.store.save_pull_request_comment("acme", "widget", 7, make_comment("c"))
        self.assertEqual(self.store.get_repository("acme", "widget").prs, {})

    def test_review_comment_for_unsaved_review(self) -> None:
        self.store.save_pull_request("acme", "widget", make_pull_request(1), [], [])
        with self.assertRaisesRegex(NotFoundError, "review 5"):
            self.store.save_pull_request_review_comment(
                "acme", "widget", 1, 5, make_review_comment("r")
            )

    def test_saving_repository_again_resets_it(self) -> None:
        self.store.save_pull_request("acme", "widget", make_pull_request(1), [], [])
        self.store.save_repository(make_repository(), [])
        self.assertEqual(self.store.get_repository("acme", "widget").prs, {})


def test_issue_organization_and_user_saves_are_log_only() -> None:
    store = MemoryStore()
    store.save_organization(make_organization())
    store.save_user("acme", make_user("alice"))
    # Issues are accepted even without a stored repository.
    store.save_issue("acme", "widget", make_issue(1), [], [])
    store.save_issue_comment("acme", "widget", 1, make_comment("c"))

    assert store.repos == {}


def test_transaction_calls_are_no_ops() -> None:
    store = MemoryStore()
    store.set_version(3)
    store.begin()
    store.save_repository(make_repository(), [])
    store.rollback()
    store.set_active_version(3)
    store.cleanup(3)

    assert "widget" in store.repos["acme"]
