from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")


def _expect_dict(value: Any, *, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise TypeError(f"{where} must be an object")
    return value


def _expect_list(value: Any, *, where: str) -> list[Any]:
    if not isinstance(value, list):
        raise TypeError(f"{where} must be an array")
    return value


def _expect_str(value: Any, *, where: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{where} must be a string")
    return value


def _expect_int(value: Any, *, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{where} must be an integer")
    return value


def _expect_optional_str(value: Any, *, where: str) -> str | None:
    if value is None:
        return None
    return _expect_str(value, where=where)


def _expect_optional_int(value: Any, *, where: str) -> int | None:
    if value is None:
        return None
    return _expect_int(value, where=where)


def _bool(value: Any) -> bool:
    return bool(value) if value is not None else False


def _login(value: Any, *, where: str) -> str | None:
    # Deleted accounts come back as `null` actors.
    if value is None:
        return None
    actor = _expect_dict(value, where=where)
    return _expect_optional_str(actor.get("login"), where=f"{where}.login")


def _nested_name(value: Any, *, where: str) -> str | None:
    if value is None:
        return None
    return _expect_optional_str(
        _expect_dict(value, where=where).get("name"), where=f"{where}.name"
    )


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    """One page of a connection, in source order."""

    nodes: tuple[T, ...] = ()
    has_next_page: bool = False
    end_cursor: str | None = None

    @classmethod
    def from_graphql(
        cls, payload: Any, parse_node: Callable[[Any], T], *, where: str
    ) -> "Page[T]":
        conn = _expect_dict(payload, where=where)
        page_info = _expect_dict(conn.get("pageInfo"), where=f"{where}.pageInfo")
        raw_nodes = _expect_list(conn.get("nodes") or [], where=f"{where}.nodes")
        return cls(
            nodes=tuple(parse_node(node) for node in raw_nodes if node is not None),
            has_next_page=bool(page_info.get("hasNextPage")),
            end_cursor=_expect_optional_str(
                page_info.get("endCursor"), where=f"{where}.pageInfo.endCursor"
            ),
        )


def parse_login(node: Any) -> str:
    return _expect_str(_expect_dict(node, where="user").get("login"), where="user.login")


def parse_label_name(node: Any) -> str:
    return _expect_str(_expect_dict(node, where="label").get("name"), where="label.name")


def parse_topic_name(node: Any) -> str:
    topic = _expect_dict(_expect_dict(node, where="repositoryTopic").get("topic"), where="topic")
    return _expect_str(topic.get("name"), where="topic.name")


@dataclass(frozen=True, slots=True)
class IssueComment:
    id: str
    database_id: int | None
    author_login: str | None
    body: str
    created_at: str | None = None
    updated_at: str | None = None
    url: str | None = None

    @classmethod
    def from_graphql(cls, payload: Any) -> "IssueComment":
        raw = _expect_dict(payload, where="comment")
        return cls(
            id=_expect_str(raw.get("id"), where="comment.id"),
            database_id=_expect_optional_int(raw.get("databaseId"), where="comment.databaseId"),
            author_login=_login(raw.get("author"), where="comment.author"),
            body=_expect_optional_str(raw.get("body"), where="comment.body") or "",
            created_at=_expect_optional_str(raw.get("createdAt"), where="comment.createdAt"),
            updated_at=_expect_optional_str(raw.get("updatedAt"), where="comment.updatedAt"),
            url=_expect_optional_str(raw.get("url"), where="comment.url"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "database_id": self.database_id,
            "author_login": self.author_login,
            "body": self.body,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "url": self.url,
        }


@dataclass(frozen=True, slots=True)
class PullRequestReviewComment:
    id: str
    database_id: int | None
    author_login: str | None
    body: str
    path: str | None = None
    position: int | None = None
    original_position: int | None = None
    diff_hunk: str | None = None
    commit_oid: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    url: str | None = None

    @classmethod
    def from_graphql(cls, payload: Any) -> "PullRequestReviewComment":
        raw = _expect_dict(payload, where="reviewComment")
        commit = raw.get("commit")
        commit_oid = None
        if commit is not None:
            commit_oid = _expect_optional_str(
                _expect_dict(commit, where="reviewComment.commit").get("oid"),
                where="reviewComment.commit.oid",
            )
        return cls(
            id=_expect_str(raw.get("id"), where="reviewComment.id"),
            database_id=_expect_optional_int(
                raw.get("databaseId"), where="reviewComment.databaseId"
            ),
            author_login=_login(raw.get("author"), where="reviewComment.author"),
            body=_expect_optional_str(raw.get("body"), where="reviewComment.body") or "",
            path=_expect_optional_str(raw.get("path"), where="reviewComment.path"),
            position=_expect_optional_int(raw.get("position"), where="reviewComment.position"),
            original_position=_expect_optional_int(
                raw.get("originalPosition"), where="reviewComment.originalPosition"
            ),
            diff_hunk=_expect_optional_str(raw.get("diffHunk"), where="reviewComment.diffHunk"),
            commit_oid=commit_oid,
            created_at=_expect_optional_str(raw.get("createdAt"), where="reviewComment.createdAt"),
            updated_at=_expect_optional_str(raw.get("updatedAt"), where="reviewComment.updatedAt"),
            url=_expect_optional_str(raw.get("url"), where="reviewComment.url"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "database_id": self.database_id,
            "author_login": self.author_login,
            "body": self.body,
            "path": self.path,
            "position": self.position,
            "original_position": self.original_position,
            "diff_hunk": self.diff_hunk,
            "commit_oid": self.commit_oid,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "url": self.url,
        }


@dataclass(frozen=True, slots=True)
class PullRequestReview:
    id: str
    database_id: int
    author_login: str | None
    body: str
    state: str
    submitted_at: str | None = None
    url: str | None = None
    comments: Page[PullRequestReviewComment] = field(default_factory=Page)

    @classmethod
    def from_graphql(cls, payload: Any) -> "PullRequestReview":
        raw = _expect_dict(payload, where="review")
        return cls(
            id=_expect_str(raw.get("id"), where="review.id"),
            database_id=_expect_int(raw.get("databaseId"), where="review.databaseId"),
            author_login=_login(raw.get("author"), where="review.author"),
            body=_expect_optional_str(raw.get("body"), where="review.body") or "",
            state=_expect_str(raw.get("state"), where="review.state"),
            submitted_at=_expect_optional_str(raw.get("submittedAt"), where="review.submittedAt"),
            url=_expect_optional_str(raw.get("url"), where="review.url"),
            comments=_optional_page(
                raw.get("comments"), PullRequestReviewComment.from_graphql, where="review.comments"
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "database_id": self.database_id,
            "author_login": self.author_login,
            "body": self.body,
            "state": self.state,
            "submitted_at": self.submitted_at,
            "url": self.url,
        }


def _optional_page(payload: Any, parse_node: Callable[[Any], T], *, where: str) -> Page[T]:
    # Page queries select only the connection being paginated; the
    # surrounding entity fields are absent there.
    if payload is None:
        return Page()
    return Page.from_graphql(payload, parse_node, where=where)


@dataclass(frozen=True, slots=True)
class Issue:
    id: str
    database_id: int | None
    number: int
    title: str
    body: str
    state: str
    author_login: str | None = None
    locked: bool = False
    created_at: str | None = None
    updated_at: str | None = None
    closed_at: str | None = None
    url: str | None = None
    assignees: Page[str] = field(default_factory=Page)
    labels: Page[str] = field(default_factory=Page)
    comments: Page[IssueComment] = field(default_factory=Page)

    @classmethod
    def from_graphql(cls, payload: Any) -> "Issue":
        raw = _expect_dict(payload, where="issue")
        return cls(**_issue_like_fields(raw, where="issue"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "database_id": self.database_id,
            "number": self.number,
            "title": self.title,
            "body": self.body,
            "state": self.state,
            "author_login": self.author_login,
            "locked": self.locked,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "closed_at": self.closed_at,
            "url": self.url,
        }


def _issue_like_fields(raw: dict[str, Any], *, where: str) -> dict[str, Any]:
    return {
        "id": _expect_str(raw.get("id"), where=f"{where}.id"),
        "database_id": _expect_optional_int(raw.get("databaseId"), where=f"{where}.databaseId"),
        "number": _expect_int(raw.get("number"), where=f"{where}.number"),
        "title": _expect_optional_str(raw.get("title"), where=f"{where}.title") or "",
        "body": _expect_optional_str(raw.get("body"), where=f"{where}.body") or "",
        "state": _expect_str(raw.get("state"), where=f"{where}.state"),
        "author_login": _login(raw.get("author"), where=f"{where}.author"),
        "locked": _bool(raw.get("locked")),
        "created_at": _expect_optional_str(raw.get("createdAt"), where=f"{where}.createdAt"),
        "updated_at": _expect_optional_str(raw.get("updatedAt"), where=f"{where}.updatedAt"),
        "closed_at": _expect_optional_str(raw.get("closedAt"), where=f"{where}.closedAt"),
        "url": _expect_optional_str(raw.get("url"), where=f"{where}.url"),
        "assignees": _optional_page(raw.get("assignees"), parse_login, where=f"{where}.assignees"),
        "labels": _optional_page(raw.get("labels"), parse_label_name, where=f"{where}.labels"),
        "comments": _optional_page(
            raw.get("comments"), IssueComment.from_graphql, where=f"{where}.comments"
        ),
    }


@dataclass(frozen=True, slots=True)
class PullRequest:
    id: str
    database_id: int | None
    number: int
    title: str
    body: str
    state: str
    author_login: str | None = None
    locked: bool = False
    created_at: str | None = None
    updated_at: str | None = None
    closed_at: str | None = None
    url: str | None = None
    base_ref_name: str | None = None
    head_ref_name: str | None = None
    is_draft: bool = False
    merged: bool = False
    merged_at: str | None = None
    additions: int | None = None
    deletions: int | None = None
    changed_files: int | None = None
    assignees: Page[str] = field(default_factory=Page)
    labels: Page[str] = field(default_factory=Page)
    comments: Page[IssueComment] = field(default_factory=Page)
    reviews: Page[PullRequestReview] = field(default_factory=Page)

    @classmethod
    def from_graphql(cls, payload: Any) -> "PullRequest":
        raw = _expect_dict(payload, where="pullRequest")
        where = "pullRequest"
        return cls(
            **_issue_like_fields(raw, where=where),
            base_ref_name=_expect_optional_str(raw.get("baseRefName"), where=f"{where}.baseRefName"),
            head_ref_name=_expect_optional_str(raw.get("headRefName"), where=f"{where}.headRefName"),
            is_draft=_bool(raw.get("isDraft")),
            merged=_bool(raw.get("merged")),
            merged_at=_expect_optional_str(raw.get("mergedAt"), where=f"{where}.mergedAt"),
            additions=_expect_optional_int(raw.get("additions"), where=f"{where}.additions"),
            deletions=_expect_optional_int(raw.get("deletions"), where=f"{where}.deletions"),
            changed_files=_expect_optional_int(
                raw.get("changedFiles"), where=f"{where}.changedFiles"
            ),
            reviews=_optional_page(
                raw.get("reviews"), PullRequestReview.from_graphql, where=f"{where}.reviews"
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "database_id": self.database_id,
            "number": self.number,
            "title": self.title,
            "body": self.body,
            "state": self.state,
            "author_login": self.author_login,
            "locked": self.locked,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "closed_at": self.closed_at,
            "url": self.url,
            "base_ref_name": self.base_ref_name,
            "head_ref_name": self.head_ref_name,
            "is_draft": self.is_draft,
            "merged": self.merged,
            "merged_at": self.merged_at,
            "additions": self.additions,
            "deletions": self.deletions,
            "changed_files": self.changed_files,
        }


@dataclass(frozen=True, slots=True)
class Repository:
    id: str
    database_id: int | None
    owner_login: str
    name: str
    name_with_owner: str
    description: str | None = None
    url: str | None = None
    homepage_url: str | None = None
    primary_language: str | None = None
    default_branch: str | None = None
    is_fork: bool = False
    is_archived: bool = False
    is_private: bool = False
    stargazer_count: int | None = None
    fork_count: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    pushed_at: str | None = None
    topics: Page[str] = field(default_factory=Page)
    issues: Page[Issue] = field(default_factory=Page)
    pull_requests: Page[PullRequest] = field(default_factory=Page)

    @classmethod
    def from_graphql(cls, payload: Any) -> "Repository":
        raw = _expect_dict(payload, where="repository")
        owner = _expect_dict(raw.get("owner"), where="repository.owner")
        return cls(
            id=_expect_str(raw.get("id"), where="repository.id"),
            database_id=_expect_optional_int(raw.get("databaseId"), where="repository.databaseId"),
            owner_login=_expect_str(owner.get("login"), where="repository.owner.login"),
            name=_expect_str(raw.get("name"), where="repository.name"),
            name_with_owner=_expect_str(raw.get("nameWithOwner"), where="repository.nameWithOwner"),
            description=_expect_optional_str(raw.get("description"), where="repository.description"),
            url=_expect_optional_str(raw.get("url"), where="repository.url"),
            homepage_url=_expect_optional_str(raw.get("homepageUrl"), where="repository.homepageUrl"),
            primary_language=_nested_name(
                raw.get("primaryLanguage"), where="repository.primaryLanguage"
            ),
            default_branch=_nested_name(
                raw.get("defaultBranchRef"), where="repository.defaultBranchRef"
            ),
            is_fork=_bool(raw.get("isFork")),
            is_archived=_bool(raw.get("isArchived")),
            is_private=_bool(raw.get("isPrivate")),
            stargazer_count=_expect_optional_int(
                raw.get("stargazerCount"), where="repository.stargazerCount"
            ),
            fork_count=_expect_optional_int(raw.get("forkCount"), where="repository.forkCount"),
            created_at=_expect_optional_str(raw.get("createdAt"), where="repository.createdAt"),
            updated_at=_expect_optional_str(raw.get("updatedAt"), where="repository.updatedAt"),
            pushed_at=_expect_optional_str(raw.get("pushedAt"), where="repository.pushedAt"),
            topics=_optional_page(
                raw.get("repositoryTopics"), parse_topic_name, where="repository.repositoryTopics"
            ),
            issues=_optional_page(raw.get("issues"), Issue.from_graphql, where="repository.issues"),
            pull_requests=_optional_page(
                raw.get("pullRequests"), PullRequest.from_graphql, where="repository.pullRequests"
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "database_id": self.database_id,
            "owner_login": self.owner_login,
            "name": self.name,
            "name_with_owner": self.name_with_owner,
            "description": self.description,
            "url": self.url,
            "homepage_url": self.homepage_url,
            "primary_language": self.primary_language,
            "default_branch": self.default_branch,
            "is_fork": self.is_fork,
            "is_archived": self.is_archived,
            "is_private": self.is_private,
            "stargazer_count": self.stargazer_count,
            "fork_count": self.fork_count,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "pushed_at": self.pushed_at,
        }


@dataclass(frozen=True, slots=True)
class User:
    id: str
    database_id: int | None
    login: str
    name: str | None = None
    email: str | None = None
    company: str | None = None
    location: str | None = None
    bio: str | None = None
    url: str | None = None
    created_at: str | None = None

    @classmethod
    def from_graphql(cls, payload: Any) -> "User":
        raw = _expect_dict(payload, where="user")
        return cls(
            id=_expect_str(raw.get("id"), where="user.id"),
            database_id=_expect_optional_int(raw.get("databaseId"), where="user.databaseId"),
            login=_expect_str(raw.get("login"), where="user.login"),
            name=_expect_optional_str(raw.get("name"), where="user.name"),
            # GitHub returns "" for hidden emails.
            email=_expect_optional_str(raw.get("email"), where="user.email") or None,
            company=_expect_optional_str(raw.get("company"), where="user.company"),
            location=_expect_optional_str(raw.get("location"), where="user.location"),
            bio=_expect_optional_str(raw.get("bio"), where="user.bio"),
            url=_expect_optional_str(raw.get("url"), where="user.url"),
            created_at=_expect_optional_str(raw.get("createdAt"), where="user.createdAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "database_id": self.database_id,
            "login": self.login,
            "name": self.name,
            "email": self.email,
            "company": self.company,
            "location": self.location,
            "bio": self.bio,
            "url": self.url,
            "created_at": self.created_at,
        }


@dataclass(frozen=True, slots=True)
class Organization:
    id: str
    database_id: int | None
    login: str
    name: str | None = None
    description: str | None = None
    email: str | None = None
    url: str | None = None
    created_at: str | None = None
    members: Page[User] = field(default_factory=Page)

    @classmethod
    def from_graphql(cls, payload: Any) -> "Organization":
        raw = _expect_dict(payload, where="organization")
        return cls(
            id=_expect_str(raw.get("id"), where="organization.id"),
            database_id=_expect_optional_int(
                raw.get("databaseId"), where="organization.databaseId"
            ),
            login=_expect_str(raw.get("login"), where="organization.login"),
            name=_expect_optional_str(raw.get("name"), where="organization.name"),
            description=_expect_optional_str(
                raw.get("description"), where="organization.description"
            ),
            email=_expect_optional_str(raw.get("email"), where="organization.email") or None,
            url=_expect_optional_str(raw.get("url"), where="organization.url"),
            created_at=_expect_optional_str(raw.get("createdAt"), where="organization.createdAt"),
            members=_optional_page(
                raw.get("membersWithRole"), User.from_graphql, where="organization.membersWithRole"
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "database_id": self.database_id,
            "login": self.login,
            "name": self.name,
            "description": self.description,
            "email": self.email,
            "url": self.url,
            "created_at": self.created_at,
        }
