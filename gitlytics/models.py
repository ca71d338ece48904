"""Immutable records built from GitHub REST payloads."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from gitlytics.errors import UpstreamError


def parse_timestamp(s: Optional[str]) -> Optional[dt.datetime]:
    if not s:
        return None
    try:
        return dt.datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None


def _require(payload: Mapping[str, Any], kind: str, *keys: str) -> None:
    if not isinstance(payload, Mapping):
        raise UpstreamError(f"Malformed {kind} payload from GitHub")
    missing = [k for k in keys if payload.get(k) is None]
    if missing:
        raise UpstreamError(f"Malformed {kind} payload from GitHub: missing {', '.join(missing)}")


def _required_timestamp(payload: Mapping[str, Any], kind: str, key: str) -> dt.datetime:
    value = parse_timestamp(payload.get(key))
    if value is None:
        raise UpstreamError(f"Malformed {kind} payload from GitHub: bad {key}")
    return value


@dataclass(frozen=True)
class GitHubUser:
    id: int
    login: str
    avatar_url: str
    html_url: str
    created_at: dt.datetime
    updated_at: dt.datetime
    name: Optional[str] = None
    bio: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    blog: Optional[str] = None
    email: Optional[str] = None
    type: str = "User"
    public_repos: int = 0
    public_gists: int = 0
    followers: int = 0
    following: int = 0

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "GitHubUser":
        _require(payload, "user", "id", "login")
        return cls(
            id=int(payload["id"]),
            login=payload["login"],
            avatar_url=payload.get("avatar_url") or "",
            html_url=payload.get("html_url") or "",
            created_at=_required_timestamp(payload, "user", "created_at"),
            updated_at=_required_timestamp(payload, "user", "updated_at"),
            name=payload.get("name"),
            bio=payload.get("bio"),
            company=payload.get("company"),
            location=payload.get("location"),
            blog=payload.get("blog") or None,
            email=payload.get("email"),
            type=payload.get("type") or "User",
            public_repos=int(payload.get("public_repos") or 0),
            public_gists=int(payload.get("public_gists") or 0),
            followers=int(payload.get("followers") or 0),
            following=int(payload.get("following") or 0),
        )


@dataclass(frozen=True)
class Repository:
    id: int
    name: str
    full_name: str
    created_at: dt.datetime
    updated_at: dt.datetime
    description: Optional[str] = None
    html_url: str = ""
    language: Optional[str] = None
    stargazers_count: int = 0
    watchers_count: int = 0
    forks_count: int = 0
    size: int = 0  # KB
    pushed_at: Optional[dt.datetime] = None
    private: bool = False
    fork: bool = False
    archived: bool = False
    topics: Tuple[str, ...] = ()

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Repository":
        _require(payload, "repository", "id", "name", "full_name")
        return cls(
            id=int(payload["id"]),
            name=payload["name"],
            full_name=payload["full_name"],
            created_at=_required_timestamp(payload, "repository", "created_at"),
            updated_at=_required_timestamp(payload, "repository", "updated_at"),
            description=payload.get("description"),
            html_url=payload.get("html_url") or "",
            language=payload.get("language"),
            stargazers_count=int(payload.get("stargazers_count") or 0),
            watchers_count=int(payload.get("watchers_count") or 0),
            forks_count=int(payload.get("forks_count") or 0),
            size=int(payload.get("size") or 0),
            pushed_at=parse_timestamp(payload.get("pushed_at")),
            private=bool(payload.get("private")),
            fork=bool(payload.get("fork")),
            archived=bool(payload.get("archived")),
            topics=tuple(payload.get("topics") or ()),
        )


@dataclass(frozen=True)
class Follower:
    """An entry of a followers or following list."""

    id: int
    login: str
    avatar_url: str = ""
    html_url: str = ""
    type: str = "User"

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Follower":
        _require(payload, "follower", "id", "login")
        return cls(
            id=int(payload["id"]),
            login=payload["login"],
            avatar_url=payload.get("avatar_url") or "",
            html_url=payload.get("html_url") or "",
            type=payload.get("type") or "User",
        )


@dataclass(frozen=True)
class Gist:
    id: str
    created_at: dt.datetime
    updated_at: dt.datetime
    description: Optional[str] = None
    public: bool = True
    html_url: str = ""
    files: Tuple[str, ...] = ()

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Gist":
        _require(payload, "gist", "id")
        return cls(
            id=str(payload["id"]),
            created_at=_required_timestamp(payload, "gist", "created_at"),
            updated_at=_required_timestamp(payload, "gist", "updated_at"),
            description=payload.get("description"),
            public=bool(payload.get("public", True)),
            html_url=payload.get("html_url") or "",
            files=tuple((payload.get("files") or {}).keys()),
        )


def _login(account: Any) -> Optional[str]:
    return account.get("login") if isinstance(account, Mapping) else None


@dataclass(frozen=True)
class Commit:
    sha: str
    authored_at: dt.datetime
    message: str = ""
    author_login: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Commit":
        _require(payload, "commit", "sha", "commit")
        inner = payload["commit"]
        if not isinstance(inner, Mapping):
            raise UpstreamError(f"Malformed commit payload from GitHub: bad commit on {payload['sha']}")
        author = inner.get("author") or {}
        if not isinstance(author, Mapping):
            author = {}
        authored_at = parse_timestamp(author.get("date"))
        if authored_at is None:
            raise UpstreamError(f"Malformed commit payload from GitHub: no author date on {payload['sha']}")
        return cls(
            sha=payload["sha"],
            authored_at=authored_at,
            message=inner.get("message") or "",
            author_login=_login(payload.get("author")),
        )


@dataclass(frozen=True)
class Quota:
    limit: int
    remaining: int
    reset: int  # epoch seconds
    used: int

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Quota":
        _require(payload, "rate limit", "limit", "remaining", "reset")
        return cls(
            limit=int(payload["limit"]),
            remaining=int(payload["remaining"]),
            reset=int(payload["reset"]),
            used=int(payload.get("used") or 0),
        )


@dataclass(frozen=True)
class RateLimit:
    """Informational quota snapshot; nothing gates requests on it."""

    core: Quota
    search: Quota

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "RateLimit":
        resources = payload
        if isinstance(payload, Mapping) and isinstance(payload.get("resources"), Mapping):
            resources = payload["resources"]
        _require(resources, "rate limit", "core", "search")
        return cls(core=Quota.from_api(resources["core"]), search=Quota.from_api(resources["search"]))


@dataclass(frozen=True)
class CommitStats:
    total_commits: int = 0
    commits_this_week: int = 0
    commits_this_month: int = 0
    commits_this_year: int = 0
    average_commits_per_day: float = 0.0
    most_productive_day: str = "N/A"
    most_productive_month: str = "N/A"
    last_commit_date: Optional[dt.datetime] = None
    repositories_sampled: int = 0
    repositories_skipped: Tuple[str, ...] = ()
    partial: bool = False


def to_jsonable(value: Any) -> Any:
    """Turn dataclass output (dicts, tuples, datetimes) into JSON-ready values."""
    if isinstance(value, dt.datetime):
        return value.isoformat().replace("+00:00", "Z")
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value
