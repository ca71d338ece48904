"""Derived statistics over fetched GitHub collections.

Everything here except ``fetch_user_commit_stats`` is a pure function of its
arguments. Time-dependent functions take ``now`` so callers and tests can pin
the anchor instant.
"""

from __future__ import annotations

import calendar
import datetime as dt
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from gitlytics.errors import GitHubAPIError, RateLimited
from gitlytics.models import Commit, CommitStats, Follower, Repository

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = list(calendar.day_name)  # Monday first, matching datetime.weekday()
MONTH_NAMES = list(calendar.month_name)[1:]

COMMIT_REPO_LIMIT = 20
COMMITS_PER_REPO = 500
COMMIT_LOOKBACK_DAYS = 365
TOP_LANGUAGES = 10

REPO_SORT_KEYS = {
    "stars": lambda r: r.stargazers_count,
    "forks": lambda r: r.forks_count,
    "updated": lambda r: r.updated_at,
    "created": lambda r: r.created_at,
}


def _now_utc() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _shift_months(d: dt.datetime, months: int) -> dt.datetime:
    """
    Move ``d`` by whole calendar months, clamping the day to the target
    month's length (31 March minus one month is the last day of February).
    """
    idx = d.month - 1 + months
    year = d.year + idx // 12
    month = idx % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return d.replace(year=year, month=month, day=day)


def _argmax(counts: Dict[str, int]) -> str:
    # max() keeps the first key reaching the top count, i.e. first encountered.
    if not counts:
        return "N/A"
    return max(counts.items(), key=lambda kv: kv[1])[0]


# -----------------------------
# Followers
# -----------------------------
@dataclass(frozen=True)
class FollowerInsights:
    not_following_back: Tuple[Follower, ...]
    not_followed_back: Tuple[Follower, ...]
    mutual: Tuple[Follower, ...]


def _dedupe(users: Iterable[Follower]) -> List[Follower]:
    seen = set()
    out = []
    for u in users:
        if u.id in seen:
            continue
        seen.add(u.id)
        out.append(u)
    return out


def follower_insights(followers: Iterable[Follower], following: Iterable[Follower]) -> FollowerInsights:
    """
    Partition followers/following by mutuality.

    ``not_following_back`` are followers the user does not follow,
    ``not_followed_back`` are followed users who do not follow back and
    ``mutual`` are followers the user also follows. Capped inputs give an
    approximate answer; labelling that is up to the caller.
    """
    followers = _dedupe(followers)
    following = _dedupe(following)
    follower_ids = {u.id for u in followers}
    following_ids = {u.id for u in following}
    return FollowerInsights(
        not_following_back=tuple(u for u in followers if u.id not in following_ids),
        not_followed_back=tuple(u for u in following if u.id not in follower_ids),
        mutual=tuple(u for u in followers if u.id in following_ids),
    )


def filter_users(users: Iterable[Follower], term: str) -> List[Follower]:
    term = (term or "").strip().lower()
    if not term:
        return list(users)
    return [u for u in users if term in u.login.lower()]


# -----------------------------
# Languages
# -----------------------------
@dataclass(frozen=True)
class LanguageShare:
    language: str
    repo_count: int
    size_kb: int
    percent: float


@dataclass(frozen=True)
class LanguageStats:
    ranking: Tuple[LanguageShare, ...]
    most_used: Optional[str]
    largest_by_size: Optional[str]
    repos_with_language: int


def language_stats(repositories: Iterable[Repository], top: int = TOP_LANGUAGES) -> LanguageStats:
    counts: Dict[str, int] = {}
    sizes: Dict[str, int] = {}
    for repo in repositories:
        lang = repo.language
        if not lang:
            continue
        counts[lang] = counts.get(lang, 0) + 1
        sizes[lang] = sizes.get(lang, 0) + int(repo.size or 0)

    # sorted() is stable, so equal counts keep encounter order.
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:top]
    shown = sum(n for _, n in ranked)
    ranking = tuple(
        LanguageShare(language=lang, repo_count=n, size_kb=sizes[lang], percent=round(100.0 * n / shown, 1))
        for lang, n in ranked
    )
    return LanguageStats(
        ranking=ranking,
        most_used=ranking[0].language if ranking else None,
        largest_by_size=_argmax(sizes) if sizes else None,
        repos_with_language=sum(counts.values()),
    )


# -----------------------------
# Repositories
# -----------------------------
@dataclass(frozen=True)
class RepositorySummary:
    repositories: int
    original_repos: int
    fork_repos: int
    archived_repos: int
    total_stars: int
    total_forks: int
    total_watchers: int
    total_size_kb: int


def summarize_repositories(repositories: Sequence[Repository]) -> RepositorySummary:
    forks = sum(1 for r in repositories if r.fork)
    return RepositorySummary(
        repositories=len(repositories),
        original_repos=len(repositories) - forks,
        fork_repos=forks,
        archived_repos=sum(1 for r in repositories if r.archived),
        total_stars=sum(r.stargazers_count for r in repositories),
        total_forks=sum(r.forks_count for r in repositories),
        total_watchers=sum(r.watchers_count for r in repositories),
        total_size_kb=sum(r.size for r in repositories),
    )


def sort_repositories(repositories: Iterable[Repository], sort_by: str = "stars", term: str = "") -> List[Repository]:
    """Filter by name/description substring, then order descending by ``sort_by``."""
    term = (term or "").strip().lower()
    repos = [
        r for r in repositories
        if not term or term in r.name.lower() or term in (r.description or "").lower()
    ]
    key = REPO_SORT_KEYS.get(sort_by)
    if key is None:
        return repos
    return sorted(repos, key=key, reverse=True)


def top_repositories(repositories: Iterable[Repository], n: int = 3) -> List[Repository]:
    return sorted(repositories, key=lambda r: r.stargazers_count, reverse=True)[:n]


# -----------------------------
# Commits
# -----------------------------
def compute_commit_stats(
    commits: Iterable[Commit],
    first_repo_created_at: Optional[dt.datetime],
    now: Optional[dt.datetime] = None,
) -> CommitStats:
    """
    Aggregate commit samples into cadence statistics.

    A commit belongs to a trailing window when its author date is at or after
    the window start, so a commit exactly 7 days old still counts for the
    week. Month and year windows are calendar shifts of ``now``.

    The daily average divides by the age of ``first_repo_created_at``; it is
    a stand-in for account age, not the profile's own creation date.
    """
    now = now or _now_utc()
    week_start = now - dt.timedelta(days=7)
    month_start = _shift_months(now, -1)
    year_start = _shift_months(now, -12)

    total = week = month = year = 0
    by_day: Dict[str, int] = {}
    by_month: Dict[str, int] = {}
    last: Optional[dt.datetime] = None

    for c in commits:
        when = c.authored_at
        total += 1
        if when >= week_start:
            week += 1
        if when >= month_start:
            month += 1
        if when >= year_start:
            year += 1
        day_name = WEEKDAY_NAMES[when.weekday()]
        month_name = MONTH_NAMES[when.month - 1]
        by_day[day_name] = by_day.get(day_name, 0) + 1
        by_month[month_name] = by_month.get(month_name, 0) + 1
        if last is None or when > last:
            last = when

    days = 1
    if first_repo_created_at is not None:
        days = max(1, (now - first_repo_created_at).days)

    return CommitStats(
        total_commits=total,
        commits_this_week=week,
        commits_this_month=month,
        commits_this_year=year,
        average_commits_per_day=total / days,
        most_productive_day=_argmax(by_day),
        most_productive_month=_argmax(by_month),
        last_commit_date=last,
    )


def fetch_user_commit_stats(
    client: Any,
    username: str,
    repositories: Sequence[Repository],
    now: Optional[dt.datetime] = None,
    repo_limit: int = COMMIT_REPO_LIMIT,
    per_repo: int = COMMITS_PER_REPO,
) -> CommitStats:
    """
    Sample the last year of commits from the user's most recently updated
    non-fork repositories, one repository at a time.

    A repository whose commits cannot be fetched is logged and skipped; the
    result lists it in ``repositories_skipped``. ``partial`` is set when the
    rate limit cut short the repository list or any commit history.
    """
    now = now or _now_utc()
    own = [r for r in repositories if not r.fork]
    recent = sorted(own, key=lambda r: r.updated_at, reverse=True)[:repo_limit]
    since = now - dt.timedelta(days=COMMIT_LOOKBACK_DAYS)

    commits: List[Commit] = []
    skipped: List[str] = []
    partial = bool(getattr(repositories, "partial", False))
    for repo in recent:
        try:
            batch = client.fetch_commits(repo.full_name, since, per_repo)
        except GitHubAPIError as e:
            logger.warning(f"Skipping commits for {repo.full_name}: {e}")
            skipped.append(repo.full_name)
            partial = partial or isinstance(e, RateLimited)
            continue
        if getattr(batch, "partial", False):
            partial = True
        commits.extend(batch)

    logger.info(
        f"Commit stats for {username}: {len(commits)} commits from "
        f"{len(recent) - len(skipped)}/{len(recent)} repositories"
        + (" (partial)" if partial else "")
    )
    first_created = repositories[0].created_at if repositories else None
    stats = compute_commit_stats(commits, first_created, now)
    return replace(
        stats,
        repositories_sampled=len(recent) - len(skipped),
        repositories_skipped=tuple(skipped),
        partial=partial,
    )
