"""GitHub REST client used by the dashboard.

Only the endpoints the dashboard needs are wrapped. Every call goes through
``GitHubClient._get``, which is the single place a credential is attached.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Optional

import requests

from gitlytics.errors import NotFound, RateLimited, UpstreamError
from gitlytics.models import Commit, Follower, GitHubUser, Gist, RateLimit, Repository
from gitlytics.pagination import MAX_PER_PAGE, Page, PagedList, fetch_all
from gitlytics.tokens import Credential, CredentialSource, TokenResolver

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
USER_AGENT = "Gitlytics-Dashboard"
RATE_LIMIT_MESSAGE = (
    "API rate limit exceeded. Please login with GitHub or add a GitHub token for higher limits."
)
SEARCH_KINDS = ("repositories", "users", "code", "issues", "commits", "topics")


def _iso(ts: dt.datetime) -> str:
    return ts.astimezone(dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class GitHubClient:
    def __init__(
        self,
        resolver: TokenResolver,
        base_url: str = GITHUB_API_BASE,
        session: Optional[requests.Session] = None,
        timeout: int = 20,
    ):
        self.resolver = resolver
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    # -----------------------------
    # HTTP
    # -----------------------------
    def _headers(self, credential: Credential) -> Dict[str, str]:
        h = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }
        if credential:
            h["Authorization"] = f"Bearer {credential.token}"
        return h

    def _get(self, endpoint: str, params: Optional[dict] = None, credential: Optional[Credential] = None) -> requests.Response:
        if credential is None:
            credential = self.resolver.resolve()
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"GET {endpoint} {params or ''}")
        try:
            resp = self.session.get(url, headers=self._headers(credential), params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamError(f"GitHub API request failed: {e}") from e

        if resp.status_code == 404:
            raise NotFound("User not found", 404)
        if resp.status_code == 403:
            raise RateLimited(RATE_LIMIT_MESSAGE, 403)
        if resp.status_code >= 300:
            raise UpstreamError(f"GitHub API error: {resp.reason}", resp.status_code)
        return resp

    @staticmethod
    def _json(resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError("GitHub API returned a malformed response", resp.status_code) from e

    def request(self, endpoint: str, params: Optional[dict] = None) -> Any:
        return self._json(self._get(endpoint, params))

    def get_page(self, endpoint: str, params: Optional[dict] = None) -> Page:
        resp = self._get(endpoint, params)
        data = self._json(resp)
        if not isinstance(data, list):
            raise UpstreamError(f"Expected a list from {endpoint}", resp.status_code)
        has_next = None
        if resp.headers.get("Link"):
            has_next = "next" in resp.links
        return Page(items=data, has_next=has_next)

    # -----------------------------
    # Endpoints
    # -----------------------------
    def fetch_user(self, username: str) -> GitHubUser:
        return GitHubUser.from_api(self.request(f"/users/{username}"))

    def fetch_authenticated_user(self, token: str) -> GitHubUser:
        """Fetch ``/user`` with an explicit token, bypassing the resolver."""
        credential = Credential(token=token, source=CredentialSource.USER_SESSION)
        return GitHubUser.from_api(self._json(self._get("/user", credential=credential)))

    def fetch_repositories(self, username: str) -> PagedList:
        return fetch_all(self, f"/users/{username}/repos?sort=updated").map(Repository.from_api)

    def fetch_followers(self, username: str, max_items: Optional[int] = None, start_page: int = 1) -> PagedList:
        return fetch_all(
            self, f"/users/{username}/followers", MAX_PER_PAGE, max_items, start_page
        ).map(Follower.from_api)

    def fetch_following(self, username: str, max_items: Optional[int] = None, start_page: int = 1) -> PagedList:
        return fetch_all(
            self, f"/users/{username}/following", MAX_PER_PAGE, max_items, start_page
        ).map(Follower.from_api)

    def fetch_starred(self, username: str) -> PagedList:
        return fetch_all(self, f"/users/{username}/starred").map(Repository.from_api)

    def fetch_gists(self, username: str) -> PagedList:
        return fetch_all(self, f"/users/{username}/gists").map(Gist.from_api)

    def fetch_commits(self, full_name: str, since: dt.datetime, max_items: Optional[int] = None) -> PagedList:
        return fetch_all(
            self, f"/repos/{full_name}/commits?since={_iso(since)}", MAX_PER_PAGE, max_items
        ).map(Commit.from_api)

    def fetch_rate_limit(self) -> RateLimit:
        return RateLimit.from_api(self.request("/rate_limit"))

    def search(self, kind: str, query: str, per_page: int = 20) -> Any:
        if kind not in SEARCH_KINDS:
            raise ValueError(f"Unsupported search type: {kind}")
        return self.request(f"/search/{kind}", params={"q": query, "per_page": per_page})
