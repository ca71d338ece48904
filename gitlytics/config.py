"""Environment-driven settings for the dashboard."""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    github_token: str = ""
    api_base: str = "https://api.github.com"
    timeout_seconds: int = 20
    token_cache_seconds: int = 300

    # Dashboard limits
    max_followers_to_load: int = 500
    commit_repo_limit: int = 20
    commits_per_repo: int = 500

    # OAuth
    client_id: str = ""
    client_secret: str = ""
    app_url: str = "http://localhost:5000"
    secret_key: str = ""
    session_hours: int = 8

    @property
    def oauth_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def redirect_uri(self) -> str:
        return f"{self.app_url.rstrip('/')}/api/auth/callback/github"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            github_token=os.getenv("GITHUB_TOKEN", "").strip(),
            api_base=os.getenv("GITHUB_API_BASE", "https://api.github.com").rstrip("/"),
            timeout_seconds=_int_env("GITHUB_TIMEOUT_SECONDS", 20),
            token_cache_seconds=_int_env("TOKEN_CACHE_SECONDS", 300),
            max_followers_to_load=_int_env("MAX_FOLLOWERS_TO_LOAD", 500),
            commit_repo_limit=_int_env("COMMIT_REPO_LIMIT", 20),
            commits_per_repo=_int_env("COMMITS_PER_REPO", 500),
            client_id=os.getenv("GITHUB_CLIENT_ID", "").strip(),
            client_secret=os.getenv("GITHUB_CLIENT_SECRET", "").strip(),
            app_url=os.getenv("APP_URL", "http://localhost:5000").strip(),
            # A per-process key means sessions do not survive a restart.
            secret_key=os.getenv("SECRET_KEY", "").strip() or secrets.token_hex(32),
            session_hours=_int_env("SESSION_HOURS", 8),
        )
