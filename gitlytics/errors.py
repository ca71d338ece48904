"""Error taxonomy for GitHub API access."""

from typing import Optional


class GitHubAPIError(RuntimeError):
    """Base class for every failure talking to GitHub."""

    status: Optional[int] = None
    hint: Optional[str] = None

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        if status is not None:
            self.status = status


class NotFound(GitHubAPIError):
    """Upstream returned 404, usually an unknown username."""

    status = 404


class RateLimited(GitHubAPIError):
    """Upstream returned 403 because the request quota is exhausted."""

    status = 403
    hint = "Log in with GitHub or set GITHUB_TOKEN for higher rate limits."


class UpstreamError(GitHubAPIError):
    """Any other non-success status, transport failure or malformed payload."""
