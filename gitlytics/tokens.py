"""Credential resolution for outbound GitHub calls.

A resolver walks an ordered list of providers (visitor session first, then the
shared environment token) and caches the answer for a short while. Nothing
here logs a token value.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

TOKEN_CACHE_SECONDS = 300


class CredentialSource(str, enum.Enum):
    NONE = "none"
    USER_SESSION = "user-session"
    SHARED_ENVIRONMENT = "shared-environment"


@dataclass(frozen=True)
class Credential:
    token: Optional[str]
    source: CredentialSource

    @classmethod
    def anonymous(cls) -> "Credential":
        return cls(token=None, source=CredentialSource.NONE)

    def __bool__(self) -> bool:
        return bool(self.token)

    def __repr__(self) -> str:
        return f"Credential(source={self.source.value!r}, token={'***' if self.token else None})"


class SessionTokenProvider:
    """Yields the visitor's OAuth token while their session is unexpired.

    ``lookup`` returns the session mapping written by the OAuth callback
    (``access_token`` plus ``expires_at`` in epoch milliseconds), or None.
    """

    def __init__(self, lookup: Callable[[], Optional[Mapping[str, Any]]], wall_clock: Callable[[], float] = time.time):
        self._lookup = lookup
        self._wall_clock = wall_clock

    def try_resolve(self) -> Optional[Credential]:
        try:
            session = self._lookup()
        except Exception as e:
            logger.warning(f"Session token lookup failed: {e.__class__.__name__}")
            return None
        if not session:
            return None
        token = session.get("access_token")
        expires_at = session.get("expires_at") or 0
        if not token or expires_at < self._wall_clock() * 1000:
            return None
        return Credential(token=token, source=CredentialSource.USER_SESSION)


class SharedTokenProvider:
    def __init__(self, token: Optional[str]):
        self._token = (token or "").strip()

    def try_resolve(self) -> Optional[Credential]:
        if not self._token:
            return None
        return Credential(token=self._token, source=CredentialSource.SHARED_ENVIRONMENT)


class TokenResolver:
    """Resolve and briefly cache the credential attached to API calls.

    Concurrent resolutions may both consult the providers; the last writer
    wins, which is harmless because lookups are idempotent.
    """

    def __init__(
        self,
        providers: Sequence[Any],
        ttl: float = TOKEN_CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.providers = list(providers)
        self.ttl = ttl
        self._clock = clock
        self._cached: Optional[Credential] = None
        self._cached_at = 0.0

    def resolve(self) -> Credential:
        cached = self._cached
        if cached is not None and self._clock() - self._cached_at < self.ttl:
            return cached

        credential = Credential.anonymous()
        for provider in self.providers:
            found = provider.try_resolve()
            if found:
                credential = found
                break

        self._cached = credential
        self._cached_at = self._clock()
        logger.debug(f"Resolved GitHub credential from {credential.source.value}")
        return credential

    def invalidate(self) -> None:
        self._cached = None
        self._cached_at = 0.0
