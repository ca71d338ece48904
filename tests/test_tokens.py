import time

from gitlytics.client import GitHubClient
from gitlytics.tokens import (
    Credential,
    CredentialSource,
    SessionTokenProvider,
    SharedTokenProvider,
    TokenResolver,
)
from tests.fakes import FakeResponse, FakeSession, user_payload


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class CountingProvider:
    def __init__(self, credential):
        self.credential = credential
        self.calls = 0

    def try_resolve(self):
        self.calls += 1
        return self.credential


def _session(token="user-token", expires_in=3600):
    return {"access_token": token, "expires_at": int((time.time() + expires_in) * 1000)}


def test_no_session_and_no_shared_token_is_anonymous():
    resolver = TokenResolver([SessionTokenProvider(lambda: None), SharedTokenProvider("")])
    credential = resolver.resolve()
    assert credential == Credential.anonymous()
    assert not credential


def test_anonymous_credential_sends_no_authorization_header():
    resolver = TokenResolver([SessionTokenProvider(lambda: None), SharedTokenProvider(None)])
    http = FakeSession(lambda url, params: FakeResponse(200, user_payload()))
    GitHubClient(resolver, session=http).fetch_user("octocat")
    assert "Authorization" not in http.calls[0].headers


def test_session_token_takes_priority_over_shared_token():
    resolver = TokenResolver([SessionTokenProvider(lambda: _session()), SharedTokenProvider("shared")])
    credential = resolver.resolve()
    assert credential.token == "user-token"
    assert credential.source is CredentialSource.USER_SESSION


def test_expired_session_falls_back_to_shared_token():
    resolver = TokenResolver(
        [SessionTokenProvider(lambda: _session(expires_in=-10)), SharedTokenProvider("shared")]
    )
    credential = resolver.resolve()
    assert credential.token == "shared"
    assert credential.source is CredentialSource.SHARED_ENVIRONMENT


def test_failing_session_lookup_falls_back():
    def boom():
        raise RuntimeError("session store down")

    resolver = TokenResolver([SessionTokenProvider(boom), SharedTokenProvider("shared")])
    assert resolver.resolve().token == "shared"


def test_cached_credential_is_reused_within_ttl():
    clock = Clock()
    provider = CountingProvider(Credential("t1", CredentialSource.SHARED_ENVIRONMENT))
    resolver = TokenResolver([provider], ttl=300, clock=clock)

    resolver.resolve()
    clock.now += 299
    resolver.resolve()
    assert provider.calls == 1

    clock.now += 1
    resolver.resolve()
    assert provider.calls == 2


def test_anonymous_result_is_cached_too():
    clock = Clock()
    provider = CountingProvider(None)
    resolver = TokenResolver([provider], ttl=300, clock=clock)
    resolver.resolve()
    resolver.resolve()
    assert provider.calls == 1


def test_invalidate_forces_fresh_lookup():
    clock = Clock()
    state = {"session": None}
    resolver = TokenResolver(
        [SessionTokenProvider(lambda: state["session"]), SharedTokenProvider("")], clock=clock
    )
    assert not resolver.resolve()

    state["session"] = _session("fresh")
    assert not resolver.resolve()  # still cached

    resolver.invalidate()
    assert resolver.resolve().token == "fresh"


def test_credential_repr_hides_token():
    assert "secret" not in repr(Credential("secret", CredentialSource.SHARED_ENVIRONMENT))
