import datetime as dt

import pytest
import requests

from gitlytics.client import GitHubClient
from gitlytics.errors import NotFound, RateLimited, UpstreamError
from gitlytics.tokens import SharedTokenProvider, TokenResolver
from tests.fakes import (
    FakeResponse,
    FakeSession,
    commit_payload,
    gist_payload,
    rate_limit_payload,
    repo_payload,
    routes,
    user_payload,
)


def make_client(handler, token=""):
    http = FakeSession(handler)
    return GitHubClient(TokenResolver([SharedTokenProvider(token)]), session=http), http


def test_request_sends_accept_user_agent_and_bearer():
    client, http = make_client(routes({"/users/octocat": user_payload()}), token="abc")
    user = client.fetch_user("octocat")

    assert user.login == "octocat"
    assert user.followers == 3
    headers = http.calls[0].headers
    assert headers["Accept"] == "application/vnd.github.v3+json"
    assert headers["User-Agent"] == "Gitlytics-Dashboard"
    assert headers["Authorization"] == "Bearer abc"
    assert http.calls[0].url == "https://api.github.com/users/octocat"


def test_404_is_not_found():
    client, _ = make_client(routes({}))
    with pytest.raises(NotFound) as exc:
        client.fetch_user("ghost")
    assert exc.value.status == 404


def test_403_is_rate_limited_with_login_hint():
    client, _ = make_client(lambda url, params: FakeResponse(403, {"message": "rate limit"}, reason="Forbidden"))
    with pytest.raises(RateLimited) as exc:
        client.request("/users/octocat")
    assert "login with GitHub" in str(exc.value)
    assert exc.value.status == 403


def test_other_status_is_upstream_error_with_reason():
    client, _ = make_client(lambda url, params: FakeResponse(500, {}, reason="Internal Server Error"))
    with pytest.raises(UpstreamError) as exc:
        client.request("/users/octocat")
    assert str(exc.value) == "GitHub API error: Internal Server Error"
    assert exc.value.status == 500


def test_transport_failure_is_upstream_error():
    def handler(url, params):
        raise requests.ConnectionError("connection reset")

    client, _ = make_client(handler)
    with pytest.raises(UpstreamError):
        client.request("/users/octocat")


def test_malformed_json_is_upstream_error():
    client, _ = make_client(lambda url, params: FakeResponse(200, text="<html>"))
    with pytest.raises(UpstreamError):
        client.request("/users/octocat")


def test_incomplete_record_is_never_returned():
    payload = user_payload()
    del payload["login"]
    client, _ = make_client(routes({"/users/octocat": payload}))
    with pytest.raises(UpstreamError):
        client.fetch_user("octocat")


def test_commit_with_non_mapping_body_is_upstream_error():
    payload = commit_payload("abc", dt.datetime(2024, 3, 1, tzinfo=dt.timezone.utc))
    payload["commit"] = "not an object"
    client, _ = make_client(routes({"/repos/octocat/hello/commits": [payload]}))
    with pytest.raises(UpstreamError):
        client.fetch_commits("octocat/hello", dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc))


def test_get_page_rejects_non_list_payload():
    client, _ = make_client(routes({"/users/octocat/repos": {"message": "odd"}}))
    with pytest.raises(UpstreamError):
        client.get_page("/users/octocat/repos", {"page": 1, "per_page": 100})


def test_get_page_reads_link_header():
    client, _ = make_client(lambda url, params: FakeResponse(200, [], has_next=True))
    assert client.get_page("/x").has_next is True
    client, _ = make_client(lambda url, params: FakeResponse(200, []))
    assert client.get_page("/x").has_next is None


def test_fetch_repositories_keeps_sort_query_and_pages():
    repos = [repo_payload(i, f"r{i}") for i in range(3)]
    client, http = make_client(routes({"/users/octocat/repos": repos}))
    result = client.fetch_repositories("octocat")

    assert [r.name for r in result] == ["r0", "r1", "r2"]
    assert http.calls[0].url.endswith("/users/octocat/repos?sort=updated")
    assert http.calls[0].params == {"per_page": 100, "page": 1}


def test_fetch_commits_passes_since_filter():
    client, http = make_client(routes({"/repos/octocat/hello/commits": []}))
    since = dt.datetime(2024, 3, 1, 12, 30, tzinfo=dt.timezone.utc)
    assert client.fetch_commits("octocat/hello", since, 500) == []
    assert http.calls[0].url.endswith("/repos/octocat/hello/commits?since=2024-03-01T12:30:00Z")


def test_fetch_rate_limit_reads_resources():
    client, _ = make_client(routes({"/rate_limit": rate_limit_payload(remaining=42)}))
    snapshot = client.fetch_rate_limit()
    assert snapshot.core.remaining == 42
    assert snapshot.search.limit == 30


def test_search_validates_kind_and_passes_query():
    client, http = make_client(routes({"/search/repositories": {"total_count": 0, "items": []}}))
    assert client.search("repositories", "language:go stars:>10")["total_count"] == 0
    assert http.calls[0].params == {"q": "language:go stars:>10", "per_page": 20}
    with pytest.raises(ValueError):
        client.search("secrets", "x")


def test_fetch_authenticated_user_uses_explicit_token():
    client, http = make_client(routes({"/user": user_payload(login="me")}), token="shared")
    assert client.fetch_authenticated_user("oauth-token").login == "me"
    assert http.calls[0].headers["Authorization"] == "Bearer oauth-token"


def test_search_accepts_commits():
    client, http = make_client(routes({"/search/commits": {"total_count": 1, "items": [{"sha": "abc"}]}}))
    assert client.search("commits", "fix repo:octocat/hello")["total_count"] == 1
    assert http.calls[0].url.endswith("/search/commits")


def test_fetch_starred_pages_repositories():
    starred = [repo_payload(i, f"s{i}", owner="someone") for i in range(100)] + [repo_payload(100, "last", owner="someone")]
    client, http = make_client(routes({"/users/octocat/starred": starred}))
    result = client.fetch_starred("octocat")

    assert len(result) == 101
    assert result[-1].full_name == "someone/last"
    assert [c.params["page"] for c in http.calls] == [1, 2]
    assert result.partial is False


def test_fetch_gists_reads_file_names():
    client, _ = make_client(routes({"/users/octocat/gists": [gist_payload("aa1", files=("a.py", "b.md")), gist_payload("bb2")]}))
    gists = client.fetch_gists("octocat")

    assert [g.id for g in gists] == ["aa1", "bb2"]
    assert gists[0].files == ("a.py", "b.md")
    assert gists[0].html_url == "https://gist.github.com/aa1"
    assert gists[0].created_at == dt.datetime(2023, 5, 1, 10, 0, tzinfo=dt.timezone.utc)


def test_gist_without_timestamps_is_upstream_error():
    payload = gist_payload("cc3")
    del payload["updated_at"]
    client, _ = make_client(routes({"/users/octocat/gists": [payload]}))
    with pytest.raises(UpstreamError):
        client.fetch_gists("octocat")
