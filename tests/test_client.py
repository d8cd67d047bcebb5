"""Tests for the testhub.remote package.

Tests cover:
- GitHubClient: request shaping, Link pagination, error mapping, retry
- RemoteSource protocol conformance
- Error hierarchy
"""

from __future__ import annotations

import base64
import time
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from testhub.exceptions import TestHubError
from testhub.remote import (
    GitHubClient,
    RemoteAuthError,
    RemoteClientError,
    RemoteConfigError,
    RemoteNotFoundError,
    RemoteRateLimitError,
    RemoteResponseError,
    RemoteSource,
)
from tests.fakes import FakeRemoteSource, commit_payload, make_sha

API = "http://test-api"


# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------


def _make_client(handler=None, max_retries: int = 3, **kwargs) -> GitHubClient:
    """Create a GitHubClient whose requests go to *handler*."""
    client = GitHubClient(
        "MESAHub/mesa", token="test-token", base_url=API, max_retries=max_retries, **kwargs
    )
    if handler is not None:
        # Replace with mock transport but preserve base url and headers
        client._client = httpx.Client(
            transport=httpx.MockTransport(handler),
            base_url=API,
            headers={"Authorization": "Bearer test-token"},
        )
    return client


@pytest.fixture
def no_sleep(monkeypatch):
    """Skip tenacity backoff waits."""
    monkeypatch.setattr(time, "sleep", lambda seconds: None)


# ===========================================================================
# Error hierarchy
# ===========================================================================


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [
            RemoteConfigError,
            RemoteNotFoundError,
            RemoteRateLimitError,
            RemoteAuthError,
            RemoteResponseError,
        ],
    )
    def test_inherits_client_error(self, cls):
        assert issubclass(cls, RemoteClientError)
        assert issubclass(cls, TestHubError)

    def test_rate_limit_message_includes_retry_after(self):
        err = RemoteRateLimitError("slow down", retry_after=30.0)
        assert err.retry_after == 30.0
        assert "retry after 30.0s" in str(err)

    def test_not_found_keeps_path(self):
        assert RemoteNotFoundError("gone", path="a/b").path == "a/b"


# ===========================================================================
# Configuration
# ===========================================================================


class TestConfiguration:
    def test_missing_token(self, monkeypatch):
        monkeypatch.delenv("TESTHUB_GITHUB_TOKEN", raising=False)
        with pytest.raises(RemoteConfigError, match="No GitHub token"):
            GitHubClient("MESAHub/mesa")

    def test_token_from_env(self, monkeypatch):
        monkeypatch.setenv("TESTHUB_GITHUB_TOKEN", "env-token")
        client = GitHubClient("MESAHub/mesa")
        assert client._client.headers["Authorization"] == "Bearer env-token"
        client.close()

    @pytest.mark.parametrize("repo", ["mesa", "a/b/c", ""])
    def test_malformed_repo(self, repo):
        with pytest.raises(RemoteConfigError, match="owner/repo"):
            GitHubClient(repo, token="t")

    def test_base_url_from_env(self, monkeypatch):
        monkeypatch.setenv("TESTHUB_GITHUB_API_URL", "https://ghe.example.com/api/v3/")
        client = GitHubClient("MESAHub/mesa", token="t")
        assert client._base_url == "https://ghe.example.com/api/v3"
        client.close()

    def test_context_manager_closes(self):
        with GitHubClient("MESAHub/mesa", token="t") as client:
            assert not client._client.is_closed
        assert client._client.is_closed


# ===========================================================================
# Requests
# ===========================================================================


class TestRequests:
    def test_list_commits_params(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        client = _make_client(handler)
        client.list_commits("main", since=datetime(2024, 3, 1, 12, 30))

        params = seen[0].url.params
        assert seen[0].url.path == "/repos/MESAHub/mesa/commits"
        assert params["sha"] == "main"
        assert params["since"] == "2024-03-01T12:30:00Z"
        assert params["per_page"] == "100"
        client.close()

    def test_aware_since_converted_to_utc(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        client = _make_client(handler)
        since = datetime(2024, 3, 1, 7, 30, tzinfo=timezone(timedelta(hours=-5)))
        client.list_commits("main", since=since)
        assert seen[0].url.params["since"] == "2024-03-01T12:30:00Z"
        client.close()

    def test_no_since_omitted(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        client = _make_client(handler)
        client.list_commits("main")
        assert "since" not in seen[0].url.params
        client.close()

    def test_open_pull_requests(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/MESAHub/mesa/pulls"
            assert request.url.params["state"] == "open"
            return httpx.Response(200, json=[{"merge_commit_sha": "abc", "title": "t"}])

        client = _make_client(handler)
        assert client.list_open_pull_requests()[0]["merge_commit_sha"] == "abc"
        client.close()

    def test_get_commit(self):
        sha = make_sha("a")

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/repos/MESAHub/mesa/commits/{sha}"
            return httpx.Response(200, json=commit_payload(sha, datetime(2024, 1, 1)))

        client = _make_client(handler)
        assert client.get_commit(sha)["sha"] == sha
        client.close()

    def test_get_file_content(self):
        encoded = base64.b64encode(b"do_one wd_cool\n").decode()

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/MESAHub/mesa/contents/star/test_suite/do1_test_source"
            assert request.url.params["ref"] == "abc1234"
            return httpx.Response(200, json={"type": "file", "content": encoded})

        client = _make_client(handler)
        assert client.get_file_content("/star/test_suite/do1_test_source", ref="abc1234") == encoded
        client.close()

    def test_get_file_content_on_directory(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"name": "do1_test_source"}])

        client = _make_client(handler)
        with pytest.raises(RemoteResponseError):
            client.get_file_content("star/test_suite", ref="main")
        client.close()

    def test_list_endpoint_expects_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"message": "weird"})

        client = _make_client(handler)
        with pytest.raises(RemoteResponseError):
            client.list_branches()
        client.close()


# ===========================================================================
# Pagination
# ===========================================================================


class TestPagination:
    def test_follows_next_links(self):
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            page = request.url.params.get("page", "1")
            if page == "1":
                return httpx.Response(
                    200,
                    json=[{"name": "main"}],
                    headers={
                        "Link": f'<{API}/repos/MESAHub/mesa/branches?page=2>; rel="next", '
                        f'<{API}/repos/MESAHub/mesa/branches?page=2>; rel="last"'
                    },
                )
            return httpx.Response(200, json=[{"name": "feature"}])

        client = _make_client(handler)
        assert [b["name"] for b in client.list_branches()] == ["main", "feature"]
        assert len(calls) == 2
        client.close()

    def test_single_page_when_not_paginating(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(
                200,
                json=[{"sha": "a"}],
                headers={"Link": f'<{API}/repos/MESAHub/mesa/commits?page=2>; rel="next"'},
            )

        client = _make_client(handler)
        assert len(client.list_commits("main", auto_paginate=False)) == 1
        assert calls == 1
        client.close()

    def test_off_host_link_ignored(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(
                200,
                json=[{"name": "main"}],
                headers={"Link": '<https://evil.example.com/steal?page=2>; rel="next"'},
            )

        client = _make_client(handler)
        assert len(client.list_branches()) == 1
        assert calls == 1
        client.close()

    def test_max_pages_bounds_loop(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(
                200,
                json=[{"name": f"b{calls}"}],
                headers={"Link": f'<{API}/repos/MESAHub/mesa/branches?page={calls + 1}>; rel="next"'},
            )

        client = _make_client(handler, max_pages=3)
        assert len(client.list_branches()) == 3
        client.close()


# ===========================================================================
# Error mapping and retry
# ===========================================================================


class TestErrorMapping:
    def test_404(self):
        client = _make_client(lambda request: httpx.Response(404, json={"message": "Not Found"}))
        with pytest.raises(RemoteNotFoundError) as exc_info:
            client.list_commits("deleted-branch")
        assert exc_info.value.path == "/repos/MESAHub/mesa/commits"
        client.close()

    def test_401(self):
        client = _make_client(lambda request: httpx.Response(401, json={"message": "Bad creds"}))
        with pytest.raises(RemoteAuthError):
            client.list_branches()
        client.close()

    def test_403_with_quota_left_is_auth(self):
        client = _make_client(
            lambda request: httpx.Response(403, headers={"X-RateLimit-Remaining": "12"})
        )
        with pytest.raises(RemoteAuthError):
            client.list_branches()
        client.close()

    def test_403_with_exhausted_quota_is_rate_limit(self):
        client = _make_client(
            lambda request: httpx.Response(403, headers={"X-RateLimit-Remaining": "0"})
        )
        with pytest.raises(RemoteRateLimitError):
            client.list_branches()
        client.close()

    def test_429_retry_after(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(429, headers={"Retry-After": "42"})

        client = _make_client(handler)
        with pytest.raises(RemoteRateLimitError) as exc_info:
            client.list_branches()
        assert exc_info.value.retry_after == 42.0
        assert calls == 1
        client.close()

    def test_400_not_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400, json={"message": "bad"})

        client = _make_client(handler)
        with pytest.raises(httpx.HTTPStatusError):
            client.list_branches()
        assert calls == 1
        client.close()


class TestRetry:
    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_transient_then_success(self, no_sleep, status):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(status)
            return httpx.Response(200, json=[{"name": "main"}])

        client = _make_client(handler)
        assert client.list_branches() == [{"name": "main"}]
        assert calls == 2
        client.close()

    def test_gives_up_after_max_retries(self, no_sleep):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        client = _make_client(handler, max_retries=2)
        with pytest.raises(httpx.HTTPStatusError):
            client.list_branches()
        assert calls == 2
        client.close()

    def test_connection_error_retried(self, no_sleep):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=[])

        client = _make_client(handler)
        assert client.list_branches() == []
        assert calls == 2
        client.close()


# ===========================================================================
# Protocol
# ===========================================================================


class TestProtocol:
    def test_github_client_conforms(self):
        client = GitHubClient("MESAHub/mesa", token="t")
        assert isinstance(client, RemoteSource)
        client.close()

    def test_fake_conforms(self):
        assert isinstance(FakeRemoteSource(), RemoteSource)

    def test_incomplete_object_rejected(self):
        class OnlyBranches:
            def list_branches(self):
                return []

        assert not isinstance(OnlyBranches(), RemoteSource)
