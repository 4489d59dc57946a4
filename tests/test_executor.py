"""Tests for request execution."""

import asyncio
import json

import httpx
import pytest
import respx

from ghbridge.client import (
    CancellationToken,
    ClientSettings,
    GitHubApiError,
    GitHubCancelledError,
    GitHubClient,
    GitHubError,
    GitHubTransportError,
)
from ghbridge.client.executor import build_headers, strip_nulls


API = "https://api.github.com"


class TestClientSettings:
    """Tests for connection settings."""

    def test_defaults(self):
        """Test the public API is the default endpoint."""
        settings = ClientSettings()
        assert settings.api_url == "https://api.github.com"
        assert settings.identity == ""

    def test_trailing_slash_removed(self):
        """Test the base URL is normalized."""
        assert ClientSettings(api_url="https://ghe.example.com/api/v3/").api_url == "https://ghe.example.com/api/v3"

    def test_username_requires_token(self):
        """Test a user name without a token is rejected."""
        with pytest.raises(ValueError, match="token must be specified"):
            ClientSettings(username="octocat")

    def test_identity_hides_token(self):
        """Test the cache identity never contains the token."""
        identity = ClientSettings(token="secret-token").identity
        assert identity.startswith("token:")
        assert "secret-token" not in identity
        assert ClientSettings(username="octocat", token="t").identity.startswith("user:octocat:")

    def test_identity_differs_per_token(self):
        """Test two tokens of the same user get separate identities."""
        first = ClientSettings(username="octocat", token="one").identity
        second = ClientSettings(username="octocat", token="two").identity
        assert first != second
        assert "one" not in first


class TestBuildHeaders:
    """Tests for the headers sent with every request."""

    def test_bearer_token(self):
        """Test token-only authentication."""
        headers = build_headers(ClientSettings(token="abc"))
        assert headers["Authorization"] == "Bearer abc"

    def test_basic_auth(self):
        """Test user name plus token uses basic authentication."""
        headers = build_headers(ClientSettings(username="u", token="t"))
        assert headers["Authorization"] == "Basic dTp0"

    def test_anonymous(self):
        """Test no Authorization header without credentials."""
        assert "Authorization" not in build_headers(ClientSettings())

    def test_accept_and_user_agent(self):
        """Test media types and user agent."""
        headers = build_headers(ClientSettings(previews=["application/vnd.github.foo-preview+json"]))
        assert headers["Accept"] == "application/vnd.github.v3+json, application/vnd.github.foo-preview+json"
        assert headers["User-Agent"].startswith("ghbridge/")


class TestStripNulls:
    """Tests for payload cleanup."""

    def test_nested(self):
        """Test None fields are removed at every level."""
        body = {"a": 1, "b": None, "c": {"d": None, "e": "x"}, "f": [{"g": None}]}
        assert strip_nulls(body) == {"a": 1, "c": {"e": "x"}, "f": [{}]}


class TestInvoke:
    """Tests for RequestExecutor.invoke."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_headers_sent_on_every_method(self):
        """Test auth and media type headers on GET and POST."""
        get_route = respx.get(f"{API}/repos/o/r").mock(
            return_value=httpx.Response(200, json={"clone_url": "https://github.com/o/r.git"})
        )
        post_route = respx.post(f"{API}/repos/o/r/issues").mock(
            return_value=httpx.Response(201, json={"number": 7})
        )

        async with GitHubClient(ClientSettings(token="abc")) as client:
            await client.executor.invoke("GET", f"{API}/repos/o/r")
            await client.executor.invoke("POST", f"{API}/repos/o/r/issues", {"title": "x"})

        for route in (get_route, post_route):
            request = route.calls.last.request
            assert request.headers["Authorization"] == "Bearer abc"
            assert "application/vnd.github.v3+json" in request.headers["Accept"]
            assert request.headers["User-Agent"].startswith("ghbridge/")

    @pytest.mark.asyncio
    @respx.mock
    async def test_json_body_without_nulls(self):
        """Test the payload is JSON with None fields removed."""
        route = respx.patch(f"{API}/repos/o/r/issues/3").mock(return_value=httpx.Response(200, json={}))

        async with GitHubClient() as client:
            await client.executor.invoke(
                "PATCH", f"{API}/repos/o/r/issues/3", {"state": "closed", "milestone": None}
            )

        request = route.calls.last.request
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {"state": "closed"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_body_is_none(self):
        """Test 204 replies decode to None."""
        respx.put(f"{API}/repos/o/r/pulls/1/merge").mock(return_value=httpx.Response(204))

        async with GitHubClient() as client:
            assert await client.executor.invoke("PUT", f"{API}/repos/o/r/pulls/1/merge", {"sha": "a"}) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_tolerated_not_found(self):
        """Test a tolerated 404 returns None instead of raising."""
        respx.get(f"{API}/repos/o/r/releases/tags/v1").mock(
            return_value=httpx.Response(404, json={"message": "Not Found"})
        )

        async with GitHubClient() as client:
            result = await client.executor.invoke(
                "GET", f"{API}/repos/o/r/releases/tags/v1", tolerate_not_found=True
            )
        assert result is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_not_found_raises_without_flag(self):
        """Test 404 is an error unless tolerated."""
        respx.get(f"{API}/repos/o/missing").mock(return_value=httpx.Response(404, json={"message": "Not Found"}))

        async with GitHubClient() as client:
            with pytest.raises(GitHubApiError) as exc_info:
                await client.executor.invoke("GET", f"{API}/repos/o/missing")

        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "Server replied with 404: Not Found"

    @pytest.mark.asyncio
    @respx.mock
    async def test_validation_error(self):
        """Test a 422 reply carries its details."""
        respx.post(f"{API}/repos/o/r/milestones").mock(
            return_value=httpx.Response(
                422,
                json={"message": "Validation Failed", "errors": [{"resource": "Milestone", "code": "already_exists"}]},
            )
        )

        async with GitHubClient() as client:
            with pytest.raises(GitHubApiError, match=r"\(Milestone already_exists\)"):
                await client.executor.invoke("POST", f"{API}/repos/o/r/milestones", {"title": "1.0"})

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_json_success_body(self):
        """Test an unparseable success body is reported as GitHubError."""
        respx.get(f"{API}/repos/o/r").mock(return_value=httpx.Response(200, content=b"<html>"))

        async with GitHubClient() as client:
            with pytest.raises(GitHubError, match="Invalid JSON"):
                await client.executor.invoke("GET", f"{API}/repos/o/r")

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error(self):
        """Test network failures keep the original exception as cause."""
        respx.get(f"{API}/repos/o/r").mock(side_effect=httpx.ConnectError("connection refused"))

        async with GitHubClient() as client:
            with pytest.raises(GitHubTransportError) as exc_info:
                await client.executor.invoke("GET", f"{API}/repos/o/r")

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_undecodable_body_is_transport_error(self):
        """Test a body that fails content decoding is a transport failure."""
        def handler(request):
            return httpx.Response(
                200,
                headers={"Content-Encoding": "gzip"},
                stream=httpx.ByteStream(b"not gzip"),
            )

        async with GitHubClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(GitHubTransportError) as exc_info:
                await client.executor.invoke("GET", f"{API}/repos/o/r")

        assert isinstance(exc_info.value.__cause__, httpx.DecodingError)

    @pytest.mark.asyncio
    async def test_redirect_loop_is_transport_error(self):
        """Test endless redirects are a transport failure."""
        def handler(request):
            return httpx.Response(302, headers={"Location": str(request.url)})

        async with GitHubClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(GitHubTransportError) as exc_info:
                await client.executor.invoke("GET", f"{API}/repos/o/r")

        assert isinstance(exc_info.value.__cause__, httpx.TooManyRedirects)


class TestCancellation:
    """Tests for cancelling requests."""

    @pytest.mark.asyncio
    async def test_cancelled_before_send(self):
        """Test no request is made with an already cancelled token."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        token = CancellationToken()
        token.cancel()

        async with GitHubClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(GitHubCancelledError):
                await client.executor.invoke("GET", f"{API}/user", cancel=token)
        assert calls == []

    @pytest.mark.asyncio
    async def test_cancel_aborts_in_flight_request(self):
        """Test cancelling during a hanging request stops it immediately."""
        token = CancellationToken()

        async def handler(request):
            token.cancel()
            await asyncio.sleep(30)
            return httpx.Response(200, json={})

        async with GitHubClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(GitHubCancelledError):
                await asyncio.wait_for(client.executor.invoke("GET", f"{API}/user", cancel=token), timeout=5)

    @pytest.mark.asyncio
    async def test_cancel_from_another_thread(self):
        """Test cancel() may be called from a worker thread."""
        token = CancellationToken()

        async def handler(request):
            await asyncio.to_thread(token.cancel)
            await asyncio.sleep(30)
            return httpx.Response(200, json={})

        async with GitHubClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(GitHubCancelledError):
                await asyncio.wait_for(client.executor.invoke("GET", f"{API}/user", cancel=token), timeout=5)
