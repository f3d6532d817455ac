"""HTTP probe executor tests against httpx.MockTransport."""
import asyncio
from types import SimpleNamespace

import httpx
import pytest

from cronsentry.config import settings
from cronsentry.exceptions import UrlValidationError
from cronsentry.services.checker import (
    ProbeExecutor,
    check_assertions,
    classify_error,
    truncate_response_body,
)
from cronsentry.schemas.http_monitor import MonitorAssertions
from cronsentry.utils.crypto import encrypt_body, encrypt_headers, generate_key


def make_monitor(**overrides):
    fields = dict(
        id=1,
        url="https://api.example.com/health",
        method="GET",
        expected_status_codes=[200, 201],
        timeout_ms=5000,
        headers=None,
        body=None,
        content_type=None,
        assertions=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def executor(handler, **kwargs):
    return ProbeExecutor(transport=httpx.MockTransport(handler), resolve_dns=False, **kwargs)


class TestProbeExecutor:
    async def test_expected_status_is_success(self, target, checker):
        result = await checker.execute(make_monitor())
        assert result.ok
        assert result.status_code == 200
        assert result.error is None
        assert result.response_body == "OK"
        assert target.requests[0].headers["user-agent"].startswith("cronsentry-probe")

    async def test_unexpected_status_is_failure(self, target, checker):
        target.status_code = 503
        result = await checker.execute(make_monitor())
        assert not result.ok
        assert result.status_code == 503
        assert "Unexpected status code 503 (expected: 200, 201)" in result.error

    async def test_body_assertions(self, target, checker):
        target.body = '{"status": "degraded"}'
        monitor = make_monitor(assertions={"body_contains": '"ok"', "body_not_contains": "degraded"})
        result = await checker.execute(monitor)
        assert not result.ok
        assert result.assertions.body_contains_passed is False
        assert result.assertions.body_not_contains_passed is False
        assert "does not contain" in result.error
        assert "forbidden string" in result.error

    async def test_timeout_becomes_failure(self):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200)

        result = await executor(slow, timeout_cap_ms=50).execute(make_monitor())
        assert not result.ok
        assert result.error == "Timeout after 50ms"

    async def test_connection_refused_becomes_failure(self):
        def refuse(request):
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        result = await executor(refuse).execute(make_monitor())
        assert not result.ok
        assert result.status_code is None
        assert result.error == "Connection refused"

    async def test_dns_failure_becomes_failure(self):
        def unresolvable(request):
            raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

        result = await executor(unresolvable).execute(make_monitor())
        assert result.error == "DNS lookup failed - hostname not found"

    async def test_internal_url_is_refused_before_any_request(self, target, checker):
        with pytest.raises(UrlValidationError):
            await checker.execute(make_monitor(url="http://169.254.169.254/latest/meta-data"))
        assert target.requests == []

    async def test_redirect_to_internal_address_is_blocked(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            if request.url.host == "api.example.com":
                return httpx.Response(302, headers={"Location": "http://127.0.0.1/admin"})
            return httpx.Response(200, text="internal secrets")

        result = await executor(handler).execute(make_monitor())
        assert not result.ok
        assert result.error.startswith("Redirect blocked")
        assert seen == ["https://api.example.com/health"]

    async def test_public_redirect_is_followed(self):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://api.example.com/health"})
            return httpx.Response(200, text="OK")

        result = await executor(handler).execute(make_monitor(url="https://api.example.com/old"))
        assert result.ok

    async def test_body_is_sent_only_for_post_and_put(self, target, checker):
        await checker.execute(make_monitor(method="POST", body='{"a": 1}', content_type="application/json"))
        await checker.execute(make_monitor(method="GET", body='{"a": 1}', content_type="application/json"))
        post, get = target.requests
        assert post.content == b'{"a": 1}'
        assert post.headers["content-type"] == "application/json"
        assert get.content == b""

    async def test_stored_secrets_are_decrypted_for_the_request(self, target, checker, monkeypatch):
        key = generate_key()
        monkeypatch.setattr(settings, "encryption_key", key)
        monitor = make_monitor(
            method="PUT",
            headers=encrypt_headers({"Authorization": "Bearer t0ken"}),
            body=encrypt_body("payload"),
            content_type="text/plain",
        )
        result = await checker.execute(monitor)
        assert result.ok
        assert target.requests[0].headers["authorization"] == "Bearer t0ken"
        assert target.requests[0].content == b"payload"

    async def test_head_request_has_empty_body(self, target, checker):
        result = await checker.execute(make_monitor(method="HEAD"))
        assert result.ok
        assert result.response_body == ""

    def test_timeout_is_capped(self):
        probe = ProbeExecutor(resolve_dns=False, timeout_cap_ms=30000)
        assert probe.effective_timeout_ms(make_monitor(timeout_ms=120000)) == 30000
        assert probe.effective_timeout_ms(make_monitor(timeout_ms=2000)) == 2000


class TestHelpers:
    def test_truncate_response_body(self):
        assert truncate_response_body("short") == "short"
        truncated = truncate_response_body("x" * 600)
        assert truncated.startswith("x" * 500)
        assert truncated.endswith("... (truncated)")

    def test_response_time_assertion(self):
        results = check_assertions(200, 900, "", [200], MonitorAssertions(max_response_time_ms=500))
        assert results.status_code_passed
        assert not results.response_time_passed
        assert not results.all_passed

    def test_unset_assertions_pass(self):
        results = check_assertions(200, 10, "", [200], MonitorAssertions())
        assert results.all_passed
        assert results.body_contains_passed is None

    def test_classify_ssl_error(self):
        error = httpx.ConnectError("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed")
        assert classify_error(error, 1000).startswith("SSL/TLS error")
