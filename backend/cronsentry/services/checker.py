"""Checker service - executes HTTP probes with SSRF protection and assertions."""
import asyncio
import ssl
import time
from dataclasses import dataclass
from typing import Optional, List

import httpx

from ..config import settings
from ..exceptions import UrlValidationError
from ..schemas.http_monitor import MonitorAssertions
from ..utils.crypto import decrypt_body, decrypt_headers
from ..utils.security import validate_monitor_url, validate_monitor_url_async

USER_AGENT = "cronsentry-probe/1.0"

BODY_PREVIEW_LENGTH = 500

METHODS_WITH_BODY = ("POST", "PUT")


@dataclass
class AssertionResults:
    """Outcome of each configured assertion; None means not configured."""
    status_code_passed: bool
    response_time_passed: bool = True
    body_contains_passed: Optional[bool] = None
    body_not_contains_passed: Optional[bool] = None

    @property
    def all_passed(self) -> bool:
        return (
            self.status_code_passed
            and self.response_time_passed
            and self.body_contains_passed is not False
            and self.body_not_contains_passed is not False
        )


@dataclass
class ProbeResult:
    """Result of a single HTTP probe."""
    status: str  # success, failure
    response_time_ms: int
    status_code: Optional[int] = None
    error: Optional[str] = None
    response_body: Optional[str] = None
    assertions: Optional[AssertionResults] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


def truncate_response_body(body: str, max_length: int = BODY_PREVIEW_LENGTH) -> str:
    if len(body) <= max_length:
        return body
    return body[:max_length] + "... (truncated)"


def check_assertions(
    status_code: int,
    response_time_ms: int,
    body: str,
    expected_status_codes: List[int],
    assertions: MonitorAssertions,
) -> AssertionResults:
    results = AssertionResults(status_code_passed=status_code in expected_status_codes)

    if assertions.max_response_time_ms is not None:
        results.response_time_passed = response_time_ms <= assertions.max_response_time_ms
    if assertions.body_contains is not None:
        results.body_contains_passed = assertions.body_contains in body
    if assertions.body_not_contains is not None:
        results.body_not_contains_passed = assertions.body_not_contains not in body

    return results


def describe_failed_assertions(
    results: AssertionResults,
    expected_status_codes: List[int],
    assertions: MonitorAssertions,
    status_code: int,
) -> str:
    errors = []
    if not results.status_code_passed:
        expected = ", ".join(str(code) for code in expected_status_codes)
        errors.append(f"Unexpected status code {status_code} (expected: {expected})")
    if not results.response_time_passed:
        errors.append(f"Response time exceeded {assertions.max_response_time_ms}ms threshold")
    if results.body_contains_passed is False:
        errors.append(f'Response body does not contain "{assertions.body_contains}"')
    if results.body_not_contains_passed is False:
        errors.append(f'Response body contains forbidden string "{assertions.body_not_contains}"')
    return "; ".join(errors)


def classify_error(error: BaseException, timeout_ms: int) -> str:
    """Map a transport-level exception to a short diagnostic message."""
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return f"Timeout after {timeout_ms}ms"
    if isinstance(error, UrlValidationError):
        return f"Redirect blocked: {error}"
    if isinstance(error, httpx.TooManyRedirects):
        return "Too many redirects"

    message = str(error) or error.__class__.__name__
    lowered = message.lower()
    if isinstance(error, ssl.SSLError) or "ssl" in lowered or "certificate" in lowered:
        return f"SSL/TLS error: {message}"
    if (
        "name or service not known" in lowered
        or "nodename nor servname" in lowered
        or "getaddrinfo" in lowered
        or "name resolution" in lowered
    ):
        return "DNS lookup failed - hostname not found"
    if "refused" in lowered:
        return "Connection refused"
    if isinstance(error, httpx.ConnectError):
        return f"Connection error: {message}"
    return message


class ProbeExecutor:
    """Performs one outbound HTTP request per monitor and evaluates it."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        resolve_dns: bool = True,
        timeout_cap_ms: Optional[int] = None,
    ):
        self.transport = transport
        self.resolve_dns = resolve_dns
        self.timeout_cap_ms = timeout_cap_ms or settings.probe_timeout_cap_ms

    def effective_timeout_ms(self, monitor) -> int:
        return max(1, min(monitor.timeout_ms or self.timeout_cap_ms, self.timeout_cap_ms))

    async def execute(self, monitor) -> ProbeResult:
        """Probe a monitor.

        Raises:
            UrlValidationError: the URL fails SSRF validation (no request is made)

        Network failures never raise; they come back as failure results.
        """
        if self.resolve_dns:
            await validate_monitor_url_async(monitor.url)
        else:
            validate_monitor_url(monitor.url, resolve=False)

        timeout_ms = self.effective_timeout_ms(monitor)
        assertions = MonitorAssertions.model_validate(monitor.assertions or {})
        expected_codes = list(monitor.expected_status_codes or [200])

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._send(monitor, timeout_ms), timeout=timeout_ms / 1000
            )
        except (httpx.HTTPError, UrlValidationError, asyncio.TimeoutError, OSError) as e:
            return ProbeResult(
                status="failure",
                response_time_ms=int((time.monotonic() - start) * 1000),
                error=classify_error(e, timeout_ms),
            )
        response_time = int((time.monotonic() - start) * 1000)

        body = response.text if monitor.method != "HEAD" else ""
        results = check_assertions(
            response.status_code, response_time, body, expected_codes, assertions
        )
        passed = results.all_passed

        return ProbeResult(
            status="success" if passed else "failure",
            status_code=response.status_code,
            response_time_ms=response_time,
            response_body=truncate_response_body(body),
            assertions=results,
            error=None if passed else describe_failed_assertions(
                results, expected_codes, assertions, response.status_code
            ),
        )

    async def _send(self, monitor, timeout_ms: int) -> httpx.Response:
        headers = {"User-Agent": USER_AGENT}
        headers.update(decrypt_headers(monitor.headers))

        content = None
        if monitor.method in METHODS_WITH_BODY and monitor.body:
            content = decrypt_body(monitor.body)
            if monitor.content_type:
                headers["Content-Type"] = monitor.content_type

        async with httpx.AsyncClient(
            timeout=timeout_ms / 1000,
            follow_redirects=True,
            transport=self.transport,
            event_hooks={"request": [self._guard_redirect]},
        ) as client:
            response = await client.request(monitor.method, monitor.url, headers=headers, content=content)
            await response.aread()
            return response

    async def _guard_redirect(self, request: httpx.Request) -> None:
        """Re-validate every hop so a redirect cannot reach an internal target."""
        url = str(request.url)
        if self.resolve_dns:
            await validate_monitor_url_async(url)
        else:
            validate_monitor_url(url, resolve=False)


# Global instance
checker_service = ProbeExecutor()
