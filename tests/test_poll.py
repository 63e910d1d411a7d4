"""
Tests for polling and HTTP error classification.
"""

import httpx
import pytest

from crucible.errors import (
    ErrorKind,
    NotFoundError,
    PollTimeoutError,
    ProviderError,
    TransientProviderError,
)
from crucible.util import poll
from crucible.util.http import ProviderClient, classify


class Counter:
    """Async callable returning successive values."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    async def __call__(self):
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        if isinstance(value, BaseException):
            raise value
        return value


class TestPoll:
    """Bounded exponential backoff."""

    @pytest.mark.asyncio
    async def test_returns_when_condition_holds(self):
        fn = Counter("pending", "pending", "ready")
        result = await poll(fn, lambda status: status == "ready")
        assert result == "ready"
        assert fn.calls == 3

    @pytest.mark.asyncio
    async def test_attempt_cap(self):
        fn = Counter("pending")
        with pytest.raises(PollTimeoutError) as exc_info:
            await poll(fn, lambda status: status == "ready", description="branch", max_attempts=4)
        assert fn.calls == 4
        assert "Timed out waiting for branch after 4 attempt(s)" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_deadline(self):
        fn = Counter("pending")
        with pytest.raises(PollTimeoutError):
            await poll(fn, lambda status: False, timeout=0)
        assert fn.calls == 1

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        fn = Counter(TransientProviderError("503"), "ready")
        assert await poll(fn, lambda status: status == "ready") == "ready"
        assert fn.calls == 2

    @pytest.mark.asyncio
    async def test_last_transient_error_is_reported(self):
        fn = Counter(TransientProviderError("upstream down"))
        with pytest.raises(PollTimeoutError) as exc_info:
            await poll(fn, lambda status: True, max_attempts=2)
        assert "upstream down" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, TransientProviderError)

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        fn = Counter(NotFoundError("gone", code=404), "ready")
        with pytest.raises(NotFoundError):
            await poll(fn, lambda status: True)
        assert fn.calls == 1


class TestClassify:
    """HTTP status and provider codes onto error kinds."""

    @pytest.mark.parametrize(
        "status,codes,message,exists_codes,expected",
        [
            (409, [], "", (), ErrorKind.ALREADY_EXISTS),
            (400, [7502], "", (7502,), ErrorKind.ALREADY_EXISTS),
            (400, [], "A bucket with this name already exists", (), ErrorKind.ALREADY_EXISTS),
            (404, [], "", (), ErrorKind.NOT_FOUND),
            (500, [], "", (), ErrorKind.TRANSIENT),
            (429, [], "", (), ErrorKind.TRANSIENT),
            (400, [7502], "", (), ErrorKind.PROVIDER),
            (403, [], "forbidden", (), ErrorKind.PROVIDER),
        ],
    )
    def test_classify(self, status, codes, message, exists_codes, expected):
        assert classify(status, codes, message, exists_codes) is expected


class TestProviderClient:
    """Transport failures and error construction."""

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = ProviderClient(
            "https://example.test", {}, transport=httpx.MockTransport(handler)
        )
        async with client:
            with pytest.raises(TransientProviderError) as exc_info:
                await client.send("GET", "/things", action="listing things")
        assert "Network error listing things" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_error_message_and_kind(self):
        client = ProviderClient("https://example.test", {})
        response = httpx.Response(400, request=httpx.Request("POST", "https://example.test/x"))

        error = client.error(response, "creating x", [(7502, "duplicate")], exists_codes=(7502,))
        await client.aclose()

        assert isinstance(error, ProviderError)
        assert error.kind is ErrorKind.ALREADY_EXISTS
        assert error.status == 400
        assert error.code == 7502
        assert str(error) == "Error 400 creating x: 7502: duplicate (code 7502)"
