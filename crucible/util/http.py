"""Shared httpx plumbing for provider API clients."""

import logging
from collections.abc import Iterable
from typing import Any

import httpx

from ..errors import ErrorKind, ProviderError, provider_error
from ..settings import get_settings

logger = logging.getLogger(__name__)


def classify(
    status: int,
    codes: Iterable[int] = (),
    message: str = "",
    exists_codes: Iterable[int] = (),
) -> ErrorKind:
    """Map an HTTP failure onto an ErrorKind.

    Provider-specific "already exists" codes win over the status code, since
    some APIs report duplicates as a plain 400.
    """
    exists = set(exists_codes)
    if exists.intersection(codes) or status == 409 or "already exists" in message.lower():
        return ErrorKind.ALREADY_EXISTS
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status >= 500 or status == 429:
        return ErrorKind.TRANSIENT
    return ErrorKind.PROVIDER


class ProviderClient:
    """Base class wrapping an ``httpx.AsyncClient`` for one provider API.

    Use as an async context manager so the connection pool is closed:

        async with CloudflareApi() as api:
            await api.get(...)

    Attributes:
        transport: Optional transport used when none is passed explicitly.
            Tests point this at an ``httpx.MockTransport``.
    """

    transport: httpx.AsyncBaseTransport | None = None

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str],
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self._timeout = settings.http_timeout if timeout is None else timeout
        self._transport = transport or type(self).transport
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )
        self._bare_client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        await self._client.aclose()
        if self._bare_client is not None:
            await self._bare_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.aclose()
        return False

    async def send(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request; network failures become transient ProviderErrors."""
        logger.debug(f"{method} {path}")
        try:
            return await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.TransportError as e:
            raise provider_error(
                f"Network error {action}: {e}", ErrorKind.TRANSIENT
            ) from e

    async def transfer(
        self,
        method: str,
        url: str,
        *,
        action: str,
        content: bytes | None = None,
    ) -> httpx.Response:
        """Request an absolute pre-signed URL without the API credentials.

        Raises:
            ProviderError: network failure or non-2xx response
        """
        if self._bare_client is None:
            self._bare_client = httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            )
        logger.debug(f"{method} {httpx.URL(url).copy_with(query=None)}")
        try:
            response = await self._bare_client.request(method, url, content=content)
        except httpx.TransportError as e:
            raise provider_error(
                f"Network error {action}: {e}", ErrorKind.TRANSIENT
            ) from e
        if not response.is_success:
            raise self.error(response, action, [])
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    def error(
        self,
        response: httpx.Response,
        action: str,
        details: list[tuple[int | None, str]],
        exists_codes: Iterable[int] = (),
    ) -> ProviderError:
        """Build the error for a failed response from (code, message) pairs."""
        if not details:
            details = [(None, response.reason_phrase or "request failed")]
        text = ", ".join(
            f"{code}: {message}" if code is not None else message
            for code, message in details
        )
        codes = [code for code, _ in details if code is not None]
        kind = classify(response.status_code, codes, text, exists_codes)
        return provider_error(
            f"Error {response.status_code} {action}: {text}",
            kind,
            status=response.status_code,
            code=codes[0] if codes else None,
        )
