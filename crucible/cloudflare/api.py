"""Cloudflare REST API client."""

import logging
from collections.abc import Iterable
from typing import Any

import httpx

from ..errors import ConfigurationError
from ..models import ResourceProps
from ..secret import Secret
from ..settings import get_settings
from ..util.http import ProviderClient

logger = logging.getLogger(__name__)


class CloudflareApi(ProviderClient):
    """Thin client for the Cloudflare v4 API.

    Every response is wrapped in a ``{success, errors, result}`` envelope;
    ``request`` unwraps it and returns ``result``, or raises a
    ProviderError classified by status and error code.

    Credentials default to ``CRUCIBLE_CLOUDFLARE_API_TOKEN`` and
    ``CRUCIBLE_CLOUDFLARE_ACCOUNT_ID``.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        account_id: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        api_token = api_token or settings.cloudflare_api_token
        account_id = account_id or settings.cloudflare_account_id
        if not api_token:
            raise ConfigurationError(
                "Cloudflare API token is required. Set CRUCIBLE_CLOUDFLARE_API_TOKEN."
            )
        if not account_id:
            raise ConfigurationError(
                "Cloudflare account ID is required. Set CRUCIBLE_CLOUDFLARE_ACCOUNT_ID."
            )
        self.api_token = api_token
        self.account_id = account_id
        super().__init__(
            base_url or settings.cloudflare_base_url,
            {"Authorization": f"Bearer {api_token}"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def account_path(self) -> str:
        return f"/accounts/{self.account_id}"

    async def envelope(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[httpx.Response, dict[str, Any]]:
        """Send a request and return the response with its parsed envelope."""
        response = await self.send(
            method, path, action=action, json=json, params=params, headers=headers
        )
        body = self._json(response)
        if not isinstance(body, dict):
            body = {
                "success": response.is_success,
                "errors": [] if response.is_success else [{"message": response.text}],
                "result": None,
            }
        return response, body

    async def request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        exists_codes: Iterable[int] = (),
    ) -> Any:
        """Send a request and return the envelope's ``result``.

        Args:
            action: What is being done, e.g. ``create D1 database "x"``
            exists_codes: Cloudflare error codes meaning "already exists"
        """
        response, body = await self.envelope(
            method, path, action=action, json=json, params=params, headers=headers
        )
        if response.is_success and body.get("success", True):
            return body.get("result")
        details = [
            (error.get("code"), error.get("message", ""))
            for error in body.get("errors") or []
        ]
        raise self.error(response, action, details, exists_codes)

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)


def create_cloudflare_api(props: Any = None) -> CloudflareApi:
    """Client configured from resource props, falling back to settings."""
    return CloudflareApi(
        api_token=_unwrap(getattr(props, "api_token", None)),
        account_id=getattr(props, "account_id", None),
        base_url=getattr(props, "base_url", None),
    )


def _unwrap(value: Secret | str | None) -> str | None:
    return value.unencrypted if isinstance(value, Secret) else value


class CloudflareProps(ResourceProps):
    """Per-resource API overrides shared by every Cloudflare resource."""

    api_token: Secret | None = None
    account_id: str | None = None
    base_url: str | None = None
