"""PlanetScale REST API client."""

import logging
from typing import Any

import httpx

from ..errors import ConfigurationError
from ..models import ResourceProps
from ..secret import Secret
from ..settings import get_settings
from ..util.http import ProviderClient

logger = logging.getLogger(__name__)


class PlanetScaleApi(ProviderClient):
    """Thin client for the PlanetScale v1 API.

    Errors come back as ``{"code": "...", "message": "..."}`` and are
    classified the same way as Cloudflare errors.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        api_token = api_token or settings.planetscale_api_token
        if not api_token:
            raise ConfigurationError(
                "PlanetScale service token is required. Set CRUCIBLE_PLANETSCALE_API_TOKEN "
                "to '<token id>:<token>'."
            )
        super().__init__(
            base_url or settings.planetscale_base_url,
            {"Authorization": api_token},
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = await self.send(method, path, action=action, json=json, params=params)
        body = self._json(response)
        if response.is_success:
            return body
        message = (body or {}).get("message") if isinstance(body, dict) else None
        raise self.error(response, action, [(None, message or response.text)])

    def branch_path(self, organization: str, database: str, branch: str) -> str:
        return f"/organizations/{organization}/databases/{database}/branches/{branch}"

    async def get_branch(self, organization: str, database: str, branch: str) -> dict[str, Any]:
        return await self.request(
            "GET",
            self.branch_path(organization, database, branch),
            action=f'get branch "{branch}" of database "{database}"',
        )

    async def get_default_role(
        self, organization: str, database: str, branch: str
    ) -> dict[str, Any]:
        return await self.request(
            "GET",
            f"{self.branch_path(organization, database, branch)}/roles/default",
            action=f'get default role of database "{database}" branch "{branch}"',
        )

    async def reset_default_role(
        self, organization: str, database: str, branch: str
    ) -> dict[str, Any]:
        return await self.request(
            "POST",
            f"{self.branch_path(organization, database, branch)}/roles/default/reset",
            action=f'reset default role of database "{database}" branch "{branch}"',
        )


class PlanetScaleProps(ResourceProps):
    """Per-resource API overrides shared by every PlanetScale resource."""

    api_token: Secret | None = None
    base_url: str | None = None


def create_planetscale_api(props: Any = None) -> PlanetScaleApi:
    api_token = getattr(props, "api_token", None)
    return PlanetScaleApi(
        api_token=api_token.unencrypted if isinstance(api_token, Secret) else api_token,
        base_url=getattr(props, "base_url", None),
    )
