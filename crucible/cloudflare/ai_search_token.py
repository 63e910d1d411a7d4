"""AI Search service token."""

import logging
from typing import Any, Literal

from ..adoption import create_or_adopt
from ..context import Context
from ..errors import ValidationError
from ..models import Phase, ResourceOutput
from ..resource import resource
from ..secret import Secret
from .account_api_token import AccountApiToken, TokenPolicy
from .api import CloudflareApi, CloudflareProps, create_cloudflare_api

logger = logging.getLogger(__name__)

SERVICE_PERMISSION_GROUPS = ["AI Search Index Engine", "Workers R2 Storage Write"]


class AiSearchTokenProps(CloudflareProps):
    """Declared properties of an AI Search token.

    The token registers an account API token with AI Search. When
    ``cf_api_id``/``cf_api_key`` are omitted, a dedicated account token
    limited to AI Search indexing and R2 writes is created as a nested
    resource and torn down with this one.
    """

    cf_api_id: str | None = None
    cf_api_key: Secret | None = None


class AiSearchTokenOutput(ResourceOutput):
    type: Literal["ai_search_token"] = "ai_search_token"
    token_id: str
    account_token_id: str | None = None
    account_id: str
    account_tag: str | None = None
    name: str
    cf_api_id: str
    cf_api_key: Secret
    enabled: bool = True
    created_at: str | None = None
    modified_at: str | None = None


async def create_token(api: CloudflareApi, payload: dict[str, Any]) -> dict[str, Any]:
    return await api.post(
        f"{api.account_path}/ai-search/tokens",
        action=f'create AI Search token "{payload["name"]}"',
        json=payload,
    )


async def list_tokens(api: CloudflareApi) -> list[dict[str, Any]]:
    return await api.get(
        f"{api.account_path}/ai-search/tokens", action="list AI Search tokens"
    )


async def delete_token(api: CloudflareApi, token_id: str) -> None:
    await api.delete(
        f"{api.account_path}/ai-search/tokens/{token_id}",
        action=f'delete AI Search token "{token_id}"',
    )


async def _account_token(
    ctx: Context, name: str, props: AiSearchTokenProps
) -> tuple[str, Secret, str | None]:
    """Credentials to register, plus the id of the token created for them."""
    if props.cf_api_id and props.cf_api_key:
        return props.cf_api_id, props.cf_api_key, None
    if props.cf_api_id or props.cf_api_key:
        raise ValidationError("cf_api_id and cf_api_key must be given together")

    token = await AccountApiToken(
        ctx.scope,
        "account-token",
        name=f"{name} (AI Search Service Token)",
        policies=[TokenPolicy(permission_groups=SERVICE_PERMISSION_GROUPS)],
        delete=props.delete,
        api_token=props.api_token,
        account_id=props.account_id,
        base_url=props.base_url,
    )
    if token.value is None:
        raise ValidationError("Account API token for AI Search has no value")
    return token.id, token.value, token.id


def _output(
    data: dict[str, Any], cf_api_key: Secret, account_token_id: str | None
) -> AiSearchTokenOutput:
    return AiSearchTokenOutput(
        token_id=data["id"],
        account_token_id=account_token_id,
        account_id=data.get("account_id", ""),
        account_tag=data.get("account_tag"),
        name=data["name"],
        cf_api_id=data["cf_api_id"],
        cf_api_key=cf_api_key,
        enabled=data.get("enabled", True),
        created_at=data.get("created_at"),
        modified_at=data.get("modified_at"),
    )


@resource("cloudflare::AiSearchToken", props=AiSearchTokenProps, output=AiSearchTokenOutput)
async def AiSearchToken(ctx: Context[AiSearchTokenOutput], id: str, props: AiSearchTokenProps):
    if ctx.phase is Phase.DELETE:
        # The nested account token is deleted after this one.
        if ctx.output is not None:
            async with create_cloudflare_api(props) as api:
                await delete_token(api, ctx.output.token_id)
        return ctx.destroy()

    name = props.name or ctx.create_physical_name()
    cf_api_id, cf_api_key, account_token_id = await _account_token(ctx, name, props)

    # Tokens can not be changed once registered.
    if ctx.phase is Phase.UPDATE and ctx.output is not None:
        return ctx.output

    async with create_cloudflare_api(props) as api:

        async def find() -> dict[str, Any] | None:
            tokens = await list_tokens(api)
            return next((token for token in tokens if token.get("name") == name), None)

        async def converge(existing: dict[str, Any]) -> dict[str, Any]:
            return existing

        data = await create_or_adopt(
            lambda: create_token(
                api,
                {"name": name, "cf_api_id": cf_api_id, "cf_api_key": cf_api_key.unencrypted},
            ),
            find,
            converge,
            adopt=ctx.adopt,
            name=name,
            kind="AI Search token",
        )
    return _output(data, cf_api_key, account_token_id)
