"""Cloudflare account-owned API token.

Policies name permission groups by their display name; the ids the API
wants are looked up from the account's permission group list. The token
value is only returned when the token is created, so it is carried over
from the prior output on every update.
"""

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

from ..context import Context
from ..errors import ValidationError
from ..models import Phase, ResourceOutput
from ..resource import resource
from ..secret import Secret, secret
from .api import CloudflareApi, CloudflareProps, create_cloudflare_api

logger = logging.getLogger(__name__)

ACCOUNT_RESOURCE = "com.cloudflare.api.account"


class TokenPolicy(BaseModel):
    effect: Literal["allow", "deny"] = "allow"
    permission_groups: list[str] = Field(min_length=1)
    resources: dict[str, str] = Field(default_factory=lambda: {ACCOUNT_RESOURCE: "*"})


class AccountApiTokenProps(CloudflareProps):
    """Declared properties of an account API token.

    Attributes:
        policies: What the token may do. ``com.cloudflare.api.account`` in
            ``resources`` stands for the account the client is bound to.
    """

    policies: list[TokenPolicy] = Field(min_length=1)


class AccountApiTokenOutput(ResourceOutput):
    type: Literal["account_api_token"] = "account_api_token"
    id: str
    name: str
    status: str = "active"
    value: Secret | None = None
    policies: list[TokenPolicy]
    issued_on: str | None = None
    modified_on: str | None = None


async def list_permission_groups(api: CloudflareApi) -> list[dict[str, Any]]:
    return await api.get(
        f"{api.account_path}/tokens/permission_groups",
        action="list API token permission groups",
    )


async def create_token(api: CloudflareApi, payload: dict[str, Any]) -> dict[str, Any]:
    return await api.post(
        f"{api.account_path}/tokens",
        action=f'create account API token "{payload["name"]}"',
        json=payload,
    )


async def update_token(api: CloudflareApi, token_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    return await api.put(
        f"{api.account_path}/tokens/{token_id}",
        action=f'update account API token "{token_id}"',
        json=payload,
    )


async def delete_token(api: CloudflareApi, token_id: str) -> None:
    await api.delete(
        f"{api.account_path}/tokens/{token_id}",
        action=f'delete account API token "{token_id}"',
    )


async def build_policies(api: CloudflareApi, policies: list[TokenPolicy]) -> list[dict[str, Any]]:
    groups = {group["name"]: group["id"] for group in await list_permission_groups(api)}
    missing = sorted(
        {name for policy in policies for name in policy.permission_groups if name not in groups}
    )
    if missing:
        raise ValidationError(f"Unknown API token permission group(s): {', '.join(missing)}")

    account = f"{ACCOUNT_RESOURCE}.{api.account_id}"
    return [
        {
            "effect": policy.effect,
            "permission_groups": [{"id": groups[name]} for name in policy.permission_groups],
            "resources": {
                account if key == ACCOUNT_RESOURCE else key: value
                for key, value in policy.resources.items()
            },
        }
        for policy in policies
    ]


@resource("cloudflare::AccountApiToken", props=AccountApiTokenProps, output=AccountApiTokenOutput)
async def AccountApiToken(ctx: Context[AccountApiTokenOutput], id: str, props: AccountApiTokenProps):
    async with create_cloudflare_api(props) as api:
        if ctx.phase is Phase.DELETE:
            if ctx.output is not None:
                await delete_token(api, ctx.output.id)
            return ctx.destroy()

        name = props.name or ctx.create_physical_name()
        payload = {"name": name, "policies": await build_policies(api, props.policies)}

        if ctx.phase is Phase.UPDATE and ctx.output is not None:
            data = await update_token(api, ctx.output.id, payload)
            value = ctx.output.value
        else:
            data = await create_token(api, payload)
            if not data.get("value"):
                raise ValidationError(f'Cloudflare returned no value for account API token "{name}"')
            value = secret(data["value"])
            logger.info(f"Created account API token '{name}' ({data['id']})")

    return AccountApiTokenOutput(
        id=data["id"],
        name=data.get("name", name),
        status=data.get("status", "active"),
        value=value,
        policies=props.policies,
        issued_on=data.get("issued_on"),
        modified_on=data.get("modified_on"),
    )
