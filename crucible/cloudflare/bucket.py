"""Cloudflare R2 bucket."""

import logging
from typing import Any, Literal

from ..adoption import create_or_adopt
from ..context import Context
from ..errors import NotFoundError
from ..models import Phase, ResourceOutput
from ..resource import resource
from .api import CloudflareApi, CloudflareProps, create_cloudflare_api

logger = logging.getLogger(__name__)

R2Jurisdiction = Literal["default", "eu", "fedramp"]

# "The bucket you tried to create already exists, and you own it."
BUCKET_EXISTS_CODES = (10004,)


class R2BucketProps(CloudflareProps):
    """Declared properties of an R2 bucket.

    Attributes:
        jurisdiction: Data residency; changing it replaces the bucket
        location_hint: Preferred region; changing it replaces the bucket
        storage_class: Default storage class for new objects
        dev_remote: Create the real bucket even when the scope runs locally
    """

    jurisdiction: R2Jurisdiction = "default"
    location_hint: str | None = None
    storage_class: Literal["Standard", "InfrequentAccess"] | None = None
    dev_remote: bool = False


class R2BucketOutput(ResourceOutput):
    type: Literal["r2_bucket"] = "r2_bucket"
    name: str
    jurisdiction: R2Jurisdiction = "default"
    location: str | None = None
    storage_class: str | None = None
    creation_date: str | None = None
    dev_remote: bool = False


def _jurisdiction_headers(jurisdiction: str) -> dict[str, str] | None:
    if jurisdiction == "default":
        return None
    return {"cf-r2-jurisdiction": jurisdiction}


async def get_bucket(
    api: CloudflareApi, name: str, jurisdiction: str = "default"
) -> dict[str, Any]:
    return await api.get(
        f"{api.account_path}/r2/buckets/{name}",
        action=f'get R2 bucket "{name}"',
        headers=_jurisdiction_headers(jurisdiction),
    )


async def create_bucket(
    api: CloudflareApi, name: str, props: R2BucketProps
) -> dict[str, Any]:
    payload = {"name": name}
    if props.location_hint:
        payload["locationHint"] = props.location_hint
    if props.storage_class:
        payload["storageClass"] = props.storage_class
    return await api.post(
        f"{api.account_path}/r2/buckets",
        action=f'create R2 bucket "{name}"',
        json=payload,
        headers=_jurisdiction_headers(props.jurisdiction),
        exists_codes=BUCKET_EXISTS_CODES,
    )


async def update_storage_class(
    api: CloudflareApi, name: str, storage_class: str, jurisdiction: str = "default"
) -> dict[str, Any]:
    """Change the default storage class of an existing bucket."""
    headers = {"cf-r2-storage-class": storage_class, **(_jurisdiction_headers(jurisdiction) or {})}
    return await api.patch(
        f"{api.account_path}/r2/buckets/{name}",
        action=f'update storage class of R2 bucket "{name}"',
        headers=headers,
    )


async def delete_bucket(api: CloudflareApi, name: str, jurisdiction: str = "default") -> None:
    await api.delete(
        f"{api.account_path}/r2/buckets/{name}",
        action=f'delete R2 bucket "{name}"',
        headers=_jurisdiction_headers(jurisdiction),
    )


def _output(name: str, props: R2BucketProps, data: dict[str, Any] | None) -> R2BucketOutput:
    data = data or {}
    return R2BucketOutput(
        name=data.get("name", name),
        jurisdiction=data.get("jurisdiction", props.jurisdiction) or props.jurisdiction,
        location=data.get("location", props.location_hint),
        storage_class=data.get("storage_class", props.storage_class),
        creation_date=data.get("creation_date"),
        dev_remote=props.dev_remote,
    )


@resource("cloudflare::R2Bucket", props=R2BucketProps, output=R2BucketOutput)
async def R2Bucket(ctx: Context[R2BucketOutput], id: str, props: R2BucketProps):
    """Create, adopt or delete an R2 bucket.

    Only the storage class changes in place (also on adoption). A name
    change is a create-before-delete replacement, a jurisdiction or location
    change deletes first (the name may stay the same).
    """
    name = props.name or (ctx.output.name if ctx.output else None) or ctx.create_physical_name()

    if ctx.scope.local and not props.dev_remote and ctx.phase is not Phase.DELETE:
        logger.debug(f"R2 bucket '{name}' runs locally, skipping remote calls")
        return _output(name, props, None)

    if ctx.phase is Phase.DELETE:
        if ctx.output is not None and (not ctx.scope.local or ctx.output.dev_remote):
            async with create_cloudflare_api(props) as api:
                await delete_bucket(api, ctx.output.name, ctx.output.jurisdiction)
        return ctx.destroy()

    if ctx.phase is Phase.UPDATE and ctx.output is not None:
        if ctx.output.name != name:
            return ctx.replace()
        if (
            ctx.output.jurisdiction != props.jurisdiction
            or (
                props.location_hint
                and (ctx.output.location or "").lower() != props.location_hint.lower()
            )
        ):
            return ctx.replace(force=True)

    async with create_cloudflare_api(props) as api:

        async def find() -> dict[str, Any] | None:
            try:
                return await get_bucket(api, name, props.jurisdiction)
            except NotFoundError:
                return None

        async def converge(existing: dict[str, Any]) -> dict[str, Any]:
            if props.storage_class and existing.get("storage_class") != props.storage_class:
                logger.info(f"Updating storage class of R2 bucket '{name}' to {props.storage_class}")
                updated = await update_storage_class(
                    api, name, props.storage_class, props.jurisdiction
                )
                return {**existing, **(updated or {}), "storage_class": props.storage_class}
            return existing

        if ctx.phase is Phase.UPDATE:
            data = await find()
            if data is None:
                data = await create_bucket(api, name, props)
            else:
                data = await converge(data)
        else:
            data = await create_or_adopt(
                lambda: create_bucket(api, name, props),
                find,
                converge,
                adopt=ctx.adopt,
                name=name,
                kind="R2 bucket",
            )
    return _output(name, props, data)
