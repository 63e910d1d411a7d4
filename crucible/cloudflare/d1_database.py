"""Cloudflare D1 database."""

import logging
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict

from ..adoption import create_or_adopt
from ..context import Context
from ..errors import NotFoundError, ValidationError
from ..models import Phase, ResourceOutput
from ..resource import resource
from .api import CloudflareApi, CloudflareProps, create_cloudflare_api
from .d1_clone import clone_database

logger = logging.getLogger(__name__)

D1Jurisdiction = Literal["default", "eu", "fedramp"]

# "A database with that name already exists."
DATABASE_EXISTS_CODES = (7502,)


class ReadReplication(BaseModel):
    mode: Literal["auto", "disabled"]


class CloneById(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str


class CloneByName(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str


class D1DatabaseOutput(ResourceOutput):
    type: Literal["d1"] = "d1"
    id: str = ""
    name: str
    primary_location_hint: str | None = None
    read_replication: ReadReplication | None = None
    jurisdiction: D1Jurisdiction = "default"
    dev_id: str
    dev_remote: bool = False


class D1DatabaseProps(CloudflareProps):
    """Declared properties of a D1 database.

    Attributes:
        primary_location_hint: Region hint; fixed once the database exists
        read_replication: Read replication mode, the only mutable setting
        jurisdiction: Data residency; fixed once the database exists
        clone: Database whose data is copied into this one when it is
            created: another D1Database output, ``{"id": ...}`` or
            ``{"name": ...}``
        dev_remote: Create the real database even when the scope runs locally
    """

    primary_location_hint: str | None = None
    read_replication: ReadReplication | None = None
    jurisdiction: D1Jurisdiction = "default"
    clone: Union[D1DatabaseOutput, CloneById, CloneByName, None] = None
    dev_remote: bool = False


async def resolve_clone_source(
    api: CloudflareApi, source: D1DatabaseOutput | CloneById | CloneByName
) -> str:
    """Database id to clone from."""
    if isinstance(source, CloneByName):
        databases = await list_databases(api, source.name)
        found = next((db for db in databases if db.get("name") == source.name), None)
        if found is None:
            raise NotFoundError(f"Source database with name '{source.name}' not found for cloning")
        return found["uuid"]
    if not source.id:
        raise ValidationError("Cannot clone from a D1 database that has no remote id")
    return source.id


async def create_database(
    api: CloudflareApi, name: str, props: D1DatabaseProps
) -> dict[str, Any]:
    payload: dict[str, Any] = {"name": name}
    if props.jurisdiction != "default":
        payload["jurisdiction"] = props.jurisdiction
    if props.primary_location_hint:
        payload["primary_location_hint"] = props.primary_location_hint
    database = await api.post(
        f"{api.account_path}/d1/database",
        action=f'create D1 database "{name}"',
        json=payload,
        exists_codes=DATABASE_EXISTS_CODES,
    )
    if not database.get("uuid"):
        raise ValidationError(f'Cloudflare returned no UUID for D1 database "{name}"')
    if props.read_replication:
        return await update_read_replication(api, database["uuid"], props.read_replication.mode)
    return database


async def get_database(api: CloudflareApi, database_id: str) -> dict[str, Any]:
    return await api.get(
        f"{api.account_path}/d1/database/{database_id}",
        action=f'get D1 database "{database_id}"',
    )


async def list_databases(api: CloudflareApi, name: str | None = None) -> list[dict[str, Any]]:
    return await api.get(
        f"{api.account_path}/d1/database",
        action="list D1 databases" + (f' with name "{name}"' if name else ""),
        params={"name": name} if name else None,
    )


async def delete_database(api: CloudflareApi, database_id: str) -> None:
    await api.delete(
        f"{api.account_path}/d1/database/{database_id}",
        action=f'delete D1 database "{database_id}"',
    )


async def update_read_replication(
    api: CloudflareApi, database_id: str, mode: str
) -> dict[str, Any]:
    return await api.patch(
        f"{api.account_path}/d1/database/{database_id}",
        action=f'update read replication mode for D1 database "{database_id}"',
        json={"read_replication": {"mode": mode}},
    )


@resource("cloudflare::D1Database", props=D1DatabaseProps, output=D1DatabaseOutput)
async def D1Database(ctx: Context[D1DatabaseOutput], id: str, props: D1DatabaseProps):
    """Create, adopt, update or delete a D1 database.

    The database name is ``props.name``, else the name it already has, else
    a physical name derived from the scope. Renaming replaces the database;
    the location hint and jurisdiction can not change after creation. A
    `clone` source is copied in only when the database is newly created.
    """
    prior = ctx.output
    name = props.name or (prior.name if prior else None) or ctx.create_physical_name()

    if ctx.phase is Phase.UPDATE and prior is not None and prior.name != name:
        return ctx.replace()

    local = ctx.scope.local and not props.dev_remote
    dev_id = (prior.dev_id or prior.id) if prior else name

    def output(data: dict[str, Any] | None) -> D1DatabaseOutput:
        return D1DatabaseOutput(
            id=(data or {}).get("uuid") or (prior.id if prior else ""),
            name=name,
            primary_location_hint=props.primary_location_hint,
            read_replication=props.read_replication,
            jurisdiction=props.jurisdiction,
            dev_id=dev_id,
            dev_remote=props.dev_remote,
        )

    if ctx.phase is Phase.DELETE:
        if prior is not None and prior.id and not local:
            async with create_cloudflare_api(props) as api:
                await delete_database(api, prior.id)
        return ctx.destroy()

    if local:
        logger.debug(f"D1 database '{name}' runs locally, skipping remote calls")
        return output(None)

    async with create_cloudflare_api(props) as api:
        # A database first declared locally has no remote id yet, so its
        # first remote run goes through the create path even as an update.
        if ctx.phase is Phase.CREATE or prior is None or not prior.id:

            async def find() -> dict[str, Any] | None:
                databases = await list_databases(api, name)
                found = next((db for db in databases if db.get("name") == name), None)
                if found is None:
                    return None
                return await get_database(api, found["uuid"])

            async def converge(existing: dict[str, Any]) -> dict[str, Any]:
                if props.read_replication:
                    return await update_read_replication(
                        api, existing["uuid"], props.read_replication.mode
                    )
                return existing

            async def create() -> dict[str, Any]:
                database = await create_database(api, name, props)
                if props.clone is not None:
                    source_id = await resolve_clone_source(api, props.clone)
                    await clone_database(api, source_id, database["uuid"])
                return database

            data = await create_or_adopt(
                create,
                find,
                converge,
                adopt=ctx.adopt,
                name=name,
                kind="D1 database",
            )
            return output(data)

        if (
            props.primary_location_hint
            and props.primary_location_hint != prior.primary_location_hint
        ):
            raise ValidationError(
                f"Cannot update primary_location_hint from '{prior.primary_location_hint}' "
                f"to '{props.primary_location_hint}' after database creation"
            )
        if props.jurisdiction != prior.jurisdiction:
            raise ValidationError(
                f"Cannot update jurisdiction from '{prior.jurisdiction}' "
                f"to '{props.jurisdiction}' after database creation"
            )
        mode = props.read_replication.mode if props.read_replication else "disabled"
        data = await update_read_replication(api, prior.id, mode)
        return output(data)
