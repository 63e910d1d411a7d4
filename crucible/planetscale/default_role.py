"""PlanetScale default role of a Postgres branch."""

import logging
from typing import Any, Literal

from ..context import Context
from ..errors import AlreadyExistsError, ConfigurationError, NotFoundError
from ..models import Phase, ResourceOutput
from ..resource import resource
from ..secret import Secret, secret
from ..settings import get_settings
from .api import PlanetScaleApi, PlanetScaleProps, create_planetscale_api
from .branch import wait_for_branch_ready

logger = logging.getLogger(__name__)


class DatabaseOutput(ResourceOutput):
    """Output of a PlanetScale database resource."""

    type: Literal["planetscale_database"] = "planetscale_database"
    name: str
    organization: str


class BranchOutput(ResourceOutput):
    """Output of a PlanetScale branch resource."""

    type: Literal["planetscale_branch"] = "planetscale_branch"
    name: str
    database: str | None = None


class DefaultRoleProps(PlanetScaleProps):
    """Declared properties of a branch's default role.

    Attributes:
        organization: Organization name (default: the database output's
            organization, then settings)
        database: Database name or DatabaseOutput
        branch: Branch name or BranchOutput
        force_reset: Reset credentials of a role that already exists
    """

    organization: str | None = None
    database: str | DatabaseOutput
    branch: str | BranchOutput = "main"
    force_reset: bool = False


class DefaultRoleOutput(ResourceOutput):
    id: str
    name: str | None = None
    expires_at: str | None = None
    host: str
    username: str
    ttl: int | None = None
    password: Secret
    database_name: str
    connection_url: Secret
    connection_url_pooled: Secret
    inherited_roles: list[str] = []
    organization: str
    database: str
    branch: str


def _organization(props: DefaultRoleProps) -> str:
    organization = (
        props.organization
        or (props.database.organization if isinstance(props.database, DatabaseOutput) else None)
        or get_settings().planetscale_organization
    )
    if not organization:
        raise ConfigurationError(
            "PlanetScale organization is required. Set the organization prop or "
            "CRUCIBLE_PLANETSCALE_ORGANIZATION."
        )
    return organization


async def _ensure_no_role(api: PlanetScaleApi, organization: str, database: str, branch: str) -> None:
    try:
        await api.get_default_role(organization, database, branch)
    except NotFoundError:
        return
    raise AlreadyExistsError(
        f'Default role already exists for database "{database}" branch "{branch}". '
        f"Use force_reset to reset the role."
    )


def _output(data: dict[str, Any], organization: str, database: str, branch: str) -> DefaultRoleOutput:
    user, password = data["username"], data["password"]
    host, database_name = data["access_host_url"], data["database_name"]

    def url(port: int) -> Secret:
        return secret(
            f"postgresql://{user}:{password}@{host}:{port}/{database_name}?sslmode=verify-full"
        )

    return DefaultRoleOutput(
        id=data["id"],
        name=data.get("name"),
        expires_at=data.get("expires_at"),
        host=host,
        username=user,
        ttl=data.get("ttl"),
        password=secret(password),
        database_name=database_name,
        connection_url=url(5432),
        connection_url_pooled=url(6432),
        inherited_roles=data.get("inherited_roles") or [],
        organization=organization,
        database=database,
        branch=branch,
    )


@resource("planetscale::DefaultRole", props=DefaultRoleProps, output=DefaultRoleOutput)
async def DefaultRole(ctx: Context[DefaultRoleOutput], id: str, props: DefaultRoleProps):
    """Take over the default role of a branch and expose its credentials.

    There is no delete endpoint: deleting resets the role so the
    credentials handed out are invalidated.
    """
    organization = _organization(props)
    database = props.database if isinstance(props.database, str) else props.database.name
    branch = props.branch if isinstance(props.branch, str) else props.branch.name

    if ctx.phase is Phase.UPDATE and ctx.output is not None:
        if database != ctx.output.database or branch != ctx.output.branch:
            return ctx.replace()
        return ctx.output

    async with create_planetscale_api(props) as api:
        if ctx.phase is Phase.DELETE:
            await api.reset_default_role(organization, database, branch)
            return ctx.destroy()

        if not props.force_reset:
            await _ensure_no_role(api, organization, database, branch)
        await wait_for_branch_ready(api, organization, database, branch)
        data = await api.reset_default_role(organization, database, branch)
    logger.info(f"Reset default role of {database}/{branch}")
    return _output(data, organization, database, branch)
