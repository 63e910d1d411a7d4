"""Cloudflare VPC (connectivity directory) service."""

import logging
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict

from ..adoption import create_or_adopt
from ..context import Context
from ..models import Phase, ResourceOutput
from ..resource import resource
from .api import CloudflareApi, CloudflareProps, create_cloudflare_api

logger = logging.getLogger(__name__)

# Service name already taken
SERVICE_EXISTS_CODES = (5101,)


class _Host(BaseModel):
    model_config = ConfigDict(extra="forbid")


class Network(_Host):
    tunnel_id: str


class ResolverNetwork(Network):
    resolver_ips: list[str] | None = None


class IPv4Host(_Host):
    ipv4: str
    network: Network


class IPv6Host(_Host):
    ipv6: str
    network: Network


class DualStackHost(_Host):
    ipv4: str
    ipv6: str
    network: Network


class HostnameHost(_Host):
    hostname: str
    resolver_network: ResolverNetwork


Host = Union[DualStackHost, IPv4Host, IPv6Host, HostnameHost]


class VpcServiceProps(CloudflareProps):
    service_type: Literal["http"] = "http"
    tcp_port: int | None = None
    app_protocol: str | None = None
    http_port: int | None = None
    https_port: int | None = None
    host: Host


class VpcServiceOutput(ResourceOutput):
    type: Literal["vpc_service"] = "vpc_service"
    name: str
    service_id: str
    service_type: str = "http"
    tcp_port: int | None = None
    app_protocol: str | None = None
    http_port: int | None = None
    https_port: int | None = None
    host: dict[str, Any]
    created_at: str | None = None
    updated_at: str | None = None


def _services_path(api: CloudflareApi) -> str:
    return f"{api.account_path}/connectivity/directory/services"


async def create_service(api: CloudflareApi, body: dict[str, Any]) -> dict[str, Any]:
    return await api.post(
        _services_path(api),
        action=f'create connectivity service "{body["name"]}"',
        json=body,
        exists_codes=SERVICE_EXISTS_CODES,
    )


async def list_services(api: CloudflareApi) -> list[dict[str, Any]]:
    return await api.get(
        _services_path(api),
        action="list connectivity services",
        params={"per_page": 1000},
    )


async def update_service(
    api: CloudflareApi, service_id: str, body: dict[str, Any]
) -> dict[str, Any]:
    return await api.put(
        f"{_services_path(api)}/{service_id}",
        action=f'update connectivity service "{service_id}"',
        json=body,
    )


async def delete_service(api: CloudflareApi, service_id: str) -> None:
    await api.delete(
        f"{_services_path(api)}/{service_id}",
        action=f'delete connectivity service "{service_id}"',
    )


def _output(service: dict[str, Any]) -> VpcServiceOutput:
    return VpcServiceOutput(
        name=service["name"],
        service_id=service["service_id"],
        service_type=service.get("type", "http"),
        tcp_port=service.get("tcp_port"),
        app_protocol=service.get("app_protocol"),
        http_port=service.get("http_port"),
        https_port=service.get("https_port"),
        host=service["host"],
        created_at=service.get("created_at"),
        updated_at=service.get("updated_at"),
    )


@resource("cloudflare::VpcService", props=VpcServiceProps, output=VpcServiceOutput)
async def VpcService(ctx: Context[VpcServiceOutput], id: str, props: VpcServiceProps):
    async with create_cloudflare_api(props) as api:
        if ctx.phase is Phase.DELETE:
            if ctx.output is not None:
                await delete_service(api, ctx.output.service_id)
            return ctx.destroy()

        body = {
            key: value
            for key, value in {
                "name": props.name or ctx.create_physical_name(),
                "type": props.service_type,
                "tcp_port": props.tcp_port,
                "app_protocol": props.app_protocol,
                "http_port": props.http_port,
                "https_port": props.https_port,
                "host": props.host.model_dump(exclude_none=True),
            }.items()
            if value is not None
        }

        if ctx.phase is Phase.UPDATE and ctx.output is not None:
            return _output(await update_service(api, ctx.output.service_id, body))

        async def find() -> dict[str, Any] | None:
            services = await list_services(api)
            return next((s for s in services if s.get("name") == body["name"]), None)

        async def converge(existing: dict[str, Any]) -> dict[str, Any]:
            return await update_service(api, existing["service_id"], body)

        service = await create_or_adopt(
            lambda: create_service(api, body),
            find,
            converge,
            adopt=ctx.adopt,
            name=body["name"],
            kind="VPC service",
        )
    return _output(service)
