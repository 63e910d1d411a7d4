"""
Cloudflare AI Search instance.

The declared source is one of three shapes, resolved once into a
CanonicalSource before any provider call:

- an R2Bucket output
- an R2 source config (bucket name or R2Bucket output, plus filters)
- a web crawler source config (a domain onboarded to the account)
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..adoption import create_or_adopt
from ..context import Context
from ..errors import NotFoundError, ProviderError, ValidationError, provider_error
from ..models import Phase, ResourceOutput
from ..resource import resource
from ..util import poll
from .ai_search_token import AiSearchToken, AiSearchTokenOutput
from .api import CloudflareApi, CloudflareProps, create_cloudflare_api
from .bucket import R2BucketOutput, R2Jurisdiction, get_bucket

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 32

# ai_search_instance_already_exists, reported as a 400
INSTANCE_EXISTS_CODES = (7022,)
# ai_search_not_found, returned for job logs before the job starts
NOT_FOUND_CODE = 7002

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

# Domain validation error codes as the Cloudflare dashboard explains them
DOMAIN_ERRORS = {
    "not_a_valid_domain": "Not a valid domain.",
    "invalid_domain": "Invalid domain. The domain needs to belong to this account.",
    "fail_to_find_domain_info": "Failed to find domain information.",
    "missing_sitemap": "Sitemap not found. Please check your robots.txt.",
    "domain_not_owned_by_user": "The domain needs to belong to this account.",
    "forbidden_robots_txt": "Failed to fetch robots.txt: The file is inaccessible.",
    "forbidden_sitemap": "Failed to fetch your sitemap: The file is inaccessible.",
}


# =============================================================================
# Declared props
# =============================================================================


class R2Source(BaseModel):
    """Index objects of an R2 bucket."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["r2"] = "r2"
    bucket: Union[str, R2BucketOutput]
    jurisdiction: R2Jurisdiction = "default"
    prefix: str | None = None
    include_paths: list[str] | None = Field(default=None, max_length=10)
    exclude_paths: list[str] | None = Field(default=None, max_length=10)


class WebCrawlerSource(BaseModel):
    """Crawl a website on a domain onboarded to the account."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["web-crawler"] = "web-crawler"
    domain: str
    include_paths: list[str] | None = Field(default=None, max_length=10)
    exclude_paths: list[str] | None = Field(default=None, max_length=10)
    parse_type: Literal["sitemap", "feed-rss"] | None = None
    parse_options: dict[str, Any] | None = None
    store_options: dict[str, Any] | None = None

    @field_validator("domain")
    @classmethod
    def _plain_domain(cls, domain: str) -> str:
        if "://" in domain:
            raise ValueError(
                f'Invalid domain format "{domain}". Provide just the domain '
                f'(e.g. "docs.example.com"), not a URL. Use ai_crawler() for URL-based crawling.'
            )
        if "/" in domain:
            raise ValueError(
                f'Invalid domain format "{domain}". Provide just the domain without paths; '
                f"use include_paths to filter paths, or ai_crawler() for URL-based crawling."
            )
        return domain


Source = Annotated[
    Union[R2BucketOutput, R2Source, WebCrawlerSource], Field(discriminator="type")
]


class AiSearchProps(CloudflareProps):
    """Declared properties of an AI Search instance.

    Attributes:
        source: Data source to index
        token: AI Search token to use; one is created when neither this
            nor ``token_id`` is given
        token_id: Id (UUID) of an existing AI Search token
        index_on_create: Run an indexing job right after creation
    """

    source: Source
    token: AiSearchTokenOutput | None = None
    token_id: str | None = None
    ai_search_model: str | None = None
    embedding_model: str | None = None
    chunk: bool | None = None
    chunk_size: int | None = Field(default=None, ge=64)
    chunk_overlap: int | None = Field(default=None, ge=0, le=30)
    max_num_results: int | None = Field(default=None, ge=1, le=50)
    score_threshold: float | None = Field(default=None, ge=0, le=1)
    reranking: bool | None = None
    reranking_model: str | None = None
    rewrite_query: bool | None = None
    rewrite_model: str | None = None
    cache: bool | None = None
    cache_threshold: (
        Literal["super_strict_match", "close_enough", "flexible_friend", "anything_goes"] | None
    ) = None
    metadata: dict[str, Any] | None = None
    index_on_create: bool = True

    @model_validator(mode="after")
    def _check(self) -> "AiSearchProps":
        if self.name is not None and not 1 <= len(self.name) <= NAME_MAX_LENGTH:
            raise ValueError(
                f"AI Search instance name must be 1-{NAME_MAX_LENGTH} characters, "
                f'got {len(self.name)} ("{self.name}")'
            )
        if self.token is not None and self.token_id is not None:
            raise ValueError("Pass either token or token_id, not both")
        for token_id in (self.token_id, self.token.token_id if self.token else None):
            if token_id is not None and not UUID_PATTERN.match(token_id):
                raise ValueError(
                    f'Invalid token ID: "{token_id}". The token ID must be the UUID '
                    f"of an AI Search service token."
                )
        return self


class AiSearchOutput(ResourceOutput):
    """AI Search instance as the API reports it; ``name`` aliases ``id``."""

    id: str
    name: str
    type: Literal["r2", "web-crawler"]
    source: str
    vectorize_name: str | None = None
    token_id: str | None = None
    account_id: str | None = None
    created_at: str | None = None
    modified_at: str | None = None


# =============================================================================
# Canonical source
# =============================================================================


@dataclass(frozen=True)
class CanonicalSource:
    type: Literal["r2", "web-crawler"]
    source: str
    jurisdiction: str = "default"
    prefix: str | None = None
    include_paths: list[str] | None = None
    exclude_paths: list[str] | None = None
    web_crawler: dict[str, Any] = field(default_factory=dict)

    def params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "include_items": self.include_paths,
            "exclude_items": self.exclude_paths,
        }
        if self.type == "r2":
            if self.jurisdiction != "default":
                params["r2_jurisdiction"] = self.jurisdiction
            params["prefix"] = self.prefix
        else:
            params["web_crawler"] = _compact(self.web_crawler)
        return _compact(params)


async def resolve_source(
    api: CloudflareApi, ctx: Context, source: Union[R2BucketOutput, R2Source, WebCrawlerSource]
) -> CanonicalSource:
    """Resolve the declared source and check it exists remotely."""
    match source:
        case R2BucketOutput():
            await _check_bucket(api, ctx, source, source.jurisdiction)
            return CanonicalSource("r2", source.name, source.jurisdiction)
        case R2Source(bucket=R2BucketOutput() as bucket):
            await _check_bucket(api, ctx, bucket, bucket.jurisdiction)
            return CanonicalSource(
                "r2",
                bucket.name,
                bucket.jurisdiction,
                source.prefix,
                source.include_paths,
                source.exclude_paths,
            )
        case R2Source(bucket=str() as bucket):
            await _check_bucket(api, ctx, bucket, source.jurisdiction)
            return CanonicalSource(
                "r2",
                bucket,
                source.jurisdiction,
                source.prefix,
                source.include_paths,
                source.exclude_paths,
            )
        case WebCrawlerSource():
            await validate_domain(api, source.domain)
            return CanonicalSource(
                "web-crawler",
                source.domain,
                include_paths=source.include_paths,
                exclude_paths=source.exclude_paths,
                web_crawler={
                    "parse_type": source.parse_type,
                    "parse_options": source.parse_options,
                    "store_options": source.store_options,
                },
            )
    raise ValidationError(f"Unsupported AI Search source: {type(source).__name__}")


async def _check_bucket(
    api: CloudflareApi, ctx: Context, bucket: R2BucketOutput | str, jurisdiction: str
) -> None:
    if isinstance(bucket, R2BucketOutput):
        if ctx.scope.local and not bucket.dev_remote:
            raise ValidationError(
                f'AI Search "{ctx.id}" depends on an R2 bucket that runs locally, but '
                f"AI Search needs a deployed bucket. Declare the bucket with dev_remote=True."
            )
        name = bucket.name
    else:
        name = bucket
    try:
        await get_bucket(api, name, jurisdiction)
    except ProviderError as e:
        raise provider_error(
            f'Failed to validate R2 bucket "{name}" ({jurisdiction}) for AI Search "{ctx.id}": {e}',
            e.kind,
            status=e.status,
            code=e.code,
        ) from e


async def validate_domain(api: CloudflareApi, domain: str) -> None:
    """Check that a crawl domain belongs to the account.

    Creating an instance for an unknown domain fails with a bare 500, so the
    domain is checked up front the way the dashboard does it.
    """
    response, body = await api.envelope(
        "POST",
        f"{api.account_path}/ai-search/domains",
        action=f'validate domain "{domain}"',
        json={"domain": domain},
    )
    if body.get("success"):
        return
    lines = [f'Failed to validate domain "{domain}" ({response.status_code}):']
    for error in body.get("errors") or []:
        message = error.get("message", "")
        lines.append(f"- [{error.get('code')}] {DOMAIN_ERRORS.get(message, message)}")
    raise ValidationError("\n".join(lines))


# =============================================================================
# API calls
# =============================================================================


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None and value != {}}


def build_payload(name: str, source: CanonicalSource, token_id: str, props: AiSearchProps) -> dict[str, Any]:
    return _compact(
        {
            "id": name,
            "type": source.type,
            "source": source.source,
            "source_params": source.params(),
            "token_id": token_id,
            "ai_search_model": props.ai_search_model,
            "embedding_model": props.embedding_model,
            "chunk": props.chunk,
            "chunk_size": props.chunk_size,
            "chunk_overlap": props.chunk_overlap,
            "max_num_results": props.max_num_results,
            "score_threshold": props.score_threshold,
            "reranking": props.reranking,
            "reranking_model": props.reranking_model,
            "rewrite_query": props.rewrite_query,
            "rewrite_model": props.rewrite_model,
            "cache": props.cache,
            "cache_threshold": props.cache_threshold,
            "metadata": props.metadata,
        }
    )


async def create_instance(api: CloudflareApi, payload: dict[str, Any]) -> dict[str, Any]:
    return await api.post(
        f"{api.account_path}/ai-search/instances",
        action=f'create AI Search instance "{payload["id"]}"',
        json=payload,
        exists_codes=INSTANCE_EXISTS_CODES,
    )


async def get_instance(api: CloudflareApi, instance_id: str) -> dict[str, Any]:
    return await api.get(
        f"{api.account_path}/ai-search/instances/{instance_id}",
        action=f'get AI Search instance "{instance_id}"',
    )


async def update_instance(
    api: CloudflareApi, instance_id: str, payload: dict[str, Any]
) -> dict[str, Any]:
    return await api.put(
        f"{api.account_path}/ai-search/instances/{instance_id}",
        action=f'update AI Search instance "{instance_id}"',
        json=payload,
    )


async def delete_instance(api: CloudflareApi, instance_id: str) -> None:
    await api.delete(
        f"{api.account_path}/ai-search/instances/{instance_id}",
        action=f'delete AI Search instance "{instance_id}"',
    )


async def delete_vectorize_index(api: CloudflareApi, index_name: str) -> None:
    try:
        await api.delete(
            f"{api.account_path}/vectorize/v2/indexes/{index_name}",
            action=f'delete Vectorize index "{index_name}"',
        )
    except NotFoundError:
        logger.debug(f"Vectorize index '{index_name}' is already gone")


async def run_index_job(api: CloudflareApi, instance_id: str) -> dict[str, Any]:
    """Start an indexing job and wait for it to end, logging its progress."""
    base = f"{api.account_path}/ai-search/instances/{instance_id}/jobs"
    logger.info(f"AI Search '{instance_id}': preparing to index")
    job = await api.post(base, action=f'create AI Search job for "{instance_id}"', json={})
    last_log_id = 0

    async def check() -> dict[str, Any]:
        nonlocal last_log_id
        try:
            logs = await api.get(
                f"{base}/{job['id']}/logs",
                action=f'list AI Search job logs for "{instance_id}"',
                params={"per_page": 500},
            )
        except ProviderError as e:
            if e.code != NOT_FOUND_CODE:
                raise
            logs = []
        for item in sorted(logs or [], key=lambda item: item["id"]):
            if item["id"] > last_log_id:
                last_log_id = item["id"]
                logger.info(f"AI Search '{instance_id}': {item['message']}")
        return await api.get(
            f"{base}/{job['id']}", action=f'get AI Search job "{job["id"]}"'
        )

    result = await poll(
        check,
        lambda current: current.get("ended_at") is not None,
        description=f'AI Search job "{job["id"]}" for instance "{instance_id}"',
    )
    logger.info(f"AI Search '{instance_id}': sync completed: {result.get('end_reason')}")
    return result


# =============================================================================
# Resource
# =============================================================================


async def _token_id(ctx: Context, props: AiSearchProps) -> str:
    if props.token_id is not None:
        return props.token_id
    if props.token is not None:
        return props.token.token_id
    token = await AiSearchToken(
        ctx.scope,
        "token",
        adopt=props.adopt,
        delete=props.delete,
        api_token=props.api_token,
        account_id=props.account_id,
        base_url=props.base_url,
    )
    return token.token_id


@resource("cloudflare::AiSearch", props=AiSearchProps, output=AiSearchOutput)
async def AiSearch(ctx: Context[AiSearchOutput], id: str, props: AiSearchProps):
    """Create, adopt, update or delete an AI Search instance.

    Changing the source type or source replaces the instance, deleting the
    old one first since the instance name is its id.
    """
    async with create_cloudflare_api(props) as api:
        if ctx.phase is Phase.DELETE:
            if ctx.output is not None:
                if ctx.output.vectorize_name:
                    await delete_vectorize_index(api, ctx.output.vectorize_name)
                await delete_instance(api, ctx.output.id)
            return ctx.destroy()

        name = props.name or ctx.create_physical_name(max_length=NAME_MAX_LENGTH)
        source = await resolve_source(api, ctx, props.source)
        token_id = await _token_id(ctx, props)
        payload = build_payload(name, source, token_id, props)

        if ctx.phase is Phase.UPDATE and ctx.output is not None:
            if payload["type"] != ctx.output.type or payload["source"] != ctx.output.source:
                return ctx.replace(force=True)
            instance = await update_instance(api, ctx.output.id, payload)
        else:

            async def find() -> dict[str, Any] | None:
                try:
                    return await get_instance(api, name)
                except NotFoundError:
                    return None

            async def converge(existing: dict[str, Any]) -> dict[str, Any]:
                return await update_instance(api, existing["id"], payload)

            instance = await create_or_adopt(
                lambda: create_instance(api, payload),
                find,
                converge,
                adopt=ctx.adopt,
                name=name,
                kind="AI Search instance",
            )
            if props.index_on_create:
                await run_index_job(api, instance["id"])

    return AiSearchOutput.model_validate({**instance, "name": instance["id"]})
