"""Cloudflare resources."""

from .account_api_token import AccountApiToken, AccountApiTokenOutput, AccountApiTokenProps, TokenPolicy
from .ai_crawler import ai_crawler
from .ai_search import AiSearch, AiSearchOutput, AiSearchProps, R2Source, WebCrawlerSource
from .ai_search_token import AiSearchToken, AiSearchTokenOutput, AiSearchTokenProps
from .api import CloudflareApi, CloudflareProps
from .bucket import R2Bucket, R2BucketOutput, R2BucketProps
from .d1_database import (
    CloneById,
    CloneByName,
    D1Database,
    D1DatabaseOutput,
    D1DatabaseProps,
    ReadReplication,
)
from .vpc_service import (
    DualStackHost,
    HostnameHost,
    IPv4Host,
    IPv6Host,
    Network,
    ResolverNetwork,
    VpcService,
    VpcServiceOutput,
    VpcServiceProps,
)

__all__ = [
    "AccountApiToken",
    "AccountApiTokenOutput",
    "AccountApiTokenProps",
    "TokenPolicy",
    "ai_crawler",
    "AiSearch",
    "AiSearchOutput",
    "AiSearchProps",
    "R2Source",
    "WebCrawlerSource",
    "AiSearchToken",
    "AiSearchTokenOutput",
    "AiSearchTokenProps",
    "CloudflareApi",
    "CloudflareProps",
    "R2Bucket",
    "R2BucketOutput",
    "R2BucketProps",
    "D1Database",
    "D1DatabaseOutput",
    "D1DatabaseProps",
    "ReadReplication",
    "CloneById",
    "CloneByName",
    "VpcService",
    "VpcServiceOutput",
    "VpcServiceProps",
    "DualStackHost",
    "HostnameHost",
    "IPv4Host",
    "IPv6Host",
    "Network",
    "ResolverNetwork",
]
