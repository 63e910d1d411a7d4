"""Copy the contents of one D1 database into another.

D1 has no server-side copy. The source is exported as a SQL dump, downloaded
from the signed URL the export returns, and imported into the target:
``init`` hands out an upload URL for the dump's MD5 etag, ``ingest`` starts
the import, and ``poll`` follows it by bookmark until it finishes.
"""

import hashlib
import logging
from typing import Any

from ..errors import ProviderError
from ..util.poll import poll
from .api import CloudflareApi

logger = logging.getLogger(__name__)


def _finished(result: dict[str, Any] | None) -> bool:
    return bool(result) and result.get("status") in ("complete", "error")


def _check(result: dict[str, Any], action: str) -> dict[str, Any]:
    if result.get("status") == "error" or result.get("success") is False:
        raise ProviderError(f"Failed to {action}: {result.get('error') or 'unknown error'}")
    return result


async def export_database(api: CloudflareApi, database_id: str) -> str:
    """Export `database_id` as SQL and return the dump."""
    path = f"{api.account_path}/d1/database/{database_id}/export"
    payload: dict[str, Any] = {"output_format": "polling"}

    async def step() -> dict[str, Any]:
        result = await api.post(path, action=f'export D1 database "{database_id}"', json=payload)
        if result.get("at_bookmark"):
            payload["current_bookmark"] = result["at_bookmark"]
        return result

    result = await poll(step, _finished, description=f"export of D1 database {database_id}")
    _check(result, f'export D1 database "{database_id}"')

    signed_url = (result.get("result") or {}).get("signed_url")
    if not signed_url:
        raise ProviderError(f'Export of D1 database "{database_id}" returned no download URL')
    response = await api.transfer(
        "GET", signed_url, action=f'download export of D1 database "{database_id}"'
    )
    return response.text


async def import_database(api: CloudflareApi, database_id: str, sql: str) -> dict[str, Any]:
    """Import a SQL dump into `database_id` and wait for it to finish."""
    path = f"{api.account_path}/d1/database/{database_id}/import"
    action = f'import into D1 database "{database_id}"'
    body = sql.encode("utf-8")
    etag = hashlib.md5(body).hexdigest()

    init = await api.post(path, action=action, json={"action": "init", "etag": etag})
    upload_url = init.get("upload_url")
    if not upload_url:
        raise ProviderError(f"Failed to {action}: no upload URL returned")
    uploaded = await api.transfer("PUT", upload_url, action=f"upload dump for {action}", content=body)
    if uploaded.headers.get("etag", "").strip('"') != etag:
        raise ProviderError(f"Failed to {action}: uploaded dump does not match its etag")

    result = await api.post(
        path,
        action=action,
        json={"action": "ingest", "etag": etag, "filename": init.get("filename")},
    )

    async def step() -> dict[str, Any]:
        return await api.post(
            path,
            action=action,
            json={"action": "poll", "current_bookmark": result.get("at_bookmark")},
        )

    if not _finished(result):
        result = await poll(step, _finished, description=f"import into D1 database {database_id}")
    return _check(result, action)


async def clone_database(api: CloudflareApi, source_id: str, target_id: str) -> None:
    logger.info(f"Cloning D1 database {source_id} into {target_id}")
    sql = await export_database(api, source_id)
    await import_database(api, target_id, sql)
