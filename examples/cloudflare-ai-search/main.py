"""
Cloudflare AI Search Example - an R2 bucket indexed by AI Search.

Run with:
    crucible apply examples/cloudflare-ai-search/main.py --stage dev

Needs CRUCIBLE_CLOUDFLARE_API_TOKEN and CRUCIBLE_CLOUDFLARE_ACCOUNT_ID.
The bucket and the search instance are deleted together on
``crucible destroy``. A D1 database keeps query history.
"""

from crucible.cloudflare import AiSearch, D1Database, R2Bucket, ai_crawler

APP_NAME = "cloudflare-ai-search"


async def main(app):
    bucket = await R2Bucket(app, "bucket", dev_remote=True)

    # Adopt an instance left behind by a previous state directory
    search = await AiSearch(app, "search", source=bucket, cache=False, adopt=True)

    docs = await AiSearch(
        app,
        "docs",
        source=ai_crawler(["https://docs.example.com/guides"]),
        max_num_results=10,
    )

    history = await D1Database(app, "history", read_replication={"mode": "auto"})

    return {
        "bucket": bucket.name,
        "search": search.id,
        "docs": docs.id,
        "history": history.id,
    }
