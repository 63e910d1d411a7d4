"""
In-memory Cloudflare API served through httpx.MockTransport.

FakeCloudflare keeps just enough state for the resources under test and
answers with Cloudflare's ``{success, errors, result}`` envelope.
"""

import hashlib
import json
import re
import uuid
from typing import Any

import httpx
import pytest

from crucible.cloudflare import CloudflareApi

ACCOUNT_PATH = "/client/v4/accounts/acct"
CREATED_AT = "2025-01-01T00:00:00Z"
STORAGE_HOST = "storage.test"


def envelope(result: Any = None, status: int = 200) -> httpx.Response:
    return httpx.Response(
        status, json={"success": True, "errors": [], "messages": [], "result": result}
    )


def failure(status: int, code: int, message: str) -> httpx.Response:
    return httpx.Response(
        status,
        json={
            "success": False,
            "errors": [{"code": code, "message": message}],
            "messages": [],
            "result": None,
        },
    )


class FakeCloudflare:
    """Callable MockTransport handler recording every request."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.calls: list[tuple[str, str]] = []
        self.bodies: list[Any] = []
        self.overrides: dict[tuple[str, str], httpx.Response] = {}

        self.buckets: dict[str, dict[str, Any]] = {}
        self.databases: dict[str, dict[str, Any]] = {}
        self.services: dict[str, dict[str, Any]] = {}
        self.tokens: dict[str, dict[str, Any]] = {}
        self.account_tokens: dict[str, dict[str, Any]] = {}
        self.permission_groups = {
            "AI Search Index Engine": "group-ai-search",
            "Workers R2 Storage Write": "group-r2-write",
            "Workers R2 Storage Read": "group-r2-read",
        }
        self.instances: dict[str, dict[str, Any]] = {}
        self.vectorize_indexes: set[str] = set()
        self.domains: set[str] = {"docs.example.com"}
        self.jobs: dict[str, dict[str, Any]] = {}
        self.job_polls = 2
        self.dumps: dict[str, str] = {}
        self.uploads: dict[str, str] = {}
        self.imports: dict[str, tuple[str, str]] = {}
        self.transfers: list[httpx.Request] = []

        self.routes = [
            ("GET", r"/tokens/permission_groups", self.list_permission_groups),
            ("POST", r"/tokens", self.create_account_token),
            ("PUT", r"/tokens/([^/]+)", self.update_account_token),
            ("DELETE", r"/tokens/([^/]+)", self.delete_account_token),
            ("GET", r"/r2/buckets/([^/]+)", self.get_bucket),
            ("POST", r"/r2/buckets", self.create_bucket),
            ("PATCH", r"/r2/buckets/([^/]+)", self.patch_bucket),
            ("DELETE", r"/r2/buckets/([^/]+)", self.delete_bucket),
            ("GET", r"/d1/database", self.list_databases),
            ("POST", r"/d1/database", self.create_database),
            ("GET", r"/d1/database/([^/]+)", self.get_database),
            ("PATCH", r"/d1/database/([^/]+)", self.patch_database),
            ("POST", r"/d1/database/([^/]+)/export", self.export_database),
            ("POST", r"/d1/database/([^/]+)/import", self.import_database),
            ("DELETE", r"/d1/database/([^/]+)", self.delete_database),
            ("GET", r"/connectivity/directory/services", self.list_services),
            ("POST", r"/connectivity/directory/services", self.create_service),
            ("PUT", r"/connectivity/directory/services/([^/]+)", self.update_service),
            ("DELETE", r"/connectivity/directory/services/([^/]+)", self.delete_service),
            ("GET", r"/ai-search/tokens", self.list_tokens),
            ("POST", r"/ai-search/tokens", self.create_token),
            ("DELETE", r"/ai-search/tokens/([^/]+)", self.delete_token),
            ("POST", r"/ai-search/domains", self.validate_domain),
            ("POST", r"/ai-search/instances", self.create_instance),
            ("GET", r"/ai-search/instances/([^/]+)", self.get_instance),
            ("PUT", r"/ai-search/instances/([^/]+)", self.update_instance),
            ("DELETE", r"/ai-search/instances/([^/]+)", self.delete_instance),
            ("POST", r"/ai-search/instances/([^/]+)/jobs", self.create_job),
            ("GET", r"/ai-search/instances/([^/]+)/jobs/([^/]+)/logs", self.job_logs),
            ("GET", r"/ai-search/instances/([^/]+)/jobs/([^/]+)", self.get_job),
            ("DELETE", r"/vectorize/v2/indexes/([^/]+)", self.delete_vectorize_index),
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == STORAGE_HOST:
            return self.storage(request)
        path = request.url.path
        if not path.startswith(ACCOUNT_PATH):
            return failure(404, 7000, "No route for that URI")
        relative = path[len(ACCOUNT_PATH):]
        body = json.loads(request.content) if request.content else None

        self.requests.append(request)
        self.calls.append((request.method, relative))
        self.bodies.append(body)

        override = self.overrides.get((request.method, relative))
        if override is not None:
            return override
        for method, pattern, route in self.routes:
            match = re.fullmatch(pattern, relative)
            if method == request.method and match:
                return route(request, body, *match.groups())
        return failure(404, 7000, "No route for that URI")

    def fail(self, method: str, path: str, status: int, code: int, message: str) -> None:
        self.overrides[(method, path)] = failure(status, code, message)

    def paths(self, method: str | None = None) -> list[str]:
        return [path for m, path in self.calls if method is None or m == method]

    def body(self, method: str, path: str) -> Any:
        for (m, p), body in zip(self.calls, self.bodies):
            if m == method and p == path:
                return body
        return None

    # tokens ------------------------------------------------------------------

    def list_permission_groups(self, request, body):
        return envelope(
            [{"id": group_id, "name": name} for name, group_id in self.permission_groups.items()]
        )

    def create_account_token(self, request, body):
        token_id = f"account-token-{len(self.account_tokens) + 1}"
        self.account_tokens[token_id] = {
            "id": token_id,
            "name": body["name"],
            "status": "active",
            "policies": body["policies"],
            "issued_on": CREATED_AT,
            "modified_on": CREATED_AT,
        }
        return envelope({**self.account_tokens[token_id], "value": f"value-of-{token_id}"})

    def update_account_token(self, request, body, token_id):
        if token_id not in self.account_tokens:
            return failure(404, 1003, "Token not found")
        self.account_tokens[token_id].update(body)
        return envelope(self.account_tokens[token_id])

    def delete_account_token(self, request, body, token_id):
        if self.account_tokens.pop(token_id, None) is None:
            return failure(404, 1003, "Token not found")
        return envelope({"id": token_id})

    def list_tokens(self, request, body):
        return envelope(list(self.tokens.values()))

    def create_token(self, request, body):
        if any(token["name"] == body["name"] for token in self.tokens.values()):
            return failure(409, 7020, "ai_search_token_already_exists")
        token_id = str(uuid.uuid4())
        self.tokens[token_id] = {
            "id": token_id,
            "account_id": "acct",
            "account_tag": "acct-tag",
            "name": body["name"],
            "cf_api_id": body["cf_api_id"],
            "enabled": True,
            "created_at": CREATED_AT,
            "modified_at": CREATED_AT,
        }
        return envelope(self.tokens[token_id])

    def delete_token(self, request, body, token_id):
        if self.tokens.pop(token_id, None) is None:
            return failure(404, 7002, "ai_search_not_found")
        return envelope(None)

    # r2 ----------------------------------------------------------------------

    def get_bucket(self, request, body, name):
        if name not in self.buckets:
            return failure(404, 10006, "The specified bucket does not exist.")
        return envelope(self.buckets[name])

    def create_bucket(self, request, body):
        name = body["name"]
        if name in self.buckets:
            return failure(409, 10004, "The bucket you tried to create already exists, and you own it.")
        self.buckets[name] = {
            "name": name,
            "creation_date": CREATED_AT,
            "location": (body.get("locationHint") or "enam").upper(),
            "storage_class": body.get("storageClass", "Standard"),
            "jurisdiction": request.headers.get("cf-r2-jurisdiction", "default"),
        }
        return envelope(self.buckets[name])

    def patch_bucket(self, request, body, name):
        if name not in self.buckets:
            return failure(404, 10006, "The specified bucket does not exist.")
        storage_class = request.headers.get("cf-r2-storage-class")
        if storage_class:
            self.buckets[name]["storage_class"] = storage_class
        return envelope(self.buckets[name])

    def delete_bucket(self, request, body, name):
        if self.buckets.pop(name, None) is None:
            return failure(404, 10006, "The specified bucket does not exist.")
        return envelope(None)

    # d1 ----------------------------------------------------------------------

    def list_databases(self, request, body):
        name = request.url.params.get("name")
        return envelope(
            [db for db in self.databases.values() if name is None or db["name"] == name]
        )

    def create_database(self, request, body):
        if any(db["name"] == body["name"] for db in self.databases.values()):
            return failure(400, 7502, "A database with that name already exists")
        database_id = str(uuid.uuid4())
        self.databases[database_id] = {
            "uuid": database_id,
            "name": body["name"],
            "created_at": CREATED_AT,
            "jurisdiction": body.get("jurisdiction"),
            "primary_location_hint": body.get("primary_location_hint"),
            "read_replication": {"mode": "disabled"},
        }
        return envelope(self.databases[database_id])

    def get_database(self, request, body, database_id):
        if database_id not in self.databases:
            return failure(404, 7404, "The database could not be found")
        return envelope(self.databases[database_id])

    def patch_database(self, request, body, database_id):
        if database_id not in self.databases:
            return failure(404, 7404, "The database could not be found")
        self.databases[database_id].update(body)
        return envelope(self.databases[database_id])

    def export_database(self, request, body, database_id):
        if database_id not in self.databases:
            return failure(404, 7404, "The database could not be found")
        bookmark = f"export-{database_id}"
        if body.get("current_bookmark") != bookmark:
            return envelope({"at_bookmark": bookmark, "status": "active", "success": True})
        return envelope(
            {
                "at_bookmark": bookmark,
                "status": "complete",
                "success": True,
                "result": {
                    "filename": f"{database_id}.sql",
                    "signed_url": f"https://{STORAGE_HOST}/exports/{database_id}.sql?sig=abc",
                },
            }
        )

    def import_database(self, request, body, database_id):
        if database_id not in self.databases:
            return failure(404, 7404, "The database could not be found")
        if body["action"] == "init":
            filename = f"{body['etag']}.sql"
            return envelope(
                {"filename": filename, "upload_url": f"https://{STORAGE_HOST}/uploads/{filename}?sig=abc"}
            )
        if body["action"] == "ingest":
            bookmark = f"import-{database_id}"
            self.imports[bookmark] = (database_id, self.uploads[body["filename"]])
            return envelope({"at_bookmark": bookmark, "status": "active", "success": True})
        target, sql = self.imports.pop(body["current_bookmark"])
        self.dumps[target] = sql
        return envelope({"at_bookmark": body["current_bookmark"], "status": "complete", "success": True})

    def storage(self, request: httpx.Request) -> httpx.Response:
        """Signed export download and import upload URLs."""
        self.transfers.append(request)
        filename = request.url.path.rsplit("/", 1)[-1]
        if request.method == "GET":
            return httpx.Response(200, text=self.dumps.get(filename.removesuffix(".sql"), ""))
        self.uploads[filename] = request.content.decode("utf-8")
        return httpx.Response(200, headers={"ETag": f'"{hashlib.md5(request.content).hexdigest()}"'})

    def delete_database(self, request, body, database_id):
        if self.databases.pop(database_id, None) is None:
            return failure(404, 7404, "The database could not be found")
        return envelope(None)

    # connectivity services -----------------------------------------------------

    def list_services(self, request, body):
        return envelope(list(self.services.values()))

    def create_service(self, request, body):
        if any(service["name"] == body["name"] for service in self.services.values()):
            return failure(400, 5101, "A service with this name already exists")
        service_id = str(uuid.uuid4())
        self.services[service_id] = {
            **body,
            "service_id": service_id,
            "created_at": CREATED_AT,
            "updated_at": CREATED_AT,
        }
        return envelope(self.services[service_id])

    def update_service(self, request, body, service_id):
        if service_id not in self.services:
            return failure(404, 5102, "Service not found")
        self.services[service_id] = {**self.services[service_id], **body}
        return envelope(self.services[service_id])

    def delete_service(self, request, body, service_id):
        if self.services.pop(service_id, None) is None:
            return failure(404, 5102, "Service not found")
        return envelope(None)

    # ai search -----------------------------------------------------------------

    def validate_domain(self, request, body):
        if body["domain"] in self.domains:
            return envelope({"domain": body["domain"]})
        return failure(400, 7010, "not_a_valid_domain")

    def create_instance(self, request, body):
        name = body["id"]
        if name in self.instances:
            return failure(400, 7022, "ai_search_instance_already_exists")
        self.instances[name] = {
            **body,
            "vectorize_name": f"ai-search-{name}",
            "account_id": "acct",
            "created_at": CREATED_AT,
            "modified_at": CREATED_AT,
        }
        self.vectorize_indexes.add(f"ai-search-{name}")
        return envelope(self.instances[name])

    def get_instance(self, request, body, name):
        if name not in self.instances:
            return failure(404, 7002, "ai_search_not_found")
        return envelope(self.instances[name])

    def update_instance(self, request, body, name):
        if name not in self.instances:
            return failure(404, 7002, "ai_search_not_found")
        self.instances[name] = {**self.instances[name], **body}
        return envelope(self.instances[name])

    def delete_instance(self, request, body, name):
        if self.instances.pop(name, None) is None:
            return failure(404, 7002, "ai_search_not_found")
        return envelope(None)

    def create_job(self, request, body, name):
        job_id = f"job-{len(self.jobs) + 1}"
        self.jobs[job_id] = {"id": job_id, "instance": name, "polls": 0}
        return envelope({"id": job_id, "source": "user"})

    def job_logs(self, request, body, name, job_id):
        job = self.jobs[job_id]
        if job["polls"] == 0:
            return failure(404, 7002, "ai_search_not_found")
        return envelope(
            [
                {"id": 2, "message": "Indexed 3 files"},
                {"id": 1, "message": "Indexing started"},
            ]
        )

    def get_job(self, request, body, name, job_id):
        job = self.jobs[job_id]
        job["polls"] += 1
        ended = job["polls"] >= self.job_polls
        return envelope(
            {
                "id": job_id,
                "ended_at": CREATED_AT if ended else None,
                "end_reason": "completed" if ended else None,
            }
        )

    def delete_vectorize_index(self, request, body, name):
        if name not in self.vectorize_indexes:
            return failure(404, 3000, "vectorize.index.not_found")
        self.vectorize_indexes.discard(name)
        return envelope(None)


@pytest.fixture
def cloudflare(monkeypatch):
    """FakeCloudflare wired into every CloudflareApi client."""
    fake = FakeCloudflare()
    monkeypatch.setattr(CloudflareApi, "transport", httpx.MockTransport(fake))
    return fake
