"""
State store module for persisting resource records between runs.

Each record is keyed by its fully-qualified identity string. Records of
distinct identities never touch each other, so no locking is needed as long
as the same identity is not applied concurrently.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from .errors import StateError
from .models import ResourceRecord

logger = logging.getLogger(__name__)


class StateStore(ABC):
    """Async interface every state backend implements."""

    @abstractmethod
    async def get(self, fqn: str) -> ResourceRecord | None:
        """Return the record for `fqn`, or None if there is none."""

    @abstractmethod
    async def set(self, record: ResourceRecord) -> None:
        """Persist `record`, replacing any previous record for its identity."""

    @abstractmethod
    async def delete(self, fqn: str) -> None:
        """Remove the record for `fqn`. Missing records are ignored."""

    @abstractmethod
    async def list(self, prefix: tuple[str, ...] = ()) -> list[ResourceRecord]:
        """Return every record whose scope path starts with `prefix`."""

    async def all(self) -> list[ResourceRecord]:
        return await self.list(())


def _under(record: ResourceRecord, prefix: tuple[str, ...]) -> bool:
    return record.identity.scope_path[: len(prefix)] == prefix


class MemoryStateStore(StateStore):
    """In-memory store. Records are copied in and out so callers cannot alias them."""

    def __init__(self):
        self._records: dict[str, ResourceRecord] = {}

    async def get(self, fqn: str) -> ResourceRecord | None:
        record = self._records.get(fqn)
        return record.model_copy(deep=True) if record else None

    async def set(self, record: ResourceRecord) -> None:
        self._records[record.fqn] = record.model_copy(deep=True)

    async def delete(self, fqn: str) -> None:
        self._records.pop(fqn, None)

    async def list(self, prefix: tuple[str, ...] = ()) -> list[ResourceRecord]:
        return [
            record.model_copy(deep=True)
            for record in self._records.values()
            if _under(record, prefix)
        ]


class FileSystemStateStore(StateStore):
    """
    JSON file per record under a root directory.

    Layout: ``<root>/<scope path...>/<id>.json``. Writes go to a temporary
    file first and are renamed into place, so a crash never leaves a
    half-written record behind.
    """

    def __init__(self, root_dir: Path | str):
        self.root_dir = Path(root_dir)
        logger.debug(f"FileSystemStateStore initialized at {self.root_dir}")

    def _path(self, fqn: str) -> Path:
        *parents, name = fqn.split("/")
        return self.root_dir.joinpath(*parents, f"{name}.json")

    def _read(self, path: Path) -> ResourceRecord:
        try:
            return ResourceRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, PydanticValidationError) as e:
            raise StateError(f"Could not read state file {path}: {e}") from e

    async def get(self, fqn: str) -> ResourceRecord | None:
        path = self._path(fqn)
        if not path.exists():
            return None
        return self._read(path)

    async def set(self, record: ResourceRecord) -> None:
        path = self._path(record.fqn)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_file = path.with_suffix(".json.tmp")
            temp_file.write_text(
                json.dumps(record.model_dump(mode="json"), indent=2),
                encoding="utf-8",
            )
            temp_file.replace(path)
        except OSError as e:
            raise StateError(f"Could not save state file {path}: {e}") from e
        logger.debug(f"Saved state for {record.fqn}")

    async def delete(self, fqn: str) -> None:
        path = self._path(fqn)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StateError(f"Could not delete state file {path}: {e}") from e

    async def list(self, prefix: tuple[str, ...] = ()) -> list[ResourceRecord]:
        base = self.root_dir.joinpath(*prefix)
        if not base.is_dir():
            return []
        records = [self._read(path) for path in sorted(base.rglob("*.json"))]
        return [record for record in records if _under(record, prefix)]
