"""
Pydantic models for the Crucible data model.

- ResourceIdentity: stable composite key of a declared resource
- ResourceRecord: what the state store persists per identity
- ResourceProps / ResourceOutput: base classes for typed resource declarations
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class Phase(str, Enum):
    """Lifecycle transition a handler invocation represents."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class RecordStatus(str, Enum):
    """Phase at last successful apply."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ResourceIdentity(BaseModel):
    """Composite key: (resource type tag, scope path, logical id).

    Immutable once assigned; unique within a scope.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    scope_path: tuple[str, ...]
    id: str

    @property
    def fqn(self) -> str:
        """Fully-qualified identity string used as the state store key."""
        return "/".join((*self.scope_path, self.id))

    @property
    def nested_path(self) -> tuple[str, ...]:
        """Scope path of resources created inside this resource's handler."""
        return (*self.scope_path, self.id)

    def __str__(self) -> str:
        return f"{self.kind} {self.fqn}"


class PendingDeletion(BaseModel):
    """A replaced remote object whose delete has not succeeded yet."""

    output: Any = None
    props: Any = None


class ResourceRecord(BaseModel):
    """Persisted state of one resource.

    Attributes:
        identity: Resource identity
        status: Phase at last successful apply
        output: Serialized handler output (see crucible.serde)
        props: Serialized declared props, needed to delete orphans
        dependencies: fqns of records whose outputs these props consumed
        pending_deletions: Replaced objects still to be deleted
        seen_in_current_run: Transient flag, never persisted
    """

    identity: ResourceIdentity
    status: RecordStatus
    output: Any = None
    props: Any = None
    dependencies: list[str] = Field(default_factory=list)
    pending_deletions: list[PendingDeletion] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    seen_in_current_run: bool = Field(default=False, exclude=True)

    @property
    def fqn(self) -> str:
        return self.identity.fqn

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)


class ResourceProps(BaseModel):
    """Declared-properties conventions shared by every resource type.

    Attributes:
        name: Remote object name; derived from the scope when omitted
        adopt: Adopt an existing remote object with the same name
            (defaults to the scope's adopt flag)
        delete: When False, the delete phase only drops the local record
            and leaves the remote object intact
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    name: str | None = None
    adopt: bool | None = None
    delete: bool = True


class ResourceOutput(BaseModel):
    """Base class for resource outputs.

    The engine tags every output it returns with the producing identity, which
    is how a later resource's props are recognised as depending on it.
    """

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True)

    _identity: ResourceIdentity | None = PrivateAttr(default=None)

    @property
    def resource_identity(self) -> ResourceIdentity | None:
        return self._identity

    def bind(self, identity: ResourceIdentity) -> "ResourceOutput":
        self._identity = identity
        return self
