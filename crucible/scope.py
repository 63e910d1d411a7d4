"""
Scopes bound one declarative pass and own the ambient configuration.

A root ``App`` scope is addressed as ``(app, stage)``. Nested scopes add one
path segment each; every resource also gets a nested scope named after its
logical id, which is where resources created inside its handler live.
Because both share the path namespace, a child scope may not be named after
a resource declared in the same scope.

Only the root scope and resource scopes sweep. Child scopes entered with
``async with app.child(...)`` just record what they saw; the root then tears
down orphans of the whole tree in one dependency-ordered pass.
"""

import getpass
import hashlib
import logging
import re
import weakref
from pathlib import Path
from typing import Literal, Optional

from .errors import ValidationError
from .models import ResourceIdentity
from .settings import get_settings
from .state import FileSystemStateStore, StateStore

logger = logging.getLogger(__name__)

ScopePhase = Literal["up", "destroy"]


class Scope:
    """Hierarchical execution context for one declarative pass.

    Attributes:
        name: Path segment of this scope
        app_name: Application name shared by the whole tree
        stage: Stage name shared by the whole tree
        state: State store handle (shared by the tree, keyed by path)
        phase: "up" for a normal pass, "destroy" for a teardown walk
        children: Child scopes in declaration order
        owned_by_resource: True for the nested scope of a resource handler
        failed: True once the scope exited with an exception
    """

    def __init__(
        self,
        name: str,
        *,
        parent: Optional["Scope"] = None,
        app_name: str | None = None,
        stage: str | None = None,
        state: StateStore | None = None,
        adopt: bool | None = None,
        local: bool | None = None,
        root_dir: Path | str | None = None,
        phase: ScopePhase | None = None,
    ):
        self.name = name
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self.children: list[Scope] = []
        self._adopt = adopt
        self._local = local
        self._root_dir = Path(root_dir) if root_dir is not None else None
        self._declared: dict[str, ResourceIdentity] = {}
        self._finalized = False
        self.owned_by_resource = False
        self.failed = False

        if parent is not None:
            self.app_name = parent.app_name
            self.stage = parent.stage
            self.state = state or parent.state
            self.phase: ScopePhase = phase or parent.phase
            self.path: tuple[str, ...] = (*parent.path, name)
        else:
            if app_name is None or stage is None or state is None:
                raise ValueError("A root scope needs app_name, stage and state")
            self.app_name = app_name
            self.stage = stage
            self.state = state
            self.phase = phase or "up"
            self.path = (app_name, stage)

    def __repr__(self) -> str:
        return f"Scope({'/'.join(self.path)!r})"

    @property
    def parent(self) -> Optional["Scope"]:
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def adopt(self) -> bool:
        if self._adopt is not None:
            return self._adopt
        parent = self.parent
        return parent.adopt if parent is not None else False

    @property
    def local(self) -> bool:
        if self._local is not None:
            return self._local
        parent = self.parent
        return parent.local if parent is not None else False

    @property
    def root_dir(self) -> Path:
        if self._root_dir is not None:
            return self._root_dir
        parent = self.parent
        return parent.root_dir if parent is not None else Path.cwd()

    @property
    def seen(self) -> set[str]:
        """fqns of resources declared in this scope during the current run."""
        return set(self._declared)

    def child(
        self,
        name: str,
        *,
        adopt: bool | None = None,
        local: bool | None = None,
        root_dir: Path | str | None = None,
    ) -> "Scope":
        """Create a nested scope. Flags are inherited unless overridden here.

        Raises:
            ValidationError: the name is taken by another child scope or by a
                resource declared in this scope
        """
        if name in self.declared_ids():
            raise ValidationError(
                f"Scope '{name}' clashes with a resource of the same id in {self!r}"
            )
        if any(existing.name == name for existing in self.children):
            raise ValidationError(f"Scope '{name}' is already declared in {self!r}")
        scope = Scope(
            name, parent=self, adopt=adopt, local=local, root_dir=root_dir
        )
        self.children.append(scope)
        return scope

    def resource_scope(self, resource_id: str) -> "Scope":
        """Fresh nested scope for one handler invocation of `resource_id`.

        A replacement invokes the handler twice; the second invocation gets
        a new scope object so nested declarations do not collide.
        """
        self.children = [
            c for c in self.children if not (c.owned_by_resource and c.name == resource_id)
        ]
        scope = Scope(resource_id, parent=self)
        scope.owned_by_resource = True
        self.children.append(scope)
        return scope

    def scope_for(self, path: tuple[str, ...]) -> "Scope":
        """Deepest child scope entered this run on the way to `path`.

        Falls back to this scope. Used so deletes see the flags of the scope
        a record was declared in.
        """
        scope = self
        while len(path) > len(scope.path) and path[: len(scope.path)] == scope.path:
            segment = path[len(scope.path)]
            nested = next(
                (
                    c
                    for c in scope.children
                    if c.name == segment and not c.owned_by_resource
                ),
                None,
            )
            if nested is None:
                break
            scope = nested
        return scope

    def detached(self, path: tuple[str, ...]) -> "Scope":
        """Scope at `path` for running delete handlers of stored records.

        Not registered as a child; inherits this scope's flags.
        """
        scope = Scope(
            path[-1],
            parent=self,
            adopt=self.adopt,
            local=self.local,
            root_dir=self.root_dir,
        )
        scope.path = path
        return scope

    def declare(self, identity: ResourceIdentity) -> None:
        """Mark `identity` as seen in this run. Identities are unique per scope."""
        if identity.fqn in self._declared:
            raise ValidationError(
                f"{identity.kind} '{identity.id}' is declared more than once in {self!r}"
            )
        if any(c.name == identity.id and not c.owned_by_resource for c in self.children):
            raise ValidationError(
                f"{identity.kind} '{identity.id}' clashes with a child scope of the same "
                f"name in {self!r}"
            )
        self._declared[identity.fqn] = identity

    def declared_ids(self) -> set[str]:
        return {identity.id for identity in self._declared.values()}

    def create_physical_name(
        self,
        logical_id: str,
        separator: str = "-",
        max_length: int = 63,
        suffix: str | None = None,
    ) -> str:
        """Derive a deterministic remote name: ``{app}-{stage}-{logical_id}``.

        Characters outside ``[a-z0-9_-]`` become the separator. Names longer
        than `max_length` are truncated and end in a stable 8-char hash of
        the full name, so repeated runs always produce the same name.
        """
        parts = [self.app_name, self.stage, logical_id]
        if suffix:
            parts.append(suffix)
        full = separator.join(parts).lower()
        name = re.sub(r"[^a-z0-9_-]", separator, full)
        if len(name) <= max_length:
            return name
        digest = hashlib.sha256(full.encode("utf-8")).hexdigest()[:8]
        keep = max_length - len(digest) - len(separator)
        if keep <= 0:
            return digest[:max_length]
        return f"{name[:keep].rstrip(separator)}{separator}{digest}"

    @property
    def sweeps(self) -> bool:
        """Whether finalize tears down orphans here rather than in an ancestor."""
        return self.parent is None or self.owned_by_resource

    async def finalize(self) -> None:
        """End the declarative pass.

        A root or resource scope sweeps orphans of its whole subtree (or, in
        the destroy phase, everything stored under it) in one pass. A plain
        child scope only closes; its enclosing root handles its records.
        """
        if self._finalized:
            return
        self._finalized = True
        if not self.sweeps:
            return

        from .destroy import sweep

        if self.phase == "destroy":
            await self.destroy()
        else:
            await sweep(self)

    async def destroy(self) -> None:
        """Teardown walk: delete every record stored under this scope."""
        from .destroy import destroy_records

        self.phase = "destroy"
        records = await self.state.list(self.path)
        logger.info(f"Destroying {len(records)} resource(s) in {self!r}")
        await destroy_records(self, records)

    async def __aenter__(self) -> "Scope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            await self.finalize()
        else:
            self.failed = True
            logger.warning(
                f"{self!r} exited with {exc_type.__name__}; skipping orphan sweep"
            )
        return False


class App(Scope):
    """Root scope of an application run.

    Example:
        >>> async with App("my-app", stage="dev") as app:
        ...     bucket = await R2Bucket(app, "bucket")
    """

    def __init__(
        self,
        name: str,
        stage: str | None = None,
        *,
        adopt: bool | None = None,
        local: bool | None = None,
        root_dir: Path | str | None = None,
        state: StateStore | None = None,
        phase: ScopePhase = "up",
    ):
        settings = get_settings()
        stage = stage or settings.stage or getpass.getuser()
        root = Path(root_dir) if root_dir is not None else Path.cwd()
        if state is None:
            state_dir = settings.state_dir
            if not state_dir.is_absolute():
                state_dir = root / state_dir
            state = FileSystemStateStore(state_dir)

        super().__init__(
            name,
            app_name=name,
            stage=stage,
            state=state,
            adopt=settings.adopt if adopt is None else adopt,
            local=settings.local if local is None else local,
            root_dir=root,
            phase=phase,
        )
        logger.info(f"App '{name}' stage '{stage}' ({phase})")
