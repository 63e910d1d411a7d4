"""
Crucible Core - runs a user script inside an App scope.

A script is a Python file exposing ``async def main(app)`` and optionally
``APP_NAME``. Importing it registers the resource kinds it uses, which is
also what lets ``destroy`` and ``state`` work without running ``main``.
"""

import importlib.util
import inspect
import logging
from pathlib import Path
from types import ModuleType
from typing import Any, Dict

from .errors import ConfigurationError
from .scope import App, ScopePhase
from .serde import redact
from .state import FileSystemStateStore

logger = logging.getLogger(__name__)


class CrucibleCore:
    """
    Entry point used by the CLI.

    Apply: load script → enter App scope → await main(app) → finalize (sweep)
    Destroy: load script → delete every record of the app/stage
    State: load script → list persisted records with secrets masked
    """

    def __init__(
        self,
        stage: str | None = None,
        adopt: bool | None = None,
        local: bool | None = None,
        state_dir: Path | None = None,
    ):
        self.stage = stage
        self.adopt = adopt
        self.local = local
        self.state_dir = state_dir

    async def apply(self, script: Path) -> Dict[str, Any]:
        module = self._load_script(script)
        main = getattr(module, "main", None)
        if main is None or not inspect.iscoroutinefunction(main):
            raise ConfigurationError(f"{script} must define 'async def main(app)'")

        app = self._create_app(module, script, "up")
        async with app:
            result = await main(app)

        records = await app.state.list(app.path)
        logger.info(f"Apply complete: {len(records)} resource(s) in {app!r}")
        return {
            "success": True,
            "app": app.app_name,
            "stage": app.stage,
            "resources": [self._summarize(record) for record in records],
            "result": result,
        }

    async def destroy(self, script: Path) -> Dict[str, Any]:
        module = self._load_script(script)
        app = self._create_app(module, script, "destroy")
        count = len(await app.state.list(app.path))
        await app.destroy()
        return {"success": True, "app": app.app_name, "stage": app.stage, "destroyed": count}

    async def state(self, script: Path) -> Dict[str, Any]:
        module = self._load_script(script)
        app = self._create_app(module, script, "up")
        records = await app.state.list(app.path)
        return {
            "app": app.app_name,
            "stage": app.stage,
            "resources": [self._summarize(record) for record in records],
        }

    def _load_script(self, script: Path) -> ModuleType:
        """Import the user script as a module."""
        if not script.exists():
            raise FileNotFoundError(f"File not found: {script}")

        spec = importlib.util.spec_from_file_location("crucible_script", script)
        if spec is None or spec.loader is None:
            raise ImportError(f"Could not load {script}")

        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        logger.debug(f"Loaded script {script}")
        return module

    def _create_app(self, module: ModuleType, script: Path, phase: ScopePhase) -> App:
        name = getattr(module, "APP_NAME", None) or script.resolve().parent.name
        root_dir = script.resolve().parent
        state = None
        if self.state_dir is not None:
            state = FileSystemStateStore(self.state_dir.resolve())
        return App(
            name,
            self.stage,
            adopt=self.adopt,
            local=self.local,
            root_dir=root_dir,
            state=state,
            phase=phase,
        )

    @staticmethod
    def _summarize(record) -> Dict[str, Any]:
        return {
            "fqn": record.fqn,
            "kind": record.identity.kind,
            "status": record.status.value,
            "pending_deletions": len(record.pending_deletions),
            "output": redact(record.output),
        }
