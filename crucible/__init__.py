"""
Crucible - declarative infrastructure as async Python.

Declare resources by awaiting typed constructors inside a scope; Crucible
reconciles each one against its persisted record:

- no record → create
- record with changed props → update (or replace, when the handler asks)
- record no longer declared → delete, when the scope is finalized

    async with App("my-app", stage="dev") as app:
        bucket = await R2Bucket(app, "assets")
        search = await AiSearch(app, "search", source=bucket)
"""

from .context import Context, DestroySignal, ReplaceSignal
from .models import ResourceIdentity, ResourceOutput, ResourceProps
from .resource import resource
from .scope import App, Scope
from .secret import Secret, secret
from .settings import CrucibleSettings, get_settings, reload_settings
from .state import FileSystemStateStore, MemoryStateStore, StateStore

__version__ = "0.1.0"
__all__ = [
    "App",
    "Scope",
    "Context",
    "DestroySignal",
    "ReplaceSignal",
    "ResourceIdentity",
    "ResourceOutput",
    "ResourceProps",
    "resource",
    "Secret",
    "secret",
    "StateStore",
    "MemoryStateStore",
    "FileSystemStateStore",
    "CrucibleSettings",
    "get_settings",
    "reload_settings",
]
