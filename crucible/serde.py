"""
Codec between live values and the JSON trees kept in the state store.

Two markers keep type information that plain JSON would lose:

- ``{"@secret": "..."}`` rebuilds a :class:`~crucible.secret.Secret`
- ``{"@resource": {"identity": ..., "output": ...}}`` rebuilds a typed
  resource output referenced from another resource's props
"""

import logging
from datetime import date, datetime
from enum import Enum
from pathlib import PurePath
from typing import Any

from pydantic import BaseModel

from .errors import StateError
from .models import ResourceIdentity, ResourceOutput
from .secret import MASK, Secret

logger = logging.getLogger(__name__)

SECRET_MARKER = "@secret"
RESOURCE_MARKER = "@resource"


def serialize(value: Any) -> Any:
    """Convert a value into a JSON-serializable tree."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Secret):
        return {SECRET_MARKER: value.unencrypted}
    if isinstance(value, ResourceOutput) and value.resource_identity is not None:
        return {
            RESOURCE_MARKER: {
                "identity": value.resource_identity.model_dump(mode="json"),
                "output": _serialize_model(value),
            }
        }
    if isinstance(value, BaseModel):
        return _serialize_model(value)
    if isinstance(value, Enum):
        return serialize(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, dict):
        return {str(key): serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [serialize(item) for item in value]
    raise StateError(f"Cannot serialize value of type {type(value).__name__}")


def serialize_output(output: ResourceOutput) -> dict[str, Any]:
    """Serialize an output's own fields (without the reference marker)."""
    return _serialize_model(output)


def _serialize_model(model: BaseModel) -> dict[str, Any]:
    fields = {name: getattr(model, name) for name in type(model).model_fields}
    fields.update(model.model_extra or {})
    return {name: serialize(item) for name, item in fields.items()}


def deserialize(tree: Any) -> Any:
    """Rebuild secrets and resource references from a stored tree."""
    if isinstance(tree, list):
        return [deserialize(item) for item in tree]
    if not isinstance(tree, dict):
        return tree
    if len(tree) == 1 and SECRET_MARKER in tree:
        return Secret(tree[SECRET_MARKER])
    if len(tree) == 1 and RESOURCE_MARKER in tree:
        return _deserialize_reference(tree[RESOURCE_MARKER])
    return {key: deserialize(item) for key, item in tree.items()}


def deserialize_output(kind: str, tree: Any) -> ResourceOutput | None:
    """Rebuild the typed output of a `kind` resource from its stored tree."""
    if tree is None:
        return None
    from .resource import get_provider

    provider = get_provider(kind)
    return provider.output_type.model_validate(deserialize(tree))


def _deserialize_reference(payload: dict[str, Any]) -> Any:
    identity = ResourceIdentity.model_validate(payload["identity"])
    output = deserialize_output(identity.kind, payload["output"])
    return output.bind(identity)


def redact(tree: Any) -> Any:
    """Copy of a stored tree with secret plaintext replaced by the mask."""
    if isinstance(tree, list):
        return [redact(item) for item in tree]
    if not isinstance(tree, dict):
        return tree
    if len(tree) == 1 and SECRET_MARKER in tree:
        return MASK
    return {key: redact(item) for key, item in tree.items()}
