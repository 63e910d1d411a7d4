"""Resource registration and typed constructors."""

import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from pydantic import ValidationError as PydanticValidationError

from .context import Context, DestroySignal, ReplaceSignal
from .errors import ConfigurationError, ValidationError
from .models import ResourceOutput, ResourceProps

if TYPE_CHECKING:
    from .scope import Scope

logger = logging.getLogger(__name__)

HandlerResult = Union[ResourceOutput, dict[str, Any], ReplaceSignal, DestroySignal]
Handler = Callable[[Context, str, Any], Awaitable[HandlerResult]]


@dataclass(frozen=True)
class Provider:
    """Everything the engine needs to run one resource type.

    Attributes:
        kind: Resource type tag, e.g. "cloudflare::D1Database"
        handler: Async function ``(ctx, id, props) -> output | signal``
        props_type: Canonical declared-props model
        output_type: Output model
        always_update: Invoke the handler even when props are unchanged
    """

    kind: str
    handler: Handler
    props_type: type[ResourceProps]
    output_type: type[ResourceOutput]
    always_update: bool = False

    def validate_props(self, resource_id: str, value: Any = None, **fields: Any) -> ResourceProps:
        """Resolve declared props into the canonical model before any handler runs."""
        if isinstance(value, self.props_type) and not fields:
            return value
        if isinstance(value, ResourceProps):
            data = {name: getattr(value, name) for name in value.model_fields_set}
        else:
            data = dict(value or {})
        data.update(fields)
        try:
            return self.props_type.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"{self.kind} '{resource_id}' has invalid props: {e}"
            ) from e


_registry: dict[str, Provider] = {}


def get_provider(kind: str) -> Provider:
    try:
        return _registry[kind]
    except KeyError:
        raise ConfigurationError(
            f"Unknown resource kind '{kind}'. Import the module that defines it "
            f"before loading state that references it."
        ) from None


def registered_kinds() -> list[str]:
    return sorted(_registry)


def resource(
    kind: str,
    *,
    props: type[ResourceProps] = ResourceProps,
    output: type[ResourceOutput] = ResourceOutput,
    always_update: bool = False,
):
    """Register a handler and turn it into an async resource constructor.

    The constructor takes the owning scope explicitly:

        @resource("cloudflare::R2Bucket", props=R2BucketProps, output=R2Bucket)
        async def R2Bucket(ctx, id, props): ...

        bucket = await R2Bucket(app, "assets", jurisdiction="eu")
    """

    def decorator(handler: Handler):
        if kind in _registry and _registry[kind].handler is not handler:
            logger.debug(f"Re-registering resource kind {kind}")
        provider = Provider(
            kind=kind,
            handler=handler,
            props_type=props,
            output_type=output,
            always_update=always_update,
        )
        _registry[kind] = provider

        @functools.wraps(handler)
        async def constructor(scope: "Scope", id: str, props_value: Any = None, /, **fields: Any):
            from .engine import apply

            declared = provider.validate_props(id, props_value, **fields)
            return await apply(scope, provider, id, declared)

        constructor.provider = provider
        return constructor

    return decorator
