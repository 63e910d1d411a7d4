"""Uniform adoption protocol.

Provider create calls are captured as ``Ok``/``Err`` values and matched on
the error kind, so every resource type adopts pre-existing objects the same
way:

1. create
2. on ALREADY_EXISTS with adopt enabled: find the object by name
3. update it with the declared properties and use that as the result

Without adopt, or for any other error, the original error propagates.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .errors import ErrorKind, NotFoundError, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: ProviderError


Result = Union[Ok[T], Err]


async def attempt(call: Awaitable[T]) -> Result[T]:
    """Await a provider call, capturing a ProviderError instead of raising it."""
    try:
        return Ok(await call)
    except ProviderError as e:
        return Err(e)


async def create_or_adopt(
    create: Callable[[], Awaitable[T]],
    find: Callable[[], Awaitable[T | None]],
    update: Callable[[T], Awaitable[T]],
    *,
    adopt: bool,
    name: str,
    kind: str,
) -> T:
    """Create a remote object, adopting an existing one with the same name.

    Args:
        create: Issues the create call
        find: Looks the existing object up by name (None if absent)
        update: Converges the found object to the declared properties
        adopt: Whether adoption is allowed
        name: Remote object name, for messages
        kind: Resource type, for messages
    """
    match await attempt(create()):
        case Ok(value=value):
            return value
        case Err(error=error) if error.kind is ErrorKind.ALREADY_EXISTS and adopt:
            logger.info(f"{kind} '{name}' already exists, adopting it")
            existing = await find()
            if existing is None:
                raise NotFoundError(
                    f"{kind} '{name}' reported as existing but could not be found for adoption"
                ) from error
            return await update(existing)
        case Err(error=error):
            raise error
