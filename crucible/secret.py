"""Secret values that never render their plaintext."""

from typing import Any

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema

MASK = "******"


class Secret:
    """A string value that is stored at rest but never logged.

    ``str()`` and ``repr()`` return a mask, so secrets can flow through
    f-string log lines and exception messages safely. Use ``unencrypted`` to
    read the plaintext when calling a provider.

    Example:
        >>> password = Secret("hunter2")
        >>> f"password={password}"
        'password=******'
        >>> password.unencrypted
        'hunter2'
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        if isinstance(value, Secret):
            value = value.unencrypted
        if not isinstance(value, str):
            raise TypeError(
                f"Secret value must be a string, got {type(value).__name__}"
            )
        self._value = value

    @property
    def unencrypted(self) -> str:
        return self._value

    def __str__(self) -> str:
        return MASK

    def __repr__(self) -> str:
        return f"Secret('{MASK}')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Secret):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("crucible.Secret", self._value))

    def __copy__(self) -> "Secret":
        return Secret(self._value)

    def __deepcopy__(self, memo: dict) -> "Secret":
        return Secret(self._value)

    def __reduce__(self):
        return (Secret, (self._value,))

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        # Plain strings are wrapped on validation; JSON dumps only ever see the mask.
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(
                str, when_used="json"
            ),
        )

    @classmethod
    def _validate(cls, value: Any) -> "Secret":
        if isinstance(value, Secret):
            return value
        if isinstance(value, str):
            return cls(value)
        raise ValueError(f"Expected a string or Secret, got {type(value).__name__}")


def secret(value: str | Secret) -> Secret:
    """Wrap a plaintext string; an existing Secret is returned unchanged."""
    if isinstance(value, Secret):
        return value
    return Secret(value)
