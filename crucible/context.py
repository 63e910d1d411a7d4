"""Handler context and the control signals a handler may return."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from .models import Phase, ResourceIdentity, ResourceOutput, ResourceProps

if TYPE_CHECKING:
    from .scope import Scope

O = TypeVar("O", bound=ResourceOutput)


@dataclass(frozen=True)
class ReplaceSignal:
    """Returned by a handler when the remote object cannot be updated in place.

    Attributes:
        force: Delete the old object before creating the new one. Needed when
            the object's identity is its name, so both cannot coexist.
    """

    force: bool = False


@dataclass(frozen=True)
class DestroySignal:
    """Returned by a handler to confirm a successful delete phase."""


class Context(Generic[O]):
    """What a handler sees for one invocation.

    Attributes:
        phase: create, update or delete
        output: Prior output (None on create, including replacement creates)
        previous_output: Output being replaced during a replacement create
        props: Declared props in canonical form
        scope: The resource's own nested scope, for nested resources and
            ambient flags
        replacing: True while running the create half of a replacement
    """

    def __init__(
        self,
        *,
        identity: ResourceIdentity,
        phase: Phase,
        scope: "Scope",
        props: ResourceProps,
        output: O | None = None,
        previous_output: O | None = None,
        replacement_suffix: str | None = None,
    ):
        self.identity = identity
        self.phase = phase
        self.scope = scope
        self.props = props
        self.output = output
        self.previous_output = previous_output
        self.replacement_suffix = replacement_suffix

    @property
    def id(self) -> str:
        return self.identity.id

    @property
    def fqn(self) -> str:
        return self.identity.fqn

    @property
    def replacing(self) -> bool:
        return self.previous_output is not None

    @property
    def adopt(self) -> bool:
        """Resource-level override, else the scope default."""
        if self.props.adopt is not None:
            return self.props.adopt
        return self.scope.adopt

    def create_physical_name(self, separator: str = "-", max_length: int = 63) -> str:
        """Physical name for this resource.

        During a create-before-delete replacement a stable suffix is added so
        the new object does not collide with the old one still alive.
        """
        return self.scope.create_physical_name(
            self.id, separator, max_length, suffix=self.replacement_suffix
        )

    def replace(self, force: bool = False) -> ReplaceSignal:
        return ReplaceSignal(force=force)

    def destroy(self) -> DestroySignal:
        return DestroySignal()
