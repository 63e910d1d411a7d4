"""
Resource lifecycle engine.

Apply Pipeline: declare identity → check dependencies → load prior record →
pick phase → invoke handler → persist on success
Replace: create-before-delete by default, delete-before-create when forced
Delete: run the delete phase for a stored record, then drop the record
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union, assert_never

from .context import Context, DestroySignal, ReplaceSignal
from .errors import CrucibleError, ErrorKind, ProviderError, ResourceError
from .graph import collect_dependencies, ensure_settled
from .models import (
    PendingDeletion,
    Phase,
    RecordStatus,
    ResourceIdentity,
    ResourceOutput,
    ResourceProps,
    ResourceRecord,
)
from .resource import Provider, get_provider
from .serde import deserialize, deserialize_output, serialize, serialize_output

if TYPE_CHECKING:
    from .scope import Scope

logger = logging.getLogger(__name__)


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class Created:
    output: ResourceOutput


@dataclass(frozen=True)
class Updated:
    output: ResourceOutput


@dataclass(frozen=True)
class Replaced:
    """New object is live. `pending` holds the old object if its delete failed."""

    output: ResourceOutput
    pending: PendingDeletion | None = None


@dataclass(frozen=True)
class Destroyed:
    pass


@dataclass(frozen=True)
class Failed:
    phase: Phase
    error: BaseException


ApplyOutcome = Union[Created, Updated, Replaced, Destroyed, Failed]


class HandlerContractError(CrucibleError):
    """A handler returned something its phase does not allow."""
    pass


# =============================================================================
# Apply
# =============================================================================


async def apply(
    scope: "Scope", provider: Provider, id: str, props: ResourceProps
) -> ResourceOutput | None:
    """Reconcile one declared resource and return its output.

    Raises:
        ValidationError: duplicate declaration in the scope
        DependencyError: props reference an output without a settled record
        ResourceError: the handler failed (wraps the provider error)
    """
    identity = ResourceIdentity(kind=provider.kind, scope_path=scope.path, id=id)
    state = scope.state
    prior = await state.get(identity.fqn)

    if scope.phase == "destroy":
        # Teardown walk: the record is left unseen so finalize deletes it.
        logger.debug(f"{identity}: destroy phase, not applying")
        return _load_output(identity, prior)

    scope.declare(identity)
    dependencies = collect_dependencies(props)
    await ensure_settled(identity, dependencies, state)

    props_tree = serialize(props)
    if prior is not None and _unchanged(provider, prior, props_tree):
        logger.debug(f"{identity}: no changes, skipping")
        return _load_output(identity, prior)

    phase = Phase.UPDATE if prior is not None else Phase.CREATE
    prior_output = _load_output(identity, prior)
    logger.info(f"{phase.value.capitalize()} {identity}")

    outcome = await _reconcile(scope, provider, identity, phase, props, prior, prior_output)

    match outcome:
        case Created(output=output):
            record = _record(identity, RecordStatus.CREATED, output, props_tree, dependencies, prior)
        case Updated(output=output):
            record = _record(identity, RecordStatus.UPDATED, output, props_tree, dependencies, prior)
        case Replaced(output=output, pending=pending):
            record = _record(identity, RecordStatus.CREATED, output, props_tree, dependencies, prior)
            record.created_at = record.updated_at
            if pending is not None:
                record.pending_deletions.append(pending)
        case Destroyed():
            raise ResourceError(
                identity,
                phase.value,
                HandlerContractError("handler returned destroy() outside the delete phase"),
            )
        case Failed(phase=failed_phase, error=error):
            raise ResourceError(identity, failed_phase.value, error) from error
        case _:
            assert_never(outcome)

    if prior is not None and prior.pending_deletions:
        retried = await _retry_pending(scope, provider, identity, prior.pending_deletions)
        record.pending_deletions = retried + record.pending_deletions
    await state.set(record)
    return output.bind(identity)


def _unchanged(provider: Provider, prior: ResourceRecord, props_tree: Any) -> bool:
    return (
        not provider.always_update
        and prior.status != RecordStatus.DELETED
        and not prior.pending_deletions
        and prior.props == props_tree
    )


def _load_output(identity: ResourceIdentity, record: ResourceRecord | None) -> ResourceOutput | None:
    if record is None:
        return None
    output = deserialize_output(identity.kind, record.output)
    return output.bind(identity) if output is not None else None


def _record(
    identity: ResourceIdentity,
    status: RecordStatus,
    output: ResourceOutput,
    props_tree: Any,
    dependencies: list[ResourceIdentity],
    prior: ResourceRecord | None,
) -> ResourceRecord:
    record = ResourceRecord(
        identity=identity,
        status=status,
        output=serialize_output(output),
        props=props_tree,
        dependencies=[dependency.fqn for dependency in dependencies],
        seen_in_current_run=True,
    )
    if prior is not None:
        record.created_at = prior.created_at
    return record


# =============================================================================
# Handler invocation
# =============================================================================


async def _reconcile(
    scope: "Scope",
    provider: Provider,
    identity: ResourceIdentity,
    phase: Phase,
    props: ResourceProps,
    prior: ResourceRecord | None,
    prior_output: ResourceOutput | None,
) -> ApplyOutcome:
    ctx = Context(
        identity=identity,
        phase=phase,
        scope=scope.resource_scope(identity.id),
        props=props,
        output=prior_output,
    )
    result = await _invoke(provider, ctx)
    if isinstance(result, Failed):
        return result

    if isinstance(result, ReplaceSignal):
        if phase is not Phase.UPDATE or prior is None:
            return Failed(phase, HandlerContractError("replace() is only valid in the update phase"))
        return await _replace(scope, provider, identity, props, prior, prior_output, result.force)

    if isinstance(result, DestroySignal):
        return Destroyed()

    return await _settle_nested(ctx, Created(result) if phase is Phase.CREATE else Updated(result))


async def _replace(
    scope: "Scope",
    provider: Provider,
    identity: ResourceIdentity,
    props: ResourceProps,
    prior: ResourceRecord,
    prior_output: ResourceOutput | None,
    force: bool,
) -> ApplyOutcome:
    old_props = _load_props(provider, identity, prior.props)
    old = PendingDeletion(output=prior.output, props=prior.props)

    if force:
        logger.info(f"Replace {identity} (delete before create)")
        try:
            await _delete_remote(scope, provider, identity, old_props, prior_output)
        except Exception as e:
            return Failed(Phase.DELETE, e)
        suffix = None
    else:
        logger.info(f"Replace {identity} (create before delete)")
        suffix = _replacement_suffix(identity, prior.output)

    ctx = Context(
        identity=identity,
        phase=Phase.CREATE,
        scope=scope.resource_scope(identity.id),
        props=props,
        previous_output=prior_output,
        replacement_suffix=suffix,
    )
    result = await _invoke(provider, ctx)
    if isinstance(result, Failed):
        return result
    if isinstance(result, (ReplaceSignal, DestroySignal)):
        return Failed(
            Phase.CREATE,
            HandlerContractError(f"handler returned {type(result).__name__} while creating a replacement"),
        )

    outcome = await _settle_nested(ctx, Replaced(result))
    if force or not isinstance(outcome, Replaced):
        return outcome

    try:
        await _delete_remote(scope, provider, identity, old_props, prior_output)
    except Exception as e:
        logger.warning(
            f"Replaced {identity} but deleting the old object failed, "
            f"will retry on the next run: {e}"
        )
        return Replaced(outcome.output, pending=old)
    return outcome


async def _invoke(provider: Provider, ctx: Context) -> ResourceOutput | ReplaceSignal | DestroySignal | Failed:
    """Run the handler once and normalise what it returned."""
    try:
        result = await provider.handler(ctx, ctx.id, ctx.props)
    except Exception as e:
        return Failed(ctx.phase, e)

    if isinstance(result, (ReplaceSignal, DestroySignal, provider.output_type)):
        return result
    if isinstance(result, dict):
        try:
            return provider.output_type.model_validate(result)
        except Exception as e:
            return Failed(ctx.phase, e)
    return Failed(
        ctx.phase,
        HandlerContractError(
            f"handler returned {type(result).__name__}, expected {provider.output_type.__name__}"
        ),
    )


async def _settle_nested(ctx: Context, outcome: ApplyOutcome) -> ApplyOutcome:
    """Sweep orphans among the nested resources once the handler succeeded."""
    try:
        await ctx.scope.finalize()
    except Exception as e:
        return Failed(ctx.phase, e)
    return outcome


def _replacement_suffix(identity: ResourceIdentity, old_output: Any) -> str:
    fingerprint = json.dumps(old_output, sort_keys=True, default=str)
    return hashlib.sha256(f"{identity.fqn}:{fingerprint}".encode("utf-8")).hexdigest()[:6]


def _load_props(provider: Provider, identity: ResourceIdentity, props_tree: Any) -> ResourceProps:
    return provider.validate_props(identity.id, deserialize(props_tree) or {})


# =============================================================================
# Delete
# =============================================================================


async def _delete_remote(
    scope: "Scope",
    provider: Provider,
    identity: ResourceIdentity,
    props: ResourceProps,
    output: ResourceOutput | None,
) -> None:
    """Run the delete phase for one remote object, honouring the delete guard."""
    if not props.delete:
        logger.info(f"Abandon {identity} (delete=False), leaving the remote object in place")
        return

    ctx = Context(
        identity=identity,
        phase=Phase.DELETE,
        scope=scope.detached(identity.nested_path),
        props=props,
        output=output.bind(identity) if output is not None else None,
    )
    result = await _invoke(provider, ctx)
    match result:
        case DestroySignal():
            return
        case Failed(error=ProviderError(kind=ErrorKind.NOT_FOUND) as error):
            logger.info(f"{identity} is already gone: {error}")
            return
        case Failed(error=error):
            raise error
        case _:
            raise HandlerContractError(
                f"{identity}: delete phase must return ctx.destroy(), got {type(result).__name__}"
            )


async def delete_record(scope: "Scope", record: ResourceRecord) -> None:
    """Delete the remote object behind `record` and drop the record.

    Pending deletions from earlier replacements go first. A failure leaves
    the record in the store so the next run retries it.
    """
    identity = record.identity
    provider = get_provider(identity.kind)
    props = _load_props(provider, identity, record.props)
    logger.info(f"Delete {identity}")

    remaining = await _retry_pending(scope, provider, identity, record.pending_deletions)
    if remaining:
        record.pending_deletions = remaining
        await scope.state.set(record)
        raise ResourceError(
            identity,
            Phase.DELETE.value,
            CrucibleError(f"{len(remaining)} replaced object(s) could not be deleted"),
        )

    output = deserialize_output(identity.kind, record.output)
    try:
        await _delete_remote(scope, provider, identity, props, output)
    except Exception as e:
        raise ResourceError(identity, Phase.DELETE.value, e) from e
    await scope.state.delete(identity.fqn)


async def _retry_pending(
    scope: "Scope",
    provider: Provider,
    identity: ResourceIdentity,
    pending_deletions: list[PendingDeletion],
) -> list[PendingDeletion]:
    remaining = []
    for pending in pending_deletions:
        props = _load_props(provider, identity, pending.props)
        output = deserialize_output(identity.kind, pending.output)
        try:
            await _delete_remote(scope, provider, identity, props, output)
            logger.info(f"Deleted replaced object of {identity}")
        except Exception as e:
            logger.warning(f"Could not delete replaced object of {identity}: {e}")
            remaining.append(pending)
    return remaining
