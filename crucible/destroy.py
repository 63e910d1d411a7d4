"""Destroy walk and orphan sweep.

Both are best-effort: every deletable record is attempted, failures are
collected, and a single PartialSweepFailure is raised at the end. When a
delete fails, the records it depends on are skipped so nothing is removed
out from under a resource that still exists.
"""

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

import networkx as nx

from .engine import delete_record
from .errors import PartialSweepFailure
from .graph import build_teardown_graph, teardown_order
from .models import ResourceRecord

if TYPE_CHECKING:
    from .scope import Scope

logger = logging.getLogger(__name__)


async def find_orphans(scope: "Scope") -> list[ResourceRecord]:
    """Records under `scope` that the current run did not declare.

    Walks the child scopes entered this run. A record is an orphan when the
    scope it lives in did not declare it, or when it sits below a path
    segment that is neither an entered child scope nor a resource declared
    this run. Subtrees of scopes that exited with an error are kept.
    """
    records = await scope.state.list(scope.path)
    return _orphans_below(scope, records)


def _orphans_below(scope: "Scope", records: list[ResourceRecord]) -> list[ResourceRecord]:
    if scope.failed:
        return []

    depth = len(scope.path)
    seen = scope.seen
    declared = scope.declared_ids()
    children = {
        child.name: child for child in scope.children if not child.owned_by_resource
    }

    orphans = []
    grouped: dict[str, list[ResourceRecord]] = defaultdict(list)
    for record in records:
        relative = record.identity.scope_path[depth:]
        if not relative:
            if record.fqn not in seen:
                orphans.append(record)
        elif relative[0] in children:
            grouped[relative[0]].append(record)
        elif relative[0] not in declared:
            orphans.append(record)

    for name, group in grouped.items():
        orphans.extend(_orphans_below(children[name], group))
    return orphans


async def sweep(scope: "Scope") -> None:
    """Delete resources that are no longer declared in `scope`."""
    orphans = await find_orphans(scope)
    if not orphans:
        return
    logger.info(f"Sweeping {len(orphans)} orphaned resource(s) from {scope!r}")
    await destroy_records(scope, orphans)


async def destroy_records(scope: "Scope", records: list[ResourceRecord]) -> None:
    """Run the delete phase for `records`, dependents before dependencies.

    Raises:
        PartialSweepFailure: after attempting everything, if any delete failed
    """
    if not records:
        return

    graph = build_teardown_graph(records)
    failures: list[tuple[str, BaseException]] = []
    skipped: list[str] = []
    blocked: set[str] = set()

    for record in teardown_order(graph):
        if record.fqn in blocked:
            logger.warning(f"Skipping {record.identity}: a dependent could not be deleted")
            skipped.append(record.fqn)
            continue
        try:
            await delete_record(scope.scope_for(record.identity.scope_path), record)
        except Exception as e:
            logger.error(f"Failed to delete {record.identity}: {e}")
            failures.append((record.fqn, e))
            blocked |= nx.descendants(graph, record.fqn)

    if failures:
        raise PartialSweepFailure(failures, skipped)
