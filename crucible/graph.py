"""Dependency/output graph.

Edges come from declared props that contain another resource's output.
Declaration order already guarantees producers finish before consumers
(an output cannot be referenced before the call producing it returned), so
the graph is only needed to check that edges point at settled records and to
order teardown.
"""

import logging
from collections.abc import Iterable
from typing import Any

import networkx as nx
from pydantic import BaseModel

from .errors import DependencyError
from .models import ResourceIdentity, ResourceOutput, ResourceRecord
from .state import StateStore

logger = logging.getLogger(__name__)


def collect_dependencies(value: Any) -> list[ResourceIdentity]:
    """Find every resource output referenced inside declared props."""
    found: dict[str, ResourceIdentity] = {}
    _walk(value, found)
    return list(found.values())


def _walk(value: Any, found: dict[str, ResourceIdentity]) -> None:
    if isinstance(value, ResourceOutput) and value.resource_identity is not None:
        found.setdefault(value.resource_identity.fqn, value.resource_identity)
        return
    if isinstance(value, BaseModel):
        for name in type(value).model_fields:
            _walk(getattr(value, name), found)
        for item in (value.model_extra or {}).values():
            _walk(item, found)
    elif isinstance(value, dict):
        for item in value.values():
            _walk(item, found)
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            _walk(item, found)


async def ensure_settled(
    identity: ResourceIdentity,
    dependencies: Iterable[ResourceIdentity],
    state: StateStore,
) -> None:
    """Every dependency must have a persisted record before the handler runs."""
    for dependency in dependencies:
        if dependency == identity:
            raise DependencyError(f"{identity} cannot depend on itself")
        if await state.get(dependency.fqn) is None:
            raise DependencyError(
                f"{identity} depends on {dependency}, which has no settled record"
            )


def build_teardown_graph(records: list[ResourceRecord]) -> nx.DiGraph:
    """Directed graph with an edge from each record to what must outlive it.

    A record points at its dependencies and at the records nested under it
    (created inside its handler).
    """
    graph = nx.DiGraph()
    for record in records:
        graph.add_node(record.fqn, record=record)

    for record in records:
        for dependency in record.dependencies:
            if dependency in graph:
                graph.add_edge(record.fqn, dependency)
        nested = record.identity.nested_path
        for other in records:
            if other.identity.scope_path[: len(nested)] == nested:
                graph.add_edge(record.fqn, other.fqn)
    return graph


def teardown_order(graph: nx.DiGraph) -> list[ResourceRecord]:
    """Dependents first. Ties are broken newest-first."""
    newest_first = sorted(
        graph.nodes,
        key=lambda fqn: graph.nodes[fqn]["record"].created_at,
        reverse=True,
    )
    rank = {fqn: index for index, fqn in enumerate(newest_first)}
    try:
        order = nx.lexicographical_topological_sort(graph, key=rank.__getitem__)
        return [graph.nodes[fqn]["record"] for fqn in order]
    except nx.NetworkXUnfeasible as e:
        cycle = nx.find_cycle(graph)
        raise DependencyError(
            f"Dependency cycle in stored state: {' -> '.join(u for u, _ in cycle)}"
        ) from e
