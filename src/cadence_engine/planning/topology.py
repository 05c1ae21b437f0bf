"""Slot dependency topology: deterministic graph, execution order, and structural checks."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from heapq import heapify, heappop, heappush
from typing import TYPE_CHECKING

from cadence_engine.domain.ids import CadenceSlotId
from cadence_engine.planning.utility import bucket_slots_by_window, sort_windows

if TYPE_CHECKING:
    from cadence_engine.domain.models import (
        CadencePlanCandidate,
        CadenceRunPlan,
        CadenceWindow,
    )


class SlotGraph:
    """Directed ``dependency -> dependent`` graph over slot ids.

    Traversals follow node insertion order so results are reproducible for the
    same candidate.
    """

    __slots__ = ("_index", "_children", "_parents")

    def __init__(
        self,
        nodes: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._index: dict[str, int] = {}
        self._children: dict[str, list[str]] = {}
        self._parents: dict[str, list[str]] = {}

        if nodes is not None:
            for node_id in nodes:
                self.add_node(node_id)

        if edges is not None:
            for parent, child in edges:
                self.add_edge(parent, child)

    @property
    def nodes(self) -> tuple[str, ...]:
        """All node ids in insertion order."""
        return tuple(self._index)

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        """All edges as ``(parent, child)`` pairs, grouped by parent insertion order."""
        return tuple(
            (parent, child) for parent in self._index for child in self._children[parent]
        )

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._index

    def __len__(self) -> int:
        return len(self._index)

    def add_node(self, node_id: str) -> None:
        """Add a node if it does not already exist."""
        if not node_id:
            raise ValueError("Node ID must be non-empty.")
        if node_id in self._index:
            return
        self._index[node_id] = len(self._index)
        self._children[node_id] = []
        self._parents[node_id] = []

    def add_edge(self, parent: str, child: str) -> None:
        """Add a directed edge ``parent -> child``; repeated edges are ignored."""
        self.add_node(parent)
        self.add_node(child)
        if child in self._children[parent]:
            return
        self._children[parent].append(child)
        self._parents[child].append(parent)

    def peel(self, *, pinned: Mapping[str, int] | None = None) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """
        Kahn-style peel of zero in-degree nodes.

        ``pinned`` adds extra in-degree per node for dependencies that are not
        part of the graph; such nodes can never be released. Returns
        ``(order, remainder)`` where ``remainder`` lists unreleased nodes in
        insertion order.
        """
        extra = pinned or {}
        indegree = {node: len(self._parents[node]) + extra.get(node, 0) for node in self._index}
        ready = [(self._index[node], node) for node, degree in indegree.items() if degree == 0]
        heapify(ready)

        order: list[str] = []
        while ready:
            _, node = heappop(ready)
            order.append(node)
            for child in self._children[node]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heappush(ready, (self._index[child], child))

        released = set(order)
        remainder = tuple(node for node in self._index if node not in released)
        return tuple(order), remainder

    def cyclic_nodes(self) -> tuple[str, ...]:
        """
        Nodes that lie on at least one directed cycle, in insertion order.

        Iterative Tarjan walk: a node is cyclic when its strongly connected
        component has more than one member or it has an edge to itself.
        """
        entry: dict[str, int] = {}
        low: dict[str, int] = {}
        stack: list[str] = []
        on_stack: set[str] = set()
        cyclic: set[str] = set()

        def open_node(node: str) -> None:
            entry[node] = low[node] = len(entry)
            stack.append(node)
            on_stack.add(node)

        for root in self._index:
            if root in entry:
                continue
            open_node(root)
            frames: list[tuple[str, Iterator[str]]] = [(root, iter(self._children[root]))]
            while frames:
                node, children = frames[-1]
                child = next(children, None)
                if child is not None:
                    if child not in entry:
                        open_node(child)
                        frames.append((child, iter(self._children[child])))
                    elif child in on_stack:
                        low[node] = min(low[node], entry[child])
                    continue

                frames.pop()
                if frames:
                    parent = frames[-1][0]
                    low[parent] = min(low[parent], low[node])
                if low[node] != entry[node]:
                    continue
                component: list[str] = []
                while not component or component[-1] != node:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                if len(component) > 1 or node in self._children[node]:
                    cyclic.update(component)

        return tuple(node for node in self._index if node in cyclic)

    def critical_path(self, weights: Mapping[str, float] | None = None) -> tuple[str, ...]:
        """
        Heaviest dependency chain in the acyclic part of the graph.

        Node weights default to ``1.0``. Nodes left unreleased by :meth:`peel`
        are ignored.
        """
        order, _ = self.peel()
        if not order:
            return ()

        def weight(node: str) -> float:
            if weights is None:
                return 1.0
            return float(weights.get(node, 1.0))

        distances: dict[str, float] = {node: weight(node) for node in order}
        predecessors: dict[str, str | None] = {node: None for node in order}
        for parent in order:
            for child in self._children[parent]:
                if child not in distances:
                    continue
                candidate = distances[parent] + weight(child)
                if candidate > distances[child]:
                    distances[child] = candidate
                    predecessors[child] = parent

        end_node = order[0]
        for node in order[1:]:
            if distances[node] > distances[end_node]:
                end_node = node

        path: list[str] = []
        cursor: str | None = end_node
        while cursor is not None:
            path.append(cursor)
            cursor = predecessors[cursor]
        path.reverse()
        return tuple(path)


@dataclass(frozen=True, slots=True)
class TopologyEdge:
    source: CadenceSlotId
    target: CadenceSlotId

    def render(self) -> str:
        return f"{self.source}->{self.target}"


@dataclass(frozen=True, slots=True)
class CadenceTopology:
    """Execution order and edge set derived from a candidate's slots.

    ``degraded`` is set when the peel stalled and unresolved slots were
    appended verbatim to ``order``; cross-check with :func:`validate_topology`.
    """

    order: tuple[CadenceSlotId, ...]
    edges: tuple[TopologyEdge, ...]
    windows: tuple[CadenceWindow, ...]
    windows_by_slot: Mapping[CadenceSlotId, CadenceWindow]
    unresolved: tuple[CadenceSlotId, ...] = ()
    critical_path: tuple[CadenceSlotId, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.unresolved)


@dataclass(frozen=True, slots=True)
class TopologyValidation:
    ok: bool
    errors: tuple[str, ...]
    circular_dependencies: tuple[CadenceSlotId, ...]
    dangling: tuple[str, ...] = ()


def _slot_graph(
    candidate: CadencePlanCandidate,
) -> tuple[SlotGraph, dict[str, int], list[tuple[CadenceSlotId, CadenceSlotId]]]:
    """Graph over known slots plus pinned in-degree and the dangling ``(slot, dependency)`` pairs."""
    slots = candidate.profile.slots
    graph = SlotGraph(nodes=(slot.id for slot in slots))
    pinned: dict[str, int] = {}
    dangling: list[tuple[CadenceSlotId, CadenceSlotId]] = []
    for slot in slots:
        for dependency in dict.fromkeys(slot.requires):
            if dependency in graph:
                graph.add_edge(dependency, slot.id)
            else:
                pinned[slot.id] = pinned.get(slot.id, 0) + 1
                dangling.append((slot.id, dependency))
    return graph, pinned, dangling


def build_topology(candidate: CadencePlanCandidate) -> CadenceTopology:
    """
    Derive execution order for ``candidate``.

    Never raises: when the peel stalls on a cycle or an unresolved dependency,
    the remaining slots are appended to ``order`` in declaration order.
    """
    slots = candidate.profile.slots
    graph, pinned, _ = _slot_graph(candidate)
    order, remainder = graph.peel(pinned=pinned)

    edges = tuple(
        TopologyEdge(source=dependency, target=slot.id)
        for slot in slots
        for dependency in slot.requires
    )

    windows = sort_windows(candidate.profile.windows)
    windows_by_id = {window.id: window for window in windows}
    windows_by_slot = {
        slot.id: windows_by_id[slot.window_id] for slot in slots if slot.window_id in windows_by_id
    }
    minutes = {slot.id: float(slot.estimated_minutes) for slot in slots}

    return CadenceTopology(
        order=order + remainder,
        edges=edges,
        windows=windows,
        windows_by_slot=windows_by_slot,
        unresolved=remainder,
        critical_path=graph.critical_path(minutes),
    )


def validate_topology(candidate: CadencePlanCandidate) -> TopologyValidation:
    """Check window chronology, slot/window integrity, slot bounds, and dependency cycles."""
    errors: list[str] = []

    # Stable chronological order; each window must still be a forward interval.
    windows = sort_windows(candidate.profile.windows)
    for window in windows:
        if window.starts_at >= window.ends_at:
            errors.append(f"window {window.id} must start before it ends")

    known_windows = {window.id for window in windows}
    slots = candidate.profile.slots
    for slot in slots:
        if slot.window_id not in known_windows:
            errors.append(f"slot {slot.id} references unknown window {slot.window_id}")
        if not slot.estimated_minutes > 0:
            errors.append(f"slot {slot.id} must have positive estimated minutes")
        if not 0.0 <= slot.weight <= 1.0:
            errors.append(f"slot {slot.id} weight {slot.weight} is outside [0, 1]")

    graph, _, dangling = _slot_graph(candidate)
    circular = graph.cyclic_nodes()
    for slot_id in circular:
        errors.append(f"circular dependency detected at slot {slot_id}")

    return TopologyValidation(
        ok=not errors,
        errors=tuple(errors),
        circular_dependencies=tuple(CadenceSlotId(slot_id) for slot_id in circular),
        dangling=tuple(
            f"slot {slot_id} requires unknown slot {dependency}" for slot_id, dependency in dangling
        ),
    )


def split_by_execution_window(plan: CadenceRunPlan) -> tuple[CadenceRunPlan, ...]:
    """One single-window view of ``plan`` per window, chronologically ordered."""
    buckets = bucket_slots_by_window(plan.slots)
    return tuple(
        replace(plan, windows=(window,), slots=tuple(buckets.get(window.id, ())))
        for window in sort_windows(plan.windows)
    )


__all__ = [
    "CadenceTopology",
    "SlotGraph",
    "TopologyEdge",
    "TopologyValidation",
    "build_topology",
    "split_by_execution_window",
    "validate_topology",
]
