"""Fraud ring detection over an actor relationship graph.

Actors are nodes 0..N-1; a directed edge means the source is tied to the
target (shared payment instrument, shared device, referral). A ring is a
strongly connected component with more than one actor: every member can
reach every other member through the relationship graph.

This runs offline over a full snapshot, never per transaction.
"""

from collections.abc import Iterable, Sequence

import structlog

from .errors import ValidationError
from .models import FraudRing, RelationEdge, RelationKind

logger = structlog.get_logger()


def build_adjacency(actor_count: int, edges: Iterable[RelationEdge]) -> list[list[int]]:
    adjacency: list[list[int]] = [[] for _ in range(actor_count)]
    for edge in edges:
        if not (0 <= edge.source < actor_count and 0 <= edge.target < actor_count):
            raise ValidationError(
                f"Edge {edge.source}->{edge.target} references an actor outside [0, {actor_count})"
            )
        adjacency[edge.source].append(edge.target)
    return adjacency


def strongly_connected_components(adjacency: Sequence[Sequence[int]]) -> list[list[int]]:
    """Tarjan's algorithm, iterative so deep graphs don't hit the recursion limit."""
    n = len(adjacency)
    index = [-1] * n
    lowlink = [0] * n
    on_stack = [False] * n
    stack: list[int] = []
    components: list[list[int]] = []
    counter = 0

    for root in range(n):
        if index[root] != -1:
            continue

        # Each frame is (node, position of the next neighbour to visit)
        work: list[tuple[int, int]] = [(root, 0)]
        while work:
            node, pos = work.pop()
            if pos == 0:
                index[node] = lowlink[node] = counter
                counter += 1
                stack.append(node)
                on_stack[node] = True

            neighbours = adjacency[node]
            descended = False
            while pos < len(neighbours):
                nxt = neighbours[pos]
                pos += 1
                if index[nxt] == -1:
                    work.append((node, pos))
                    work.append((nxt, 0))
                    descended = True
                    break
                if on_stack[nxt]:
                    lowlink[node] = min(lowlink[node], index[nxt])
            if descended:
                continue

            if lowlink[node] == index[node]:
                component: list[int] = []
                while True:
                    member = stack.pop()
                    on_stack[member] = False
                    component.append(member)
                    if member == node:
                        break
                components.append(component)

            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

    return components


def edges_from_shared_values(
    values: Sequence[str | None],
    kind: RelationKind = RelationKind.SHARED_PAYMENT,
) -> list[RelationEdge]:
    """Link actors that share an attribute value (card fingerprint, device id).

    ``values[i]`` is actor i's value, or None. Actors sharing a value are
    chained in both directions so they land in one component.
    """
    groups: dict[str, list[int]] = {}
    for actor, value in enumerate(values):
        if value:
            groups.setdefault(value, []).append(actor)

    edges: list[RelationEdge] = []
    for actors in groups.values():
        for a, b in zip(actors, actors[1:]):
            edges.append(RelationEdge(source=a, target=b, kind=kind))
            edges.append(RelationEdge(source=b, target=a, kind=kind))
    return edges


class FraudRingDetector:
    """Finds clusters of mutually connected actors."""

    def detect(self, actor_count: int, edges: Iterable[RelationEdge]) -> list[FraudRing]:
        edges = list(edges)
        if actor_count <= 0:
            return []

        adjacency = build_adjacency(actor_count, edges)
        components = strongly_connected_components(adjacency)
        rings = [FraudRing(members=tuple(c)) for c in components if len(c) > 1]
        rings.sort(key=lambda ring: ring.members)

        logger.info(
            "fraud_rings_detected",
            actors=actor_count,
            edges=len(edges),
            components=len(components),
            rings=len(rings),
        )
        return rings
