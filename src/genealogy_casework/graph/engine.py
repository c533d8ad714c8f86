"""Relationship graph engine.

Builds a throwaway adjacency index over flat relationship rows and answers
graph questions against it:

- cycle detection for parent edges
- shortest relationship path between two persons (BFS)
- ancestor / descendant pedigree trees
- derived kinship (sibling, cousin, ...) from the nearest common ancestor

Nothing here touches storage. Callers load the edges, hand them in, and get
plain results back, so every query sees one consistent snapshot.
"""
from __future__ import annotations

import threading
from collections import defaultdict, deque
from typing import Callable, Iterable, Iterator
from uuid import UUID

import structlog

from genealogy_casework.config import GRAPH
from genealogy_casework.exceptions import TraversalCancelled
from genealogy_casework.models import (
    LINEAGE_TYPES,
    DerivedRelationship,
    PedigreeNode,
    Person,
    Relationship,
    RelationshipType,
)
from genealogy_casework.validation.result import ValidationResult

logger = structlog.get_logger(__name__)

PersonLookup = Callable[[UUID], "Person | None"]


def _check_cancel(cancel: threading.Event | None, operation: str) -> None:
    if cancel is not None and cancel.is_set():
        logger.info("graph.cancelled", operation=operation)
        raise TraversalCancelled(operation)


def _unique(ids: Iterable[UUID], exclude: UUID | None = None) -> list[UUID]:
    seen: set[UUID] = set()
    out: list[UUID] = []
    for pid in ids:
        if pid == exclude or pid in seen:
            continue
        seen.add(pid)
        out.append(pid)
    return out


class RelationshipGraph:
    """Arena of edges plus a per-person index into it.

    ``adjacency`` keeps edge indices in the order the edges were given, which
    is storage insertion order. BFS tie-breaks follow that order.

    Example:
        >>> graph = RelationshipGraph.from_edges(storage.relationships.find_all())
        >>> path = graph.find_path(alice.id, carol.id)
    """

    def __init__(self, edges: Iterable[Relationship]) -> None:
        self.edges: list[Relationship] = list(edges)
        self.adjacency: dict[UUID, list[int]] = defaultdict(list)
        for index, edge in enumerate(self.edges):
            self.adjacency[edge.person1_id].append(index)
            if edge.person2_id != edge.person1_id:
                self.adjacency[edge.person2_id].append(index)

    @classmethod
    def from_edges(cls, edges: Iterable[Relationship]) -> RelationshipGraph:
        return cls(edges)

    def __len__(self) -> int:
        return len(self.edges)

    def __contains__(self, person_id: UUID) -> bool:
        return person_id in self.adjacency

    def edges_of(self, person_id: UUID) -> Iterator[Relationship]:
        for index in self.adjacency.get(person_id, ()):
            yield self.edges[index]

    def neighbors(self, person_id: UUID) -> Iterator[tuple[Relationship, UUID]]:
        """Yield ``(edge, other person)`` treating every edge as undirected."""
        for edge in self.edges_of(person_id):
            yield edge, edge.other_person(person_id)

    # =========================================================================
    # Lineage views
    # =========================================================================

    def parents_of(self, person_id: UUID) -> list[UUID]:
        found = []
        for edge in self.edges_of(person_id):
            if edge.relationship_type is RelationshipType.PARENT and edge.person2_id == person_id:
                found.append(edge.person1_id)
            elif edge.relationship_type is RelationshipType.CHILD and edge.person1_id == person_id:
                found.append(edge.person2_id)
        return _unique(found, exclude=person_id)

    def children_of(self, person_id: UUID) -> list[UUID]:
        found = []
        for edge in self.edges_of(person_id):
            if edge.relationship_type is RelationshipType.PARENT and edge.person1_id == person_id:
                found.append(edge.person2_id)
            elif edge.relationship_type is RelationshipType.CHILD and edge.person2_id == person_id:
                found.append(edge.person1_id)
        return _unique(found, exclude=person_id)

    def spouses_of(self, person_id: UUID) -> list[UUID]:
        return _unique(
            (e.other_person(person_id) for e in self.edges_of(person_id) if e.relationship_type is RelationshipType.SPOUSE),
            exclude=person_id,
        )

    def siblings_of(self, person_id: UUID) -> list[UUID]:
        """Persons sharing at least one parent (half-siblings included)."""
        return _unique(
            (child for parent in self.parents_of(person_id) for child in self.children_of(parent)),
            exclude=person_id,
        )

    def _descendant_map(self) -> dict[UUID, list[UUID]]:
        # Child mirrors are folded into the parent -> child direction
        down: dict[UUID, list[UUID]] = defaultdict(list)
        for edge in self.edges:
            if edge.relationship_type is RelationshipType.PARENT:
                down[edge.person1_id].append(edge.person2_id)
            elif edge.relationship_type is RelationshipType.CHILD:
                down[edge.person2_id].append(edge.person1_id)
        return down

    # =========================================================================
    # Cycle detection
    # =========================================================================

    def would_create_cycle(self, parent_id: UUID, child_id: UUID) -> bool:
        """True when making ``parent_id`` a parent of ``child_id`` closes a loop.

        That happens exactly when ``parent_id`` is already reachable going
        down from ``child_id``. A self-loop is the trivial case.
        """
        if parent_id == child_id:
            return True
        down = self._descendant_map()
        visited: set[UUID] = {child_id}
        stack = [child_id]
        while stack:
            current = stack.pop()
            for nxt in down.get(current, ()):
                if nxt == parent_id:
                    return True
                if nxt not in visited:
                    visited.add(nxt)
                    stack.append(nxt)
        return False

    def find_cycles(self) -> list[tuple[UUID, UUID]]:
        """Back edges found by a three-colour DFS over the lineage edges.

        Each returned pair ``(a, b)`` is an edge ``a -> b`` (parent to child)
        whose target is still on the DFS stack.
        """
        down = self._descendant_map()
        white, grey, black = 0, 1, 2
        colour: dict[UUID, int] = defaultdict(int)
        back_edges: list[tuple[UUID, UUID]] = []

        for root in list(down):
            if colour[root] != white:
                continue
            colour[root] = grey
            stack: list[tuple[UUID, Iterator[UUID]]] = [(root, iter(down.get(root, ())))]
            while stack:
                node, children = stack[-1]
                advanced = False
                for child in children:
                    if colour[child] == white:
                        colour[child] = grey
                        stack.append((child, iter(down.get(child, ()))))
                        advanced = True
                        break
                    if colour[child] == grey:
                        back_edges.append((node, child))
                if not advanced:
                    colour[node] = black
                    stack.pop()
        return back_edges

    # =========================================================================
    # Path finding
    # =========================================================================

    def find_path(
        self,
        start_id: UUID,
        end_id: UUID,
        max_depth: int = GRAPH.max_path_depth,
        cancel: threading.Event | None = None,
    ) -> list[Relationship]:
        """Shortest chain of edges linking two persons, or ``[]``.

        Edges are walked in both directions regardless of type. The first
        path to reach ``end_id`` wins, so among equally short paths the one
        using earlier-inserted edges is returned. ``start_id == end_id`` and
        anything longer than ``max_depth`` edges give ``[]``.
        """
        if start_id == end_id or start_id not in self or end_id not in self:
            return []

        visited = {start_id}
        queue: deque[tuple[UUID, list[Relationship]]] = deque()
        queue.append((start_id, []))

        while queue:
            _check_cancel(cancel, "find_relationship_path")
            current_id, path = queue.popleft()

            if len(path) >= max_depth:
                continue

            for edge, neighbor_id in self.neighbors(current_id):
                if neighbor_id in visited:
                    continue

                new_path = path + [edge]
                if neighbor_id == end_id:
                    return new_path

                visited.add(neighbor_id)
                queue.append((neighbor_id, new_path))

        return []

    # =========================================================================
    # Pedigree trees
    # =========================================================================

    def ancestor_tree(
        self,
        root: Person,
        generations: int,
        lookup: PersonLookup,
        max_generations: int = GRAPH.max_generations,
        cancel: threading.Event | None = None,
    ) -> PedigreeNode:
        return self._tree(root, generations, lookup, self.parents_of, "parents", max_generations, cancel)

    def descendant_tree(
        self,
        root: Person,
        generations: int,
        lookup: PersonLookup,
        max_generations: int = GRAPH.max_generations,
        cancel: threading.Event | None = None,
    ) -> PedigreeNode:
        return self._tree(root, generations, lookup, self.children_of, "children", max_generations, cancel)

    def _tree(
        self,
        root: Person,
        generations: int,
        lookup: PersonLookup,
        step: Callable[[UUID], list[UUID]],
        branch: str,
        max_generations: int,
        cancel: threading.Event | None,
    ) -> PedigreeNode:
        memo: dict[tuple[UUID, int], PedigreeNode] = {}
        operation = f"build_{'ancestor' if branch == 'parents' else 'descendant'}_tree"

        def build(person: Person, remaining: int) -> PedigreeNode:
            _check_cancel(cancel, operation)
            key = (person.id, remaining)
            if key in memo:
                return memo[key]

            node = PedigreeNode.leaf(person)
            if remaining > 0:
                relatives = []
                for relative_id in step(person.id):
                    relative = lookup(relative_id)
                    if relative is None:
                        logger.warning("graph.dangling_edge", person_id=str(person.id), missing=str(relative_id))
                        continue
                    relatives.append(build(relative, remaining - 1))
                setattr(node, branch, relatives)

            memo[key] = node
            return node

        return build(root, max(0, min(generations, max_generations)))

    # =========================================================================
    # Derived kinship
    # =========================================================================

    def ancestor_distances(self, person_id: UUID, max_generations: int = GRAPH.max_generations) -> dict[UUID, int]:
        """BFS up the parent edges; maps each ancestor (and the person, at 0) to its distance."""
        distances: dict[UUID, int] = {person_id: 0}
        queue: deque[tuple[UUID, int]] = deque([(person_id, 0)])
        while queue:
            current_id, generation = queue.popleft()
            if generation >= max_generations:
                continue
            for parent_id in self.parents_of(current_id):
                if parent_id not in distances:
                    distances[parent_id] = generation + 1
                    queue.append((parent_id, generation + 1))
        return distances

    def derive_relationship(
        self,
        person_a_id: UUID,
        person_b_id: UUID,
        max_generations: int = GRAPH.max_generations,
    ) -> DerivedRelationship | None:
        """How ``person_b`` relates to ``person_a``, or ``None`` if unrelated.

        Blood kinship comes from the nearest common ancestor; without one a
        direct spouse edge is reported.
        """
        if person_a_id == person_b_id:
            return DerivedRelationship(person_a_id, person_b_id, None, "self")

        ancestors_a = self.ancestor_distances(person_a_id, max_generations)
        ancestors_b = self.ancestor_distances(person_b_id, max_generations)
        common = [aid for aid in ancestors_a if aid in ancestors_b]

        if not common:
            if person_b_id in self.spouses_of(person_a_id):
                return DerivedRelationship(person_a_id, person_b_id, RelationshipType.SPOUSE, "spouse")
            return None

        best = min(ancestors_a[aid] + ancestors_b[aid] for aid in common)
        nearest = [aid for aid in common if ancestors_a[aid] + ancestors_b[aid] == best]
        gen_a, gen_b = ancestors_a[nearest[0]], ancestors_b[nearest[0]]
        kind, label = kinship_label(gen_a, gen_b)

        return DerivedRelationship(
            person_a_id=person_a_id,
            person_b_id=person_b_id,
            relationship_type=kind,
            label=label,
            common_ancestor_ids=nearest,
            generations_a=gen_a,
            generations_b=gen_b,
        )

    def find_relatives(self, person_id: UUID, relationship_type: RelationshipType) -> list[UUID]:
        """Ids of everyone standing in ``relationship_type`` to ``person_id``."""
        parents = self.parents_of(person_id)
        children = self.children_of(person_id)

        if relationship_type is RelationshipType.PARENT:
            found = parents
        elif relationship_type is RelationshipType.CHILD:
            found = children
        elif relationship_type is RelationshipType.SPOUSE:
            found = self.spouses_of(person_id)
        elif relationship_type is RelationshipType.SIBLING:
            found = self.siblings_of(person_id)
        elif relationship_type is RelationshipType.GRANDPARENT:
            found = [g for p in parents for g in self.parents_of(p)]
        elif relationship_type is RelationshipType.GRANDCHILD:
            found = [g for c in children for g in self.children_of(c)]
        elif relationship_type is RelationshipType.AUNT_UNCLE:
            found = [s for p in parents for s in self.siblings_of(p)]
        elif relationship_type is RelationshipType.NIECE_NEPHEW:
            found = [n for s in self.siblings_of(person_id) for n in self.children_of(s)]
        else:
            # First cousins: children of aunts and uncles
            found = [
                c for p in parents for s in self.siblings_of(p) for c in self.children_of(s)
            ]
        # Half-sibling and cousin sets can otherwise loop back to the person
        return _unique(found, exclude=person_id)


def _great(count: int) -> str:
    return "great-" * max(0, count)


def _ordinal(n: int) -> str:
    names = {1: "first", 2: "second", 3: "third"}
    if n in names:
        return names[n]
    suffix = "th" if 10 <= n % 100 <= 20 else {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def kinship_label(generations_a: int, generations_b: int) -> tuple[RelationshipType | None, str]:
    """Type and label of B relative to A, from distances to the common ancestor."""
    if generations_a == 0 and generations_b == 0:
        return None, "self"
    if generations_a == 0:
        if generations_b == 1:
            return RelationshipType.CHILD, "child"
        return RelationshipType.GRANDCHILD, f"{_great(generations_b - 2)}grandchild"
    if generations_b == 0:
        if generations_a == 1:
            return RelationshipType.PARENT, "parent"
        return RelationshipType.GRANDPARENT, f"{_great(generations_a - 2)}grandparent"
    if generations_a == 1 and generations_b == 1:
        return RelationshipType.SIBLING, "sibling"
    if generations_a == 1:
        return RelationshipType.NIECE_NEPHEW, f"{_great(generations_b - 2)}niece/nephew"
    if generations_b == 1:
        return RelationshipType.AUNT_UNCLE, f"{_great(generations_a - 2)}aunt/uncle"

    degree = min(generations_a, generations_b) - 1
    removal = abs(generations_a - generations_b)
    base = f"{_ordinal(degree)} cousin"
    if removal == 0:
        return RelationshipType.COUSIN, base
    if removal == 1:
        return RelationshipType.COUSIN, f"{base} once removed"
    if removal == 2:
        return RelationshipType.COUSIN, f"{base} twice removed"
    return RelationshipType.COUSIN, f"{base} {removal} times removed"


# =============================================================================
# Module-level entry points
# =============================================================================


def detect_circular_relationships(
    edges: Iterable[Relationship],
    proposed: tuple[UUID, UUID] | None = None,
) -> ValidationResult:
    """Check the lineage edges for loops.

    With ``proposed=(parent_id, child_id)`` only that new edge is checked
    against the existing ones. Without it the whole edge set is scanned.
    Non-lineage edges are ignored.
    """
    graph = RelationshipGraph(e for e in edges if e.relationship_type in LINEAGE_TYPES)

    if proposed is not None:
        parent_id, child_id = proposed
        if parent_id == child_id:
            return ValidationResult.invalid(f"Person {parent_id} cannot be their own parent")
        if graph.would_create_cycle(parent_id, child_id):
            return ValidationResult.invalid(f"Person {child_id} is already an ancestor of {parent_id}")
        return ValidationResult.ok()

    return ValidationResult.from_reasons(
        f"Circular relationship detected involving person {a} and {b}" for a, b in graph.find_cycles()
    )


def find_relationship_path(
    edges: Iterable[Relationship],
    person1_id: UUID,
    person2_id: UUID,
    max_depth: int = GRAPH.max_path_depth,
    cancel: threading.Event | None = None,
) -> list[Relationship]:
    return RelationshipGraph(edges).find_path(person1_id, person2_id, max_depth, cancel)


def build_ancestor_tree(
    edges: Iterable[Relationship],
    root: Person,
    generations: int,
    lookup: PersonLookup,
    max_generations: int = GRAPH.max_generations,
    cancel: threading.Event | None = None,
) -> PedigreeNode:
    return RelationshipGraph(edges).ancestor_tree(root, generations, lookup, max_generations, cancel)


def build_descendant_tree(
    edges: Iterable[Relationship],
    root: Person,
    generations: int,
    lookup: PersonLookup,
    max_generations: int = GRAPH.max_generations,
    cancel: threading.Event | None = None,
) -> PedigreeNode:
    return RelationshipGraph(edges).descendant_tree(root, generations, lookup, max_generations, cancel)
