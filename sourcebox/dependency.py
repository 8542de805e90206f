"""Dependency graph and table generation order."""

from __future__ import annotations

import heapq
import logging
from collections import defaultdict

from sourcebox.exceptions import CyclicDependencyError
from sourcebox.models import SchemaDefinition

logger = logging.getLogger(__name__)


class DependencyGraph:
    """
    Directed graph for table dependencies.

    An edge ``child → parent`` means the child holds a foreign key to the
    parent, so the parent must be generated first.
    """

    def __init__(self):
        self._graph: dict[str, set[str]] = defaultdict(set)
        self._tables: list[str] = []
        self._priority: dict[str, int] = {}

    def add_table(self, table: str, priority: int | None = None) -> None:
        """
        Add a table to the graph.

        Args:
            table: Table name
            priority: Tie-break rank among tables that are ready at the same
                time (lower goes first); defaults to insertion order
        """
        if table not in self._priority:
            self._tables.append(table)
            self._graph.setdefault(table, set())
        self._priority[table] = len(self._tables) - 1 if priority is None else priority

    def add_dependency(self, table: str, depends_on: str) -> None:
        """Add a dependency: table depends on depends_on."""
        for name in (table, depends_on):
            if name not in self._priority:
                self.add_table(name)
        self._graph[table].add(depends_on)

    def get_dependencies(self, table: str) -> list[str]:
        """Get all tables that this table depends on."""
        return sorted(self._graph.get(table, set()))

    def get_dependents(self, table: str) -> list[str]:
        """Get all tables that depend on this table."""
        return [other for other in self._tables if table in self._graph[other]]

    def topological_sort(self) -> list[str]:
        """
        Sort tables in dependency order using Kahn's algorithm.

        Ties are broken by priority, so the order is the same on every run.

        Returns:
            Tables in order such that dependencies come before dependents.

        Raises:
            CyclicDependencyError: Naming every table that lies on a cycle
        """
        in_degree = {table: len(self._graph[table]) for table in self._tables}

        ready = [(self._priority[t], t) for t in self._tables if in_degree[t] == 0]
        heapq.heapify(ready)
        result = []

        while ready:
            _, table = heapq.heappop(ready)
            result.append(table)

            for other in self.get_dependents(table):
                in_degree[other] -= 1
                if in_degree[other] == 0:
                    heapq.heappush(ready, (self._priority[other], other))

        if len(result) != len(self._tables):
            remaining = [t for t in self._tables if t not in set(result)]
            raise CyclicDependencyError(self._on_cycle(remaining))

        return result

    def _on_cycle(self, candidates: list[str]) -> list[str]:
        """Filter candidates down to tables that can reach themselves."""
        members = []
        for start in candidates:
            stack = list(self._graph[start])
            seen: set[str] = set()
            while stack:
                node = stack.pop()
                if node == start:
                    members.append(start)
                    break
                if node in seen:
                    continue
                seen.add(node)
                stack.extend(self._graph[node])
        return members or candidates


def build_graph(schema: SchemaDefinition) -> DependencyGraph:
    """
    Build the dependency graph for a schema.

    Nullable self-references are handled row by row during generation and add
    no edge. A non-nullable self-reference can never be satisfied (the first
    row has nothing to point at), so it is recorded as a self-loop.
    """
    explicit = {name: i for i, name in enumerate(schema.generation_order)}
    offset = len(explicit)

    graph = DependencyGraph()
    for i, table in enumerate(schema.tables):
        graph.add_table(table.name, explicit.get(table.name, offset + i))

    for table in schema.tables:
        for rel in table.relationships:
            if rel.target_table != table.name:
                graph.add_dependency(table.name, rel.target_table)
                continue
            column = table.get_column(rel.source_column)
            if column is None or not column.constraints.nullable:
                graph.add_dependency(table.name, table.name)
    return graph


def resolve_order(schema: SchemaDefinition) -> list[str]:
    """
    Compute a generation order where every table follows its parents.

    Tables ready at the same time follow ``generation_order`` when the
    schema declares one, then declaration order.

    Raises:
        CyclicDependencyError: If relationships form a cycle
    """
    order = build_graph(schema).topological_sort()
    logger.debug(f"Resolved table order: {' → '.join(order)}")
    return order
