"""Dependency graph of declared resources."""

import heapq
import logging
from collections.abc import Iterator

from stackplan.core.attributes import iter_deferred
from stackplan.core.errors import CycleDetectedError, DuplicateIdError, UnknownResourceError
from stackplan.core.resources import Resource

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Owns the resources of one synthesis run and orders them.

    Dependencies come from three places: a resource's ``depends_on`` set,
    edges added with ``add_edge``, and the source of every ``Deferred``
    attribute in its config.
    """

    def __init__(self) -> None:
        """Create an empty graph."""
        self._resources: dict[str, Resource] = {}
        self._edges: dict[str, set[str]] = {}

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._resources

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._resources.values())

    def __len__(self) -> int:
        return len(self._resources)

    def add_resource(self, resource: Resource) -> Resource:
        """Declare a resource.

        Raises:
            DuplicateIdError: If the id is already declared.
        """
        if resource.id in self._resources:
            raise DuplicateIdError(resource.id)
        self._resources[resource.id] = resource
        self._edges[resource.id] = set()
        logger.debug("Declared %s '%s'", resource.kind, resource.id)
        return resource

    def add_edge(self, dependency_id: str, dependent_id: str) -> None:
        """Require ``dependency_id`` to be synthesized before ``dependent_id``.

        Raises:
            UnknownResourceError: If either endpoint is undeclared.
        """
        for resource_id in (dependency_id, dependent_id):
            if resource_id not in self._resources:
                raise UnknownResourceError(resource_id)
        self._edges[dependent_id].add(dependency_id)

    def get(self, resource_id: str) -> Resource:
        """Return a declared resource."""
        try:
            return self._resources[resource_id]
        except KeyError:
            raise UnknownResourceError(resource_id) from None

    def dependencies_of(self, resource_id: str) -> set[str]:
        """Return the ids a resource depends on, explicit and attribute-induced."""
        node = self.get(resource_id)
        dependencies = set(node.depends_on) | self._edges[resource_id]
        dependencies.update(ref.source_id for ref in iter_deferred(node.config))
        return dependencies

    def topological_order(self) -> list[str]:
        """Return resource ids with every dependency before its dependents.

        Resources with no relative constraint keep their declaration order.

        Raises:
            UnknownResourceError: If a dependency was never declared.
            CycleDetectedError: If no valid order exists.
        """
        position = {resource_id: index for index, resource_id in enumerate(self._resources)}
        dependencies = {resource_id: self.dependencies_of(resource_id) for resource_id in position}

        dependents: dict[str, set[str]] = {resource_id: set() for resource_id in position}
        for resource_id, required in dependencies.items():
            for dependency in required:
                if dependency not in position:
                    raise UnknownResourceError(dependency, referenced_by=resource_id)
                dependents[dependency].add(resource_id)

        remaining = {resource_id: len(required) for resource_id, required in dependencies.items()}
        ready = [position[resource_id] for resource_id, count in remaining.items() if count == 0]
        heapq.heapify(ready)
        ids = list(position)

        order: list[str] = []
        while ready:
            resource_id = ids[heapq.heappop(ready)]
            order.append(resource_id)
            for dependent in dependents[resource_id]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, position[dependent])

        if len(order) != len(ids):
            blocked = [resource_id for resource_id in ids if remaining[resource_id] > 0]
            raise CycleDetectedError(self._find_cycle(blocked, dependencies))
        return order

    def reverse_order(self) -> list[str]:
        """Return the destroy order."""
        return list(reversed(self.topological_order()))

    @staticmethod
    def _find_cycle(blocked: list[str], dependencies: dict[str, set[str]]) -> list[str]:
        """Return the members of one cycle among the blocked resources."""
        candidates = set(blocked)
        # Every blocked node has a blocked dependency, so walking them must revisit a node.
        path: list[str] = []
        seen: dict[str, int] = {}
        current = blocked[0]
        while current not in seen:
            seen[current] = len(path)
            path.append(current)
            current = min(
                (dependency for dependency in dependencies[current] if dependency in candidates),
                key=blocked.index,
            )
        cycle = path[seen[current] :]
        cycle.reverse()
        return cycle
