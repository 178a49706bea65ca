"""Plugin validation and execution order resolution."""

import heapq
from typing import Any, Dict, List, Sequence, Set, Tuple

from hookdb.errors import PluginValidationError, ValidationErrorType


def _dependencies(plugin: Any) -> Tuple[str, ...]:
    return tuple(getattr(plugin, "depends_on", None) or ())


def _conflicts(plugin: Any) -> Tuple[str, ...]:
    return tuple(getattr(plugin, "conflicts_with", None) or ())


def _priority(plugin: Any) -> int:
    return getattr(plugin, "priority", None) or 0


def validate_plugins(plugins: Sequence[Any]) -> None:
    """Validate a plugin set for duplicates, missing deps, conflicts and cycles.

    Args:
        plugins: Plugins in registration order

    Raises:
        PluginValidationError: On the first problem found
    """
    names: Set[str] = set()
    for plugin in plugins:
        if plugin.name in names:
            raise PluginValidationError(
                f'Duplicate plugin: "{plugin.name}"',
                ValidationErrorType.DUPLICATE_NAME,
                plugin.name,
            )
        names.add(plugin.name)

    for plugin in plugins:
        for dep in _dependencies(plugin):
            if dep not in names:
                raise PluginValidationError(
                    f'Plugin "{plugin.name}" requires "{dep}" which is not registered',
                    ValidationErrorType.MISSING_DEPENDENCY,
                    plugin.name,
                    {"missing_dependency": dep},
                )

        for conflict in _conflicts(plugin):
            if conflict in names:
                raise PluginValidationError(
                    f'Plugin "{plugin.name}" conflicts with "{conflict}"',
                    ValidationErrorType.CONFLICT,
                    plugin.name,
                    {"conflicting_plugin": conflict},
                )

    _detect_cycles(plugins)


def _detect_cycles(plugins: Sequence[Any]) -> None:
    """Find dependency cycles with an iterative DFS (no recursion limit issues)."""
    by_name = {p.name: p for p in plugins}
    visited: Set[str] = set()

    for plugin in plugins:
        if plugin.name in visited:
            continue

        # Each frame: (name, dependencies, next dependency index)
        stack: List[List[Any]] = [[plugin.name, _dependencies(plugin), 0]]
        path: List[str] = [plugin.name]
        on_path: Set[str] = {plugin.name}

        while stack:
            frame = stack[-1]
            name, deps, index = frame

            if index >= len(deps):
                stack.pop()
                path.pop()
                on_path.discard(name)
                visited.add(name)
                continue

            frame[2] += 1
            dep = deps[index]

            if dep in on_path:
                cycle = path[path.index(dep):] + [dep]
                raise PluginValidationError(
                    f"Circular dependency: {' -> '.join(cycle)}",
                    ValidationErrorType.CIRCULAR_DEPENDENCY,
                    name,
                    {"cycle": cycle},
                )

            if dep not in visited and dep in by_name:
                stack.append([dep, _dependencies(by_name[dep]), 0])
                path.append(dep)
                on_path.add(dep)


def resolve_plugin_order(plugins: Sequence[Any]) -> List[Any]:
    """Resolve the order plugins run in.

    Dependencies always come before their dependents. Among plugins that are
    ready at the same time, lower ``priority`` runs first and ties keep
    registration order. The result is deterministic for a given input.

    Args:
        plugins: Plugins in registration order

    Returns:
        New list of the same plugins in execution order

    Raises:
        PluginValidationError: If the plugin set is invalid
    """
    validate_plugins(plugins)

    if not plugins:
        return []

    index_of: Dict[str, int] = {p.name: i for i, p in enumerate(plugins)}
    in_degree: Dict[str, int] = {p.name: 0 for p in plugins}
    dependents: Dict[str, List[str]] = {p.name: [] for p in plugins}

    for plugin in plugins:
        # set() so a repeated dependency doesn't count twice
        for dep in set(_dependencies(plugin)):
            in_degree[plugin.name] += 1
            dependents[dep].append(plugin.name)

    ready: List[Tuple[int, int]] = [
        (_priority(p), index_of[p.name]) for p in plugins if in_degree[p.name] == 0
    ]
    heapq.heapify(ready)

    ordered: List[Any] = []
    while ready:
        _, index = heapq.heappop(ready)
        current = plugins[index]
        ordered.append(current)

        for dependent in dependents[current.name]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                dep_plugin = plugins[index_of[dependent]]
                heapq.heappush(ready, (_priority(dep_plugin), index_of[dependent]))

    return ordered
