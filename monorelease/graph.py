"""Dependency graph utilities.

Provides a topological ordering of workspace packages, and the reverse
dependency map used to find which packages must have their ranges
rewritten when a release group is bumped.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import Package


def topo_sort(packages: Mapping[str, Package]) -> list[str]:
    """Topologically sort packages by their internal dependencies.

    Uses Kahn's algorithm so that dependencies come before dependents.
    Packages with no dependencies are sorted alphabetically for
    deterministic output.

    Raises:
        RuntimeError: If a dependency cycle is detected.
    """
    in_degree = {n: 0 for n in packages}
    reverse_deps: dict[str, list[str]] = {n: [] for n in packages}

    for name, info in packages.items():
        for dep in info.deps:
            # Dependencies outside the mapping are ignored
            if dep in packages:
                in_degree[name] += 1
                reverse_deps[dep].append(name)

    queue = sorted(n for n, d in in_degree.items() if d == 0)
    order: list[str] = []

    while queue:
        node = queue.pop(0)
        order.append(node)
        for dependent in sorted(reverse_deps[node]):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(order) != len(packages):
        remaining = set(packages) - set(order)
        raise RuntimeError(f"Dependency cycle detected involving: {remaining}")

    return order


def dependents_of(packages: Mapping[str, Package], names: Iterable[str]) -> list[str]:
    """Return packages that directly depend on any of ``names``, sorted."""
    targets = set(names)
    return sorted(
        name for name, info in packages.items() if targets.intersection(info.deps)
    )
