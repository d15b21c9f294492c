from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..errors import PluginDependencyError, PluginInitializationError
from ..issues import IssueCollector, IssueSeverity
from .base import PluginContext, Plugins

if TYPE_CHECKING:
    from ..config import ProcessorConfig

logger = logging.getLogger(__name__)


def topological_sort(dependencies: Mapping[str, Iterable[str]]) -> list[str]:
    """Kahn's algorithm over capability names.

    Dependencies on names that are not in the mapping are ignored (they are
    reported separately). Ties keep the mapping's insertion order.
    """
    names = list(dependencies)
    present = set(names)
    in_degree = {n: 0 for n in names}
    dependents: dict[str, list[str]] = {n: [] for n in names}
    for name in names:
        for dep in dependencies[name]:
            if dep in present and dep != name:
                in_degree[name] += 1
                dependents[dep].append(name)

    queue = deque(n for n in names if in_degree[n] == 0)
    order: list[str] = []
    while queue:
        current = queue.popleft()
        order.append(current)
        for dependent in dependents[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(order) != len(names):
        cycle = sorted(n for n in names if n not in order)
        raise PluginDependencyError(f"Circular plugin dependency between: {', '.join(cycle)}")
    return order


class PluginManager:
    """Initializes the plugins of one Processor in dependency order.

    A plugin that cannot start (missing dependency or failing initialize)
    is disabled with a warning, unless its capability is required, in which
    case `PluginInitializationError` is raised.
    """

    def __init__(
        self,
        plugins: Plugins,
        issues: IssueCollector,
        output_dir: Path,
        config: "ProcessorConfig | None" = None,
        required: Iterable[str] = (),
    ) -> None:
        self.plugins = plugins
        self.issues = issues
        self.required = frozenset(required)
        self._initialized: list[str] = []
        self._disabled: dict[str, str] = {}
        self.context = PluginContext(
            output_dir=output_dir,
            logger=logging.getLogger("vaultpress.plugins"),
            issues=issues,
            config=config,
            lookup=self.get,
        )

    @property
    def initialized(self) -> list[str]:
        return list(self._initialized)

    @property
    def disabled(self) -> dict[str, str]:
        """capability -> reason."""
        return dict(self._disabled)

    def initialize(self) -> None:
        slots = dict(self.plugins.items())
        absent = sorted(self.required - set(slots))
        if absent:
            raise PluginInitializationError(absent[0], "no plugin configured")

        order = topological_sort({c: tuple(getattr(p, "requires", ())) for c, p in slots.items()})
        for capability in order:
            plugin = slots[capability]
            name = getattr(plugin, "name", capability)
            missing = [d for d in getattr(plugin, "requires", ()) if self.get(d) is None]
            if missing:
                self._fail(capability, name, "initialize", f"missing dependencies: {', '.join(missing)}")
                continue
            try:
                plugin.initialize(self.context)
            except Exception as e:
                self._fail(capability, name, "initialize", str(e))
                continue
            self._initialized.append(capability)
            logger.info(f"Plugin ready: {capability} ({name})")

    def _fail(self, capability: str, name: str, operation: str, reason: str) -> None:
        if capability in self.required:
            self.issues.add_plugin_error(name, operation, reason)
            raise PluginInitializationError(capability, reason)
        self._disabled[capability] = reason
        self.issues.add_plugin_error(name, operation, f"{reason}; {capability} disabled", IssueSeverity.WARNING)

    def get(self, capability: str) -> Any:
        """The plugin for `capability` if it initialized and reports ready."""
        if capability not in self._initialized:
            return None
        plugin = getattr(self.plugins, capability, None)
        if plugin is None:
            return None
        try:
            return plugin if plugin.is_ready() else None
        except Exception as e:
            logger.warning(f"Plugin {capability} is_ready() raised: {e}")
            return None

    def dispose(self) -> None:
        for capability in reversed(self._initialized):
            plugin = getattr(self.plugins, capability)
            dispose = getattr(plugin, "dispose", None)
            if dispose is None:
                continue
            try:
                dispose()
            except Exception as e:
                self.issues.add_plugin_error(getattr(plugin, "name", capability), "dispose", str(e))
        self._initialized.clear()
