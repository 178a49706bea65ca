"""
Base class and capability model for hookdb plugins.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from hookdb.errors import PluginValidationError, ValidationErrorType
from hookdb.plugins.decorators import HOOK_MARKER, HookDeclaration


class Plugin:
    """Base class for hookdb plugins.

    Subclasses set the metadata attributes and override whichever lifecycle
    methods they need. Interception hooks are declared with ``@intercepts``.
    Any object exposing ``name`` and ``version`` can be registered; this
    class only removes the boilerplate.
    """

    # Plugin metadata - override in subclass
    name: str = "unnamed_plugin"
    version: str = "1.0.0"
    description: str = ""
    priority: int = 0
    depends_on: Tuple[str, ...] = ()
    conflicts_with: Tuple[str, ...] = ()

    def on_init(self, executor) -> Any:
        """Called once when the executor is built. May be a coroutine."""
        pass

    def on_destroy(self) -> Any:
        """Called once when the executor is destroyed. May be a coroutine."""
        pass

    @property
    def metadata(self) -> Dict[str, Any]:
        """Get plugin metadata."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "priority": self.priority,
            "depends_on": list(self.depends_on),
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}@{self.version}>"


@dataclass(frozen=True)
class HookSpec:
    """A single registered hook for one intercepted method."""

    hook: Callable
    rewrites: bool


@dataclass(frozen=True)
class PluginCapabilities:
    """Capabilities of one plugin, computed once at registration."""

    name: str
    on_init: Optional[Callable] = None
    on_destroy: Optional[Callable] = None
    hooks: Dict[str, HookSpec] = field(default_factory=dict)

    @property
    def has_async_init(self) -> bool:
        return self.on_init is not None and inspect.iscoroutinefunction(self.on_init)


def _lifecycle_hook(plugin: Any, attr: str) -> Optional[Callable]:
    """Return a plugin's lifecycle hook, or None when absent or inherited."""
    hook = getattr(plugin, attr, None)
    if hook is None:
        return None
    if not callable(hook):
        raise PluginValidationError(
            f'Plugin "{plugin.name}" has a non-callable {attr}',
            ValidationErrorType.INVALID_HOOK,
            plugin.name,
            {"attribute": attr},
        )
    # The base class no-ops don't count as capabilities
    if getattr(hook, "__func__", None) is getattr(Plugin, attr):
        return None
    return hook


def collect_capabilities(plugin: Any) -> PluginCapabilities:
    """Inspect a plugin once and record which hooks it provides.

    Raises:
        PluginValidationError: If a hook is not a coroutine function or two
            hooks claim the same method
    """
    hooks: Dict[str, HookSpec] = {}

    for attr_name in dir(type(plugin)):
        declaration: Optional[HookDeclaration] = getattr(
            getattr(type(plugin), attr_name, None), HOOK_MARKER, None
        )
        if declaration is None:
            continue

        hook = getattr(plugin, attr_name)
        if not inspect.iscoroutinefunction(hook):
            raise PluginValidationError(
                f'Plugin "{plugin.name}" hook "{attr_name}" must be declared with async def',
                ValidationErrorType.INVALID_HOOK,
                plugin.name,
                {"hook": attr_name},
            )

        for method in declaration.methods:
            if method in hooks:
                raise PluginValidationError(
                    f'Plugin "{plugin.name}" declares more than one hook for "{method}"',
                    ValidationErrorType.INVALID_HOOK,
                    plugin.name,
                    {"method": method},
                )
            hooks[method] = HookSpec(hook=hook, rewrites=declaration.rewrites)

    return PluginCapabilities(
        name=plugin.name,
        on_init=_lifecycle_hook(plugin, "on_init"),
        on_destroy=_lifecycle_hook(plugin, "on_destroy"),
        hooks=hooks,
    )
