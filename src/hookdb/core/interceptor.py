"""Method interception: threads one call through the ordered plugin hooks."""

from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Sequence, Tuple

from hookdb.errors import InterceptionError
from hookdb.plugins.base import HookSpec, PluginCapabilities
from hookdb.types import INTERCEPTED_METHODS, QueryContext

Terminal = Callable[[Any], Awaitable[Any]]

_UNSET = object()


class InterceptorChain:
    """Ordered hooks registered for one intercepted method.

    The chain is walked with an index cursor. Each hook receives the
    query-in-progress, the call context and a ``proceed`` callable that runs
    the rest of the chain (ending in the terminal, i.e. the real method) and
    returns its result.
    """

    def __init__(self, method: str, capabilities: Sequence[PluginCapabilities]):
        """Initialize the chain.

        Args:
            method: Intercepted method name
            capabilities: Plugin capabilities in resolved order
        """
        if method not in INTERCEPTED_METHODS:
            raise ValueError(f"{method!r} is not an interceptable method")

        self.method = method
        self._links: Tuple[Tuple[str, HookSpec], ...] = tuple(
            (caps.name, caps.hooks[method]) for caps in capabilities if method in caps.hooks
        )

    @property
    def plugin_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self._links)

    def __len__(self) -> int:
        return len(self._links)

    async def run(self, query: Any, context: QueryContext, terminal: Terminal) -> Any:
        """Run the call through every hook, then the terminal.

        Exceptions raised by hooks or the terminal propagate unchanged.
        """
        return await self._dispatch(0, query, context, terminal)

    async def _dispatch(
        self, index: int, query: Any, context: QueryContext, terminal: Terminal
    ) -> Any:
        if index >= len(self._links):
            return await terminal(query)

        plugin_name, spec = self._links[index]
        called = False

        async def proceed(next_query: Any = _UNSET) -> Any:
            nonlocal called
            if called:
                raise InterceptionError(
                    f'Plugin "{plugin_name}" called proceed() more than once for "{self.method}"',
                    plugin_name,
                    self.method,
                )
            called = True

            if next_query is _UNSET:
                next_query = query
            elif next_query is not query and not spec.rewrites:
                raise InterceptionError(
                    f'Plugin "{plugin_name}" is observe-only for "{self.method}" '
                    f"but forwarded a different query; declare rewrites=True",
                    plugin_name,
                    self.method,
                )

            return await self._dispatch(index + 1, next_query, context, terminal)

        return await spec.hook(query, context, proceed)


def build_chains(capabilities: Sequence[PluginCapabilities]) -> Mapping[str, InterceptorChain]:
    """Build one chain per intercepted method."""
    chains: Dict[str, InterceptorChain] = {
        method: InterceptorChain(method, capabilities) for method in INTERCEPTED_METHODS
    }
    return MappingProxyType(chains)
