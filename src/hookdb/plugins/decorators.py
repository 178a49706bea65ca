"""
Decorators for declaring plugin hooks.
"""

from dataclasses import dataclass
from typing import Callable, Tuple

from hookdb.types import INTERCEPTED_METHODS

HOOK_MARKER = "_hookdb_intercepts"


@dataclass(frozen=True)
class HookDeclaration:
    """What a decorated method intercepts and whether it may rewrite."""

    methods: Tuple[str, ...]
    rewrites: bool = False


def intercepts(*methods: str, rewrites: bool = False):
    """Decorator to mark a plugin method as an interception hook.

    The decorated coroutine is called as ``hook(query, context, proceed)``.
    Observe-only hooks (the default) must forward the query they received;
    pass ``rewrites=True`` to forward a modified one.

    Usage:
        class AuditPlugin(Plugin):
            name = "audit"

            @intercepts("insert", "update", "delete")
            async def audit(self, query, context, proceed):
                result = await proceed(query)
                self.log(context.operation, context.table)
                return result
    """
    if not methods:
        raise ValueError("intercepts() needs at least one method name")

    unknown = [m for m in methods if m not in INTERCEPTED_METHODS]
    if unknown:
        raise ValueError(
            f"Cannot intercept {', '.join(unknown)}; "
            f"interceptable methods are {', '.join(INTERCEPTED_METHODS)}"
        )

    def decorator(func: Callable) -> Callable:
        setattr(func, HOOK_MARKER, HookDeclaration(tuple(methods), rewrites))
        return func

    return decorator
