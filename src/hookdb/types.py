"""Shared types for the interception layer."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

# Builder entry points that plugins may hook. Everything else on a
# connection passes through untouched.
INTERCEPTED_METHODS: Tuple[str, ...] = (
    "select",
    "insert",
    "update",
    "delete",
    "transaction",
)


@dataclass(frozen=True)
class QueryContext:
    """Context handed to every hook in a single intercepted call.

    Attributes:
        operation: Intercepted method name (one of INTERCEPTED_METHODS)
        table: Table the query targets, None for transactions
        in_transaction: True when issued through a transaction handle
        metadata: Per-call scratch space shared by all hooks of the call
        executor: Handle the call was issued through (the executor or its
            transaction handle). Queries built on it run through the hooks.
    """

    operation: str
    table: Optional[str] = None
    in_transaction: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    executor: Any = field(default=None, repr=False, compare=False)
