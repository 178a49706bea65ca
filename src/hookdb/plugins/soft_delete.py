"""
Soft delete plugin: hides deleted rows and turns deletes into updates.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from hookdb.plugins.base import Plugin
from hookdb.plugins.decorators import intercepts
from hookdb.types import QueryContext

logger = logging.getLogger(__name__)

INCLUDE_DELETED = "include_deleted"


class SoftDeletePlugin(Plugin):
    """Soft delete for tables with a nullable ``deleted_at`` column.

    - ``select`` gets ``deleted_at IS NULL`` added, unless the plugin was
      built with ``include_deleted=True`` or an earlier hook set
      ``context.metadata["include_deleted"]``.
    - ``delete`` never reaches the database: it runs an ``update`` setting
      ``deleted_at`` on the rows still live, and returns that result. The
      update is issued through the same executor or transaction handle, so
      ``update`` hooks of other plugins see it.

    Args:
        deleted_at_column: Column holding the deletion timestamp
        tables: Only these tables are affected (default: all)
        include_deleted: Don't filter selects
    """

    name = "soft_delete"
    version = "1.0.0"
    description = "Filters soft-deleted rows and converts deletes to updates"

    def __init__(
        self,
        deleted_at_column: str = "deleted_at",
        tables: Optional[Iterable[str]] = None,
        include_deleted: bool = False,
    ):
        self.deleted_at_column = deleted_at_column
        self.tables = frozenset(tables) if tables is not None else None
        self.include_deleted = include_deleted

    def applies_to(self, table: Optional[str]) -> bool:
        return table is not None and (self.tables is None or table in self.tables)

    @intercepts("select", rewrites=True)
    async def filter_deleted(self, query: Any, context: QueryContext, proceed) -> Any:
        if (
            not self.applies_to(context.table)
            or self.include_deleted
            or context.metadata.get(INCLUDE_DELETED)
        ):
            return await proceed(query)

        logger.debug(f"Filtering soft-deleted rows from {context.table}")
        return await proceed(query.where(self.deleted_at_column, "is", None))

    @intercepts("delete", rewrites=True)
    async def soft_delete(self, query: Any, context: QueryContext, proceed) -> Any:
        if not self.applies_to(context.table):
            return await proceed(query)

        # No handle when the chain is run outside an executor
        handle = context.executor if context.executor is not None else query.connection
        deleted_at = query.connection.adapter.format_datetime(datetime.now(timezone.utc))
        logger.debug(f"Soft deleting from {context.table}")
        return await (
            handle.update(query.table)
            .set({self.deleted_at_column: deleted_at})
            .where(self.deleted_at_column, "is", None)
            .where_all(query.conditions)
            .execute()
        )
