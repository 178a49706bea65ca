"""Minimal immutable query builders used by the reference connection.

Every builder method returns a new builder; nothing is mutated in place, so
a hook that rewrites a query always produces a distinct object.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

OPERATORS = {"=", "!=", "<>", "<", "<=", ">", ">=", "is", "is not", "in", "not in", "like"}


@dataclass(frozen=True)
class Condition:
    """A single ``column operator value`` predicate."""

    column: str
    operator: str
    value: Any


@dataclass(frozen=True)
class ExecuteResult:
    """Outcome of a write statement."""

    rowcount: int
    last_row_id: Optional[int] = None


@dataclass(frozen=True)
class Query(ABC):
    """Base for all builders: a target table plus WHERE conditions."""

    connection: Any
    table: str
    conditions: Tuple[Condition, ...] = ()

    operation = "query"

    def where(self, column: str, operator: str, value: Any = None) -> "Query":
        """Add an AND-ed condition.

        ``where("deleted_at", "is", None)`` and ``where("id", "in", [1, 2])``
        are both accepted.
        """
        op = operator.lower()
        if op not in OPERATORS:
            raise ValueError(f"Unsupported operator: {operator}")
        if op in ("in", "not in") and not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError(f"Operator '{operator}' needs a list of values")
        return replace(self, conditions=self.conditions + (Condition(column, op, value),))

    def where_all(self, conditions: Sequence[Condition]) -> "Query":
        return replace(self, conditions=self.conditions + tuple(conditions))

    def _quote(self, identifier: str) -> str:
        return self.connection.adapter.escape_identifier(identifier)

    def _where_sql(self) -> Tuple[str, List[Any]]:
        if not self.conditions:
            return "", []

        clauses = []
        params: List[Any] = []
        for cond in self.conditions:
            column = self._quote(cond.column)
            if cond.operator in ("in", "not in"):
                values = list(cond.value)
                if not values:
                    # Empty IN matches nothing, empty NOT IN matches everything
                    clauses.append("1 = 0" if cond.operator == "in" else "1 = 1")
                    continue
                placeholders = ", ".join("?" for _ in values)
                clauses.append(f"{column} {cond.operator.upper()} ({placeholders})")
                params.extend(values)
            elif cond.operator in ("is", "is not") and cond.value is None:
                clauses.append(f"{column} {cond.operator.upper()} NULL")
            else:
                clauses.append(f"{column} {cond.operator.upper()} ?")
                params.append(cond.value)

        return " WHERE " + " AND ".join(clauses), params

    @abstractmethod
    def compile(self) -> Tuple[str, List[Any]]:
        """Render the statement as SQL text plus positional parameters."""

    async def execute(self) -> Any:
        sql, params = self.compile()
        return await self.connection.run(sql, params, fetch=False)


@dataclass(frozen=True)
class SelectQuery(Query):
    columns_: Tuple[str, ...] = ()
    order: Tuple[Tuple[str, str], ...] = ()
    limit_: Optional[int] = None

    operation = "select"

    def columns(self, *columns: str) -> "SelectQuery":
        return replace(self, columns_=self.columns_ + columns)

    def order_by(self, column: str, direction: str = "asc") -> "SelectQuery":
        direction = direction.lower()
        if direction not in ("asc", "desc"):
            raise ValueError(f"Invalid sort direction: {direction}")
        return replace(self, order=self.order + ((column, direction),))

    def limit(self, count: int) -> "SelectQuery":
        if count < 0:
            raise ValueError("Limit cannot be negative")
        return replace(self, limit_=count)

    def compile(self) -> Tuple[str, List[Any]]:
        cols = ", ".join(self._quote(c) for c in self.columns_) if self.columns_ else "*"
        where, params = self._where_sql()
        sql = f"SELECT {cols} FROM {self._quote(self.table)}{where}"
        if self.order:
            sql += " ORDER BY " + ", ".join(
                f"{self._quote(col)} {direction.upper()}" for col, direction in self.order
            )
        if self.limit_ is not None:
            sql += f" LIMIT {int(self.limit_)}"
        return sql, params

    async def execute(self) -> List[Dict[str, Any]]:
        sql, params = self.compile()
        return await self.connection.run(sql, params, fetch=True)

    async def first(self) -> Optional[Dict[str, Any]]:
        rows = await self.limit(1).execute()
        return rows[0] if rows else None


@dataclass(frozen=True)
class InsertQuery(Query):
    rows: Tuple[Mapping[str, Any], ...] = ()

    operation = "insert"

    def values(self, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> "InsertQuery":
        new_rows = (values,) if isinstance(values, Mapping) else tuple(values)
        return replace(self, rows=self.rows + tuple(dict(r) for r in new_rows))

    def where(self, column: str, operator: str, value: Any = None) -> "Query":
        raise TypeError("INSERT queries do not take WHERE conditions")

    def compile(self) -> Tuple[str, List[Any]]:
        if not self.rows:
            raise ValueError(f"No values given for insert into {self.table}")

        columns = list(self.rows[0].keys())
        for row in self.rows[1:]:
            if list(row.keys()) != columns:
                raise ValueError("All inserted rows must have the same columns")

        row_sql = "(" + ", ".join("?" for _ in columns) + ")"
        sql = (
            f"INSERT INTO {self._quote(self.table)} "
            f"({', '.join(self._quote(c) for c in columns)}) "
            f"VALUES {', '.join(row_sql for _ in self.rows)}"
        )
        params = [row[c] for row in self.rows for c in columns]
        return sql, params


@dataclass(frozen=True)
class UpdateQuery(Query):
    values_: Tuple[Tuple[str, Any], ...] = ()

    operation = "update"

    def set(self, values: Mapping[str, Any]) -> "UpdateQuery":
        merged = dict(self.values_)
        merged.update(values)
        return replace(self, values_=tuple(merged.items()))

    def compile(self) -> Tuple[str, List[Any]]:
        if not self.values_:
            raise ValueError(f"No values given for update of {self.table}")

        assignments = ", ".join(f"{self._quote(col)} = ?" for col, _ in self.values_)
        where, where_params = self._where_sql()
        sql = f"UPDATE {self._quote(self.table)} SET {assignments}{where}"
        return sql, [value for _, value in self.values_] + where_params


@dataclass(frozen=True)
class DeleteQuery(Query):
    operation = "delete"

    def compile(self) -> Tuple[str, List[Any]]:
        where, params = self._where_sql()
        return f"DELETE FROM {self._quote(self.table)}{where}", params
