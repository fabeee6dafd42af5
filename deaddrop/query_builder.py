#!/usr/bin/env python3
"""
Export Query Builder
Turns a resolved TableConfig into a parameterized, deterministically
ordered SELECT plus the matching COUNT query.

Values are always passed separately from the SQL text:
- 'qmark': ? placeholders (SQLite)
- 'format': %s placeholders (PostgreSQL, MySQL)
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, List, Optional, Tuple

from deaddrop.dialects import normalize_dialect, quote_identifier
from deaddrop.table_config import TableConfig, WhereCondition


@dataclass(frozen=True)
class ExportQuery:
    """Executable query handle for one table export"""
    table: str
    sql: str
    params: Tuple[Any, ...]
    count_sql: str
    count_params: Tuple[Any, ...]
    limit: Optional[int] = None


class QueryBuilder:
    """Build safe, parameterized export queries for one dialect"""

    PARAM_STYLES = {
        'qmark': '?',
        'format': '%s',
    }

    def __init__(self, dialect: str, param_style: str = 'qmark'):
        if param_style not in self.PARAM_STYLES:
            raise ValueError(f"Unknown param_style: {param_style}. Use 'qmark' or 'format'.")
        self.dialect = normalize_dialect(dialect)
        self.param_style = param_style
        self._placeholder = self.PARAM_STYLES[param_style]

    def quote(self, identifier: str) -> str:
        if not identifier:
            raise ValueError("Empty identifier")
        return quote_identifier(identifier, self.dialect)

    def _bind_value(self, value: Any) -> Any:
        # sqlite3 stores dates as ISO text; its implicit datetime adapter is deprecated
        if self.param_style == 'qmark':
            if isinstance(value, datetime):
                return value.isoformat(sep=' ')
            if isinstance(value, (date, time)):
                return value.isoformat()
        return value

    def _condition(self, condition: WhereCondition, params: List[Any]) -> str:
        column = self.quote(condition.column)
        operator = condition.operator

        if condition.value is None and operator in ('=', '!=', '<>'):
            return f"{column} IS NULL" if operator == '=' else f"{column} IS NOT NULL"

        if operator in ('IN', 'NOT IN'):
            placeholders = ', '.join([self._placeholder] * len(condition.value))
            params.extend(self._bind_value(v) for v in condition.value)
            return f"{column} {operator} ({placeholders})"

        params.append(self._bind_value(condition.value))
        return f"{column} {operator} {self._placeholder}"

    def _from_where(self, table: str, config: TableConfig) -> Tuple[str, List[Any]]:
        params: List[Any] = []
        clause = f"FROM {self.quote(table)}"
        if config.where:
            conditions = [self._condition(w, params) for w in config.where]
            clause += " WHERE " + " AND ".join(conditions)
        return clause, params

    def build(self, table: str, config: TableConfig) -> ExportQuery:
        """Build the export SELECT and COUNT for ``table``"""
        if config.selects_all:
            column_str = "*"
        else:
            column_str = ", ".join(self.quote(c) for c in config.columns)

        from_where, params = self._from_where(table, config)
        query = f"SELECT {column_str} {from_where}"

        # Without an explicit order, primary key order keeps chunked reads stable
        if config.order_by is not None:
            query += f" ORDER BY {self.quote(config.order_by.column)} {config.order_by.direction}"
        else:
            query += f" ORDER BY {self.quote(config.primary_key)} ASC"

        if config.limit is not None:
            query += f" LIMIT {int(config.limit)}"

        count_sql = f"SELECT COUNT(*) {from_where}"

        return ExportQuery(
            table=table,
            sql=query,
            params=tuple(params),
            count_sql=count_sql,
            count_params=tuple(params),
            limit=config.limit,
        )
