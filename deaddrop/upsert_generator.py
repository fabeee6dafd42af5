#!/usr/bin/env python3
"""
Upsert SQL Generator

Renders rows as statements that can be replayed safely:

    sqlite          INSERT OR REPLACE INTO `t` (...) VALUES (...);
    mysql/mariadb   INSERT INTO `t` (...) VALUES (...) ON DUPLICATE KEY UPDATE `c` = VALUES(`c`);
    postgres        INSERT INTO "t" (...) VALUES (...) ON CONFLICT ("id") DO UPDATE SET "c" = EXCLUDED."c";
    anything else   INSERT INTO `t` (...) VALUES (...);

String values go through the target connection's quoting function when one
is supplied, so the output matches what the driver itself would send.
"""

import json
import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, List, Mapping, Optional, Sequence

from deaddrop.dialects import normalize_dialect, quote_identifier

Quoter = Callable[[str], str]


def standard_quote(value: str, dialect: str = 'sqlite') -> str:
    """ANSI string literal; MySQL also needs backslashes escaped"""
    if normalize_dialect(dialect) in ('mysql', 'mariadb'):
        value = value.replace('\\', '\\\\')
    return "'" + value.replace("'", "''") + "'"


class UpsertSqlGenerator:
    """Builds dialect-specific upsert statements"""

    def __init__(self, quoter: Optional[Quoter] = None, primary_key: str = 'id', batch_size: int = 100):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.quoter = quoter
        self.primary_key = primary_key
        self.batch_size = batch_size

    def format_value(self, value: Any, dialect: str) -> str:
        if value is None:
            return 'NULL'
        if isinstance(value, bool):
            if normalize_dialect(dialect) == 'postgres':
                return 'TRUE' if value else 'FALSE'
            return '1' if value else '0'
        if isinstance(value, int):
            return str(value)
        if isinstance(value, Decimal):
            if not value.is_finite():
                return self.quote(str(value), dialect)
            return str(value)
        if isinstance(value, float):
            if math.isnan(value) or math.isinf(value):
                return self.quote(str(value), dialect)
            return repr(value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            hex_value = bytes(value).hex()
            if normalize_dialect(dialect) == 'postgres':
                return f"'\\x{hex_value}'"
            return f"X'{hex_value}'"
        if isinstance(value, datetime):
            return self.quote(value.isoformat(sep=' '), dialect)
        if isinstance(value, (date, time)):
            return self.quote(value.isoformat(), dialect)
        if isinstance(value, (dict, list)):
            return self.quote(json.dumps(value), dialect)
        return self.quote(str(value), dialect)

    def quote(self, value: str, dialect: str) -> str:
        if self.quoter is not None:
            return self.quoter(value)
        return standard_quote(value, dialect)

    def _conflict_clause(self, columns: Sequence[str], dialect: str, primary_key: str) -> str:
        updatable = [c for c in columns if c != primary_key]

        if dialect in ('mysql', 'mariadb'):
            if not updatable:
                # Self-assignment keeps the statement an idempotent no-op
                updatable = [primary_key]
            updates = ', '.join(
                f"{quote_identifier(c, dialect)} = VALUES({quote_identifier(c, dialect)})" for c in updatable)
            return f" ON DUPLICATE KEY UPDATE {updates}"

        if dialect == 'postgres':
            if not updatable:
                return " ON CONFLICT DO NOTHING"
            updates = ', '.join(
                f"{quote_identifier(c, dialect)} = EXCLUDED.{quote_identifier(c, dialect)}" for c in updatable)
            return f" ON CONFLICT ({quote_identifier(primary_key, dialect)}) DO UPDATE SET {updates}"

        return ""

    def _statement(self, table: str, rows: Sequence[Mapping[str, Any]], driver: str,
                   primary_key: Optional[str]) -> str:
        dialect = normalize_dialect(driver)
        primary_key = primary_key or self.primary_key
        columns = list(rows[0].keys())

        for row in rows[1:]:
            if list(row.keys()) != columns:
                raise ValueError(f"Rows for {table} do not share one column set")

        column_list = ', '.join(quote_identifier(c, dialect) for c in columns)
        values = ', '.join(
            '(' + ', '.join(self.format_value(row[c], dialect) for c in columns) + ')'
            for row in rows
        )

        verb = "INSERT OR REPLACE INTO" if dialect == 'sqlite' else "INSERT INTO"
        sql = f"{verb} {quote_identifier(table, dialect)} ({column_list}) VALUES {values}"
        sql += self._conflict_clause(columns, dialect, primary_key)
        return sql + ';'

    def for_row(self, table: str, row: Mapping[str, Any], driver: str,
                primary_key: Optional[str] = None) -> str:
        """One upsert statement for one row"""
        if not row:
            raise ValueError(f"Cannot build an upsert for an empty row of {table}")
        return self._statement(table, [row], driver, primary_key)

    def for_batch(self, table: str, rows: Sequence[Mapping[str, Any]], driver: str,
                  primary_key: Optional[str] = None) -> str:
        """Multi-row upserts, ``batch_size`` rows per statement, one statement per line"""
        if not rows:
            return ''
        statements: List[str] = []
        for start in range(0, len(rows), self.batch_size):
            statements.append(self._statement(table, rows[start:start + self.batch_size], driver, primary_key))
        return '\n'.join(statements)
