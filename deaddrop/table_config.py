#!/usr/bin/env python3
"""
Per-table export configuration.

Raw table entries come straight from the config file:

    "users": {
        "columns": ["id", "name", "email"],
        "where": [["created_at", ">=", "2024-01-01"]],
        "order_by": "created_at DESC",
        "limit": 1000,
        "censor": ["email"],
        "defaults": {"password": "secret"}
    },
    "sessions": false

A table set to ``false`` is disabled; a table missing from the mapping is
not configured. Both are rejected by ``TableConfigResolver.resolve``.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from deaddrop.errors import ConfigurationError

logger = logging.getLogger(__name__)

WILDCARD = '*'

OPERATORS = {'=', '!=', '<>', '<', '<=', '>', '>=', 'LIKE', 'NOT LIKE', 'IN', 'NOT IN'}

DIRECTIONS = {'ASC', 'DESC'}


@dataclass(frozen=True)
class WhereCondition:
    """A single ``column operator value`` predicate"""
    column: str
    operator: str
    value: Any

    @classmethod
    def from_value(cls, raw: Any) -> 'WhereCondition':
        if isinstance(raw, WhereCondition):
            return raw
        if isinstance(raw, dict):
            column, operator, value = raw.get('column'), raw.get('operator', '='), raw.get('value')
        elif isinstance(raw, (list, tuple)) and len(raw) == 2:
            column, value = raw
            operator = '='
        elif isinstance(raw, (list, tuple)) and len(raw) == 3:
            column, operator, value = raw
        else:
            raise ConfigurationError(f"Invalid where condition: {raw!r}")

        if not column:
            raise ConfigurationError(f"Where condition has no column: {raw!r}")

        operator = ' '.join(str(operator).upper().split())
        if operator not in OPERATORS:
            raise ConfigurationError(f"Unsupported where operator '{operator}' on {column}")

        if operator in ('IN', 'NOT IN'):
            if not isinstance(value, (list, tuple)) or not value:
                raise ConfigurationError(f"{operator} on {column} needs a non-empty list")
            value = tuple(value)

        return cls(str(column), operator, value)

    def describe(self) -> str:
        return f"{self.column} {self.operator} {self.value}"


@dataclass(frozen=True)
class OrderBy:
    column: str
    direction: str = 'ASC'

    @classmethod
    def parse(cls, raw: Any) -> 'OrderBy':
        """Accept "col", "col DESC", ("col", "DESC") or {"column": ..., "direction": ...}"""
        if isinstance(raw, OrderBy):
            return raw
        if isinstance(raw, dict):
            parts = [raw.get('column'), raw.get('direction', 'ASC')]
        elif isinstance(raw, (list, tuple)):
            parts = list(raw)
        else:
            parts = str(raw).split()

        if not parts or not parts[0] or len(parts) > 2:
            raise ConfigurationError(f"Invalid order_by: {raw!r}")

        direction = str(parts[1]).upper() if len(parts) == 2 else 'ASC'
        if direction not in DIRECTIONS:
            raise ConfigurationError(f"Invalid order direction '{parts[1]}' in order_by")
        return cls(str(parts[0]), direction)


def _parse_columns(raw: Any) -> Union[str, Tuple[str, ...]]:
    if raw is None or raw == WILDCARD or raw == [WILDCARD]:
        return WILDCARD
    if isinstance(raw, str):
        return (raw,)
    columns = tuple(str(c) for c in raw)
    if not columns:
        raise ConfigurationError("Column list may not be empty; use '*' for all columns")
    return columns


def _parse_censor(raw: Any) -> Dict[str, Optional[str]]:
    """Bare names map to None, meaning the generator is picked from the column name"""
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): (str(v) if v else None) for k, v in raw.items()}
    if isinstance(raw, str):
        return {raw: None}
    return {str(name): None for name in raw}


def _parse_limit(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    try:
        limit = int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid limit: {raw!r}") from e
    if limit < 0:
        raise ConfigurationError(f"Invalid limit: {raw!r}")
    return limit


@dataclass(frozen=True)
class TableConfig:
    """Resolved export configuration for one table"""
    columns: Union[str, Tuple[str, ...]] = WILDCARD
    where: Tuple[WhereCondition, ...] = ()
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = None
    censor: Dict[str, Optional[str]] = field(default_factory=dict)
    defaults: Dict[str, Any] = field(default_factory=dict)
    primary_key: str = 'id'

    @property
    def selects_all(self) -> bool:
        return self.columns == WILDCARD

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> 'TableConfig':
        raw = raw or {}
        return cls(
            columns=_parse_columns(raw.get('columns', WILDCARD)),
            where=tuple(WhereCondition.from_value(w) for w in raw.get('where') or ()),
            order_by=OrderBy.parse(raw['order_by']) if raw.get('order_by') else None,
            limit=_parse_limit(raw.get('limit')),
            censor=_parse_censor(raw.get('censor')),
            defaults=dict(raw.get('defaults') or {}),
            primary_key=str(raw.get('primary_key') or 'id'),
        )

    def problems(self) -> List[str]:
        """Configuration mistakes that do not prevent an export"""
        issues = []
        if not self.selects_all:
            for name in self.defaults:
                if name in self.columns:
                    issues.append(
                        f"default for '{name}' is never used because the column is exported")
        return issues

    def describe_filters(self) -> str:
        return ', '.join(w.describe() for w in self.where)


@dataclass(frozen=True)
class ExportOverrides:
    """Caller-supplied partial config; ``where`` appends, everything else replaces"""
    columns: Optional[Union[str, Tuple[str, ...]]] = None
    where: Optional[Tuple[WhereCondition, ...]] = None
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = None
    censor: Optional[Dict[str, Optional[str]]] = None
    defaults: Optional[Dict[str, Any]] = None
    primary_key: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> 'ExportOverrides':
        if isinstance(raw, ExportOverrides):
            return raw
        raw = raw or {}
        return cls(
            columns=_parse_columns(raw['columns']) if 'columns' in raw else None,
            where=tuple(WhereCondition.from_value(w) for w in raw['where']) if raw.get('where') is not None else None,
            order_by=OrderBy.parse(raw['order_by']) if raw.get('order_by') else None,
            limit=_parse_limit(raw.get('limit')),
            censor=_parse_censor(raw['censor']) if raw.get('censor') is not None else None,
            defaults=dict(raw['defaults']) if raw.get('defaults') is not None else None,
            primary_key=raw.get('primary_key'),
        )

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in dataclasses.fields(self))

    def to_dict(self) -> Dict[str, Any]:
        """Plain form for task descriptors and status metadata"""
        data = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name == 'where':
                value = [[w.column, w.operator, list(w.value) if isinstance(w.value, tuple) else w.value]
                         for w in value]
            elif f.name == 'order_by':
                value = f"{value.column} {value.direction}"
            elif f.name == 'columns' and value != WILDCARD:
                value = list(value)
            data[f.name] = value
        return data


def merge_overrides(base: TableConfig, overrides: Optional[ExportOverrides]) -> TableConfig:
    """Apply overrides to a base config without touching either"""
    if overrides is None:
        return base

    changes = {}
    for f in dataclasses.fields(ExportOverrides):
        value = getattr(overrides, f.name)
        if value is None:
            continue
        if f.name == 'where':
            changes['where'] = base.where + tuple(value)
        else:
            changes[f.name] = value
    return dataclasses.replace(base, **changes)


class TableConfigResolver:
    """Looks up table configuration and merges overrides"""

    def __init__(self, tables: Mapping[str, Any]):
        self.tables = tables

    def is_configured(self, table: str) -> bool:
        return table in self.tables

    def is_enabled(self, table: str) -> bool:
        return table in self.tables and self.tables[table] is not False

    def enabled_tables(self) -> List[str]:
        """Configured tables in config order, disabled ones skipped"""
        return [name for name, raw in self.tables.items() if raw is not False]

    def base_config(self, table: str) -> TableConfig:
        if table not in self.tables:
            raise ConfigurationError(
                f"Table '{table}' is not configured for export", {'table': table})
        raw = self.tables[table]
        if raw is False:
            raise ConfigurationError(
                f"Table '{table}' is disabled for export", {'table': table})
        if raw is True:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"Configuration for table '{table}' must be an object")
        return TableConfig.from_dict(raw)

    def resolve(self, table: str,
                overrides: Optional[Union[ExportOverrides, Mapping[str, Any]]] = None) -> TableConfig:
        config = self.base_config(table)
        if overrides is not None and not isinstance(overrides, ExportOverrides):
            overrides = ExportOverrides.from_dict(overrides)
        config = merge_overrides(config, overrides)

        for problem in config.problems():
            logger.warning(f"Configuration problem in table '{table}': {problem}")
        return config
