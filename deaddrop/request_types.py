#!/usr/bin/env python3
"""
Immutable export and import requests.

A request is built once per invocation (CLI, API or worker) and handed to
the exporter or importer unchanged.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from deaddrop.config import DeadDropConfig
from deaddrop.errors import ConfigurationError
from deaddrop.table_config import ExportOverrides, TableConfigResolver


@dataclass(frozen=True)
class ExportRequest:
    tables: Tuple[str, ...]
    connection: str
    output_path: Path
    overrides: Optional[ExportOverrides] = None

    def __post_init__(self):
        if not self.tables:
            raise ConfigurationError("No tables selected for export")
        object.__setattr__(self, 'tables', tuple(self.tables))
        object.__setattr__(self, 'output_path', Path(self.output_path))
        if self.overrides is not None and not isinstance(self.overrides, ExportOverrides):
            object.__setattr__(self, 'overrides', ExportOverrides.from_dict(self.overrides))

    @classmethod
    def from_config(cls, config: DeadDropConfig, tables: Optional[List[str]] = None,
                    connection: Optional[str] = None, output_path: Optional[Path] = None,
                    overrides: Optional[Dict[str, Any]] = None) -> 'ExportRequest':
        """Fill anything not given from configuration; no tables means every enabled table"""
        if tables is None:
            tables = TableConfigResolver(config.tables).enabled_tables()
        return cls(
            tables=tuple(tables),
            connection=connection or config.default_connection,
            output_path=Path(output_path or config.output_path),
            overrides=ExportOverrides.from_dict(overrides) if overrides else None,
        )

    @staticmethod
    def builder() -> 'ExportRequestBuilder':
        return ExportRequestBuilder()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tables': list(self.tables),
            'connection': self.connection,
            'output_path': str(self.output_path),
            'overrides': self.overrides.to_dict() if self.overrides else None,
        }


class ExportRequestBuilder:
    def __init__(self):
        self._tables: List[str] = []
        self._connection: Optional[str] = None
        self._output_path: Optional[Path] = None
        self._overrides: Dict[str, Any] = {}

    def table(self, name: str) -> 'ExportRequestBuilder':
        self._tables.append(name)
        return self

    def tables(self, names: List[str]) -> 'ExportRequestBuilder':
        self._tables.extend(names)
        return self

    def connection(self, name: str) -> 'ExportRequestBuilder':
        self._connection = name
        return self

    def output_path(self, path: Path) -> 'ExportRequestBuilder':
        self._output_path = Path(path)
        return self

    def where(self, column: str, operator: str, value: Any) -> 'ExportRequestBuilder':
        self._overrides.setdefault('where', []).append([column, operator, value])
        return self

    def limit(self, limit: int) -> 'ExportRequestBuilder':
        self._overrides['limit'] = limit
        return self

    def overrides(self, overrides: Dict[str, Any]) -> 'ExportRequestBuilder':
        self._overrides.update(overrides)
        return self

    def build(self, config: Optional[DeadDropConfig] = None) -> ExportRequest:
        connection = self._connection or (config.default_connection if config else None)
        output_path = self._output_path or (config.output_path if config else None)
        if connection is None or output_path is None:
            raise ConfigurationError("Export request needs a connection and an output path")
        return ExportRequest(
            tables=tuple(self._tables),
            connection=connection,
            output_path=output_path,
            overrides=ExportOverrides.from_dict(self._overrides) if self._overrides else None,
        )


@dataclass(frozen=True)
class ImportRequest:
    source: str
    connection: str
    is_cloud: bool = False
    cloud_disk: Optional[str] = None

    def __post_init__(self):
        if not self.source:
            raise ConfigurationError("Import request needs a source")
        if self.is_cloud and not self.cloud_disk:
            raise ConfigurationError("Cloud import request needs a storage disk")

    @classmethod
    def from_local(cls, source: str, connection: str) -> 'ImportRequest':
        return cls(source=str(source), connection=connection)

    @classmethod
    def from_cloud(cls, source: str, connection: str, disk: str) -> 'ImportRequest':
        return cls(source=source, connection=connection, is_cloud=True, cloud_disk=disk)

    @staticmethod
    def builder() -> 'ImportRequestBuilder':
        return ImportRequestBuilder()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': self.source,
            'connection': self.connection,
            'is_cloud': self.is_cloud,
            'cloud_disk': self.cloud_disk,
        }


class ImportRequestBuilder:
    def __init__(self):
        self._source: Optional[str] = None
        self._connection: Optional[str] = None
        self._cloud_disk: Optional[str] = None

    def source(self, source: str) -> 'ImportRequestBuilder':
        self._source = str(source)
        return self

    def connection(self, name: str) -> 'ImportRequestBuilder':
        self._connection = name
        return self

    def from_cloud(self, disk: str) -> 'ImportRequestBuilder':
        self._cloud_disk = disk
        return self

    def build(self, config: Optional[DeadDropConfig] = None) -> ImportRequest:
        connection = self._connection or (config.default_connection if config else None)
        if connection is None:
            raise ConfigurationError("Import request needs a connection")
        return ImportRequest(
            source=self._source,
            connection=connection,
            is_cloud=self._cloud_disk is not None,
            cloud_disk=self._cloud_disk,
        )
