#!/usr/bin/env python3
"""
Dead Drop - configurable database table exports to portable SQL upsert dumps,
with field censoring, default injection and transactional re-import.

Public API Façade:
    import deaddrop
    result = deaddrop.export('users', overrides={'limit': 100})
"""

from typing import Any, Dict, List, Optional

from deaddrop.config import DeadDropConfig, get_config
from deaddrop.errors import (
    ConfigurationError,
    DeadDropError,
    ExportIOError,
    SourceNotFoundError,
    StatementExecutionError,
    StorageError,
    TransactionError,
)
from deaddrop.exporter import CombinedExportResult, Exporter, TableExportResult
from deaddrop.import_executor import ImportResult
from deaddrop.importer import Importer
from deaddrop.request_types import ExportRequest, ImportRequest
from deaddrop.service import DeadDrop

__version__ = "1.0.0"

_default_service: Optional[DeadDrop] = None


def get_dead_drop() -> DeadDrop:
    """Get or create the default service from the global configuration"""
    global _default_service
    if _default_service is None:
        _default_service = DeadDrop.from_config(get_config())
    return _default_service


def export(table: str, overrides: Optional[Dict[str, Any]] = None, connection: Optional[str] = None,
           output_path: Optional[str] = None) -> TableExportResult:
    return get_dead_drop().exporter.export(table, overrides, connection, output_path)


def export_all(output_path: Optional[str] = None, connection: Optional[str] = None,
               overrides: Optional[Dict[str, Any]] = None) -> List[TableExportResult]:
    return get_dead_drop().exporter.export_all(output_path, connection, overrides)


def export_table(table: str, connection: str, output_path: str,
                 overrides: Optional[Dict[str, Any]] = None) -> TableExportResult:
    return get_dead_drop().exporter.export_table(table, connection, output_path, overrides)


__all__ = [
    'CombinedExportResult',
    'ConfigurationError',
    'DeadDrop',
    'DeadDropConfig',
    'DeadDropError',
    'ExportIOError',
    'ExportRequest',
    'Exporter',
    'ImportRequest',
    'ImportResult',
    'Importer',
    'SourceNotFoundError',
    'StatementExecutionError',
    'StorageError',
    'TableExportResult',
    'TransactionError',
    'export',
    'export_all',
    'export_table',
    'get_dead_drop',
]
