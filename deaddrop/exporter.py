#!/usr/bin/env python3
"""
Dead Drop Exporter

Orchestrates table exports:

- ``export_table``: one table to ``<output>/<table>.sql``
- ``export_tables_to_single_file``: several tables, sequentially, into one
  ``database-export-YYYY-MM-DD-HHMMSS.sql``
- ``*_async`` variants: create a pending status record, dispatch a task and
  return the status id

A failed export never leaves a partial file behind. Finished files go to
the cloud uploader, which is a no-op for the local disk.

Usage:
    exporter = get_dead_drop().exporter
    result = exporter.export('users', overrides={'limit': 100})
    print(result.file, result.records)
"""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TextIO, Union

from deaddrop.config import DeadDropConfig
from deaddrop.database_manager import DatabaseAdapter, DatabaseManager
from deaddrop.cloud_storage import CloudUploader, UploadResult
from deaddrop.errors import ConfigurationError, ExportIOError
from deaddrop.export_status import OperationType, StatusStore
from deaddrop.query_builder import ExportQuery, QueryBuilder
from deaddrop.request_types import ExportRequest
from deaddrop.table_config import ExportOverrides, TableConfig, TableConfigResolver
from deaddrop.table_writer import ProgressCallback, TableWriter
from deaddrop.task_queue import ExportTablesToSingleFileTask, ExportTableTask, TaskQueue

logger = logging.getLogger(__name__)

Overrides = Optional[Union[ExportOverrides, Mapping[str, Any]]]


@dataclass(frozen=True)
class TableExportResult:
    table: str
    records: int
    file: str
    size: int
    cloud_path: Optional[str] = None
    storage_disk: Optional[str] = None
    local_deleted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CombinedExportResult:
    file: str
    tables: List[str]
    total_records: int
    size: int
    table_records: Dict[str, int] = field(default_factory=dict)
    cloud_path: Optional[str] = None
    storage_disk: Optional[str] = None
    local_deleted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _overrides_dict(overrides: Overrides) -> Optional[Dict[str, Any]]:
    """Plain-data form for task descriptors"""
    if overrides is None:
        return None
    if isinstance(overrides, ExportOverrides):
        return overrides.to_dict()
    return ExportOverrides.from_dict(overrides).to_dict()


class Exporter:
    """Exports configured tables to SQL upsert dumps"""

    def __init__(self, config: DeadDropConfig, database: DatabaseManager, resolver: TableConfigResolver,
                 writer: TableWriter, uploader: Optional[CloudUploader] = None,
                 status_store: Optional[StatusStore] = None, task_queue: Optional[TaskQueue] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.config = config
        self.database = database
        self.resolver = resolver
        self.writer = writer
        self.uploader = uploader
        self.status_store = status_store
        self.task_queue = task_queue
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_query(self, table: str, config: TableConfig, adapter: DatabaseAdapter) -> ExportQuery:
        return QueryBuilder(adapter.dialect, adapter.param_style).build(table, config)

    def _timestamp(self) -> str:
        return self.clock().strftime('%Y-%m-%d %H:%M:%S')

    @staticmethod
    def _ensure_directory(output_path: Union[str, Path]) -> Path:
        output_dir = Path(output_path)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExportIOError(f"Could not create output directory {output_dir}: {e}", str(output_dir)) from e
        return output_dir

    @staticmethod
    def _open(file_path: Path) -> TextIO:
        try:
            return open(file_path, 'w', encoding='utf-8', newline='\n')
        except OSError as e:
            raise ExportIOError(f"Could not open file for writing: {file_path}", str(file_path)) from e

    @staticmethod
    def _discard(file_path: Path):
        if file_path.exists():
            file_path.unlink()
            logger.info(f"Removed partial export {file_path}")

    def _upload(self, file_path: Path) -> Optional[UploadResult]:
        if self.uploader is None:
            return None
        return self.uploader.upload(file_path)

    def get_enabled_tables(self) -> List[str]:
        return self.resolver.enabled_tables()

    # ------------------------------------------------------------------
    # Synchronous exports
    # ------------------------------------------------------------------

    def export_table(self, table: str, connection: str, output_path: Union[str, Path],
                     overrides: Overrides = None,
                     progress_callback: Optional[ProgressCallback] = None) -> TableExportResult:
        """Export one table into its own file"""
        config = self.resolver.resolve(table, overrides)
        adapter = self.database.get_adapter(connection)
        query = self._build_query(table, config, adapter)

        file_path = self._ensure_directory(output_path) / f"{table}.sql"
        logger.info(f"Exporting {table} from {connection} to {file_path}")

        try:
            with self._open(file_path) as handle:
                handle.write(f"-- Table: {table}\n")
                handle.write(f"-- Exported: {self._timestamp()}\n")
                handle.write("-- Format: upsert (safe for re-import)\n\n")
                records = self.writer.write(table, query, handle, config, adapter,
                                            progress_callback, config.primary_key)
        except ExportIOError:
            raise
        except OSError as e:
            self._discard(file_path)
            raise ExportIOError(f"Could not write {file_path}: {e}", str(file_path)) from e
        except Exception:
            self._discard(file_path)
            raise

        size = file_path.stat().st_size
        upload = self._upload(file_path)
        logger.info(f"Exported {records} records from {table} ({size} bytes)")

        return TableExportResult(
            table=table,
            records=records,
            file=str(file_path),
            size=size,
            cloud_path=upload.cloud_path if upload else None,
            storage_disk=upload.storage_disk if upload else None,
            local_deleted=upload.local_deleted if upload else False,
        )

    def export(self, table: str, overrides: Overrides = None, connection: Optional[str] = None,
               output_path: Optional[Union[str, Path]] = None) -> TableExportResult:
        """Export one table using the configured connection and output path by default"""
        return self.export_table(
            table,
            connection or self.config.default_connection,
            output_path or self.config.output_path,
            overrides,
        )

    def export_all(self, output_path: Optional[Union[str, Path]] = None, connection: Optional[str] = None,
                   overrides: Overrides = None) -> List[TableExportResult]:
        """Export every enabled table into its own file; disabled tables are skipped"""
        connection = connection or self.config.default_connection
        output_path = output_path or self.config.output_path
        return [self.export_table(table, connection, output_path, overrides)
                for table in self.get_enabled_tables()]

    def export_tables_to_single_file(self, tables: Sequence[str], output_path: Union[str, Path],
                                     connection: Optional[str] = None, overrides: Overrides = None,
                                     progress_callback: Optional[ProgressCallback] = None) -> CombinedExportResult:
        """Export several tables into one timestamped file.

        The progress callback receives the running total across all tables.
        """
        if not tables:
            raise ConfigurationError("No tables specified for export")

        tables = list(tables)
        connection = connection or self.config.default_connection
        configs = {table: self.resolver.resolve(table, overrides) for table in tables}
        adapter = self.database.get_adapter(connection)

        output_dir = self._ensure_directory(output_path)
        file_path = output_dir / f"database-export-{self.clock().strftime('%Y-%m-%d-%H%M%S')}.sql"
        logger.info(f"Exporting {len(tables)} tables from {connection} to {file_path}")

        total_records = 0
        table_records: Dict[str, int] = {}
        try:
            with self._open(file_path) as handle:
                handle.write("-- Dead Drop Export\n")
                handle.write(f"-- Exported: {self._timestamp()}\n")
                handle.write(f"-- Connection: {connection}\n")
                handle.write(f"-- Tables: {len(tables)}\n\n")

                for table in tables:
                    config = configs[table]
                    handle.write(f"\n-- Table: {table}\n")
                    if config.where:
                        handle.write(f"-- Filters: {config.describe_filters()}\n")
                    handle.write("\n")

                    callback = None
                    if progress_callback is not None:
                        offset = total_records
                        callback = lambda current, offset=offset: progress_callback(offset + current)

                    query = self._build_query(table, config, adapter)
                    records = self.writer.write(table, query, handle, config, adapter,
                                                callback, config.primary_key)
                    table_records[table] = records
                    total_records += records

                handle.write(f"\n-- Export complete: {total_records} records\n")
        except ExportIOError:
            self._discard(file_path)
            raise
        except OSError as e:
            self._discard(file_path)
            raise ExportIOError(f"Could not write {file_path}: {e}", str(file_path)) from e
        except Exception:
            self._discard(file_path)
            raise

        size = file_path.stat().st_size
        upload = self._upload(file_path)
        logger.info(f"Exported {total_records} records from {len(tables)} tables ({size} bytes)")

        return CombinedExportResult(
            file=str(file_path),
            tables=tables,
            total_records=total_records,
            size=size,
            table_records=table_records,
            cloud_path=upload.cloud_path if upload else None,
            storage_disk=upload.storage_disk if upload else None,
            local_deleted=upload.local_deleted if upload else False,
        )

    def export_all_to_single_file(self, output_path: Optional[Union[str, Path]] = None,
                                  connection: Optional[str] = None, overrides: Overrides = None,
                                  progress_callback: Optional[ProgressCallback] = None) -> CombinedExportResult:
        tables = self.get_enabled_tables()
        if not tables:
            raise ConfigurationError("No tables configured for export")
        return self.export_tables_to_single_file(
            tables, output_path or self.config.output_path, connection, overrides, progress_callback)

    def export_request(self, request: ExportRequest,
                       progress_callback: Optional[ProgressCallback] = None) -> CombinedExportResult:
        return self.export_tables_to_single_file(
            request.tables, request.output_path, request.connection, request.overrides, progress_callback)

    # ------------------------------------------------------------------
    # Counting
    # ------------------------------------------------------------------

    def count_records(self, table: str, connection: Optional[str] = None, overrides: Overrides = None) -> int:
        """Rows an export of ``table`` would write: the filtered count capped at the limit"""
        config = self.resolver.resolve(table, overrides)
        adapter = self.database.get_adapter(connection or self.config.default_connection)
        query = self._build_query(table, config, adapter)

        count = int(adapter.fetch_value(query.count_sql, query.count_params) or 0)
        return min(config.limit, count) if config.limit is not None else count

    def count_all_records(self, connection: Optional[str] = None, overrides: Overrides = None) -> int:
        return sum(self.count_records(table, connection, overrides) for table in self.get_enabled_tables())

    def count_request(self, request: ExportRequest) -> int:
        return sum(self.count_records(table, request.connection, request.overrides) for table in request.tables)

    # ------------------------------------------------------------------
    # Background exports
    # ------------------------------------------------------------------

    def _require_queue(self):
        if self.task_queue is None or self.status_store is None:
            raise ConfigurationError("Async exports need a task queue and a status store")

    def export_async(self, table: str, overrides: Overrides = None, connection: Optional[str] = None,
                     output_path: Optional[Union[str, Path]] = None) -> str:
        """Queue a single-table export and return its status id"""
        self._require_queue()
        connection = connection or self.config.default_connection
        output_path = str(output_path or self.config.output_path)

        export_id = str(uuid.uuid4())
        self.status_store.create(export_id, OperationType.EXPORT.value, {
            'table': table,
            'connection': connection,
        })
        self.task_queue.dispatch(ExportTableTask(
            status_id=export_id,
            table=table,
            connection=connection,
            output_path=output_path,
            overrides=_overrides_dict(overrides),
        ))
        return export_id

    def export_all_async(self, output_path: Optional[Union[str, Path]] = None, connection: Optional[str] = None,
                         overrides: Overrides = None) -> Dict[str, str]:
        """Queue one export per enabled table; returns table -> status id"""
        return {table: self.export_async(table, overrides, connection, output_path)
                for table in self.get_enabled_tables()}

    def export_tables_to_single_file_async(self, tables: Sequence[str],
                                           output_path: Optional[Union[str, Path]] = None,
                                           connection: Optional[str] = None,
                                           overrides: Overrides = None) -> str:
        if not tables:
            raise ConfigurationError("No tables specified for export")
        self._require_queue()
        connection = connection or self.config.default_connection
        output_path = str(output_path or self.config.output_path)

        export_id = str(uuid.uuid4())
        self.status_store.create(export_id, OperationType.EXPORT.value, {
            'type': 'single-file',
            'tables': list(tables),
            'connection': connection,
        })
        self.task_queue.dispatch(ExportTablesToSingleFileTask(
            status_id=export_id,
            tables=tuple(tables),
            connection=connection,
            output_path=output_path,
            overrides=_overrides_dict(overrides),
        ))
        return export_id

    def export_all_to_single_file_async(self, output_path: Optional[Union[str, Path]] = None,
                                        connection: Optional[str] = None, overrides: Overrides = None) -> str:
        tables = self.get_enabled_tables()
        if not tables:
            raise ConfigurationError("No tables configured for export")
        return self.export_tables_to_single_file_async(tables, output_path, connection, overrides)
