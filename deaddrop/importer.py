#!/usr/bin/env python3
"""
Dead Drop Importer

Reads a SQL dump from a local file or a cloud disk, splits it into
statements and replays them against a connection.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional, Union

from deaddrop.cloud_storage import CloudDownloader
from deaddrop.config import DeadDropConfig
from deaddrop.database_manager import DatabaseManager
from deaddrop.errors import ConfigurationError, SourceNotFoundError
from deaddrop.export_status import OperationType, StatusStore
from deaddrop.import_executor import ImportExecutor, ImportResult
from deaddrop.request_types import ImportRequest
from deaddrop.statement_parser import SqlStatementParser
from deaddrop.task_queue import ImportCloudFileTask, ImportFileTask, TaskQueue

logger = logging.getLogger(__name__)

# Dialects whose string literals treat backslash as an escape character
BACKSLASH_ESCAPE_DIALECTS = ('mysql', 'mariadb')


class Importer:
    """Imports SQL dumps produced by the exporter"""

    def __init__(self, config: DeadDropConfig, database: DatabaseManager, executor: ImportExecutor,
                 downloader: Optional[CloudDownloader] = None, status_store: Optional[StatusStore] = None,
                 task_queue: Optional[TaskQueue] = None):
        self.config = config
        self.database = database
        self.executor = executor
        self.downloader = downloader
        self.status_store = status_store
        self.task_queue = task_queue

    def parser_for(self, connection: str) -> SqlStatementParser:
        dialect = self.database.driver_name(connection)
        return SqlStatementParser(backslash_escapes=dialect in BACKSLASH_ESCAPE_DIALECTS)

    def import_from_file(self, path: Union[str, Path], connection: Optional[str] = None,
                         source: Optional[str] = None) -> ImportResult:
        """Import a local dump file; ``source`` overrides the label used in the result"""
        connection = connection or self.config.default_connection
        path = Path(path)
        if not path.is_file():
            raise SourceNotFoundError(f"File not found: {path}", str(path))

        sql = path.read_text(encoding='utf-8')
        statements = self.parser_for(connection).parse(sql)
        logger.info(f"Parsed {len(statements)} statements from {path}")

        return self.executor.execute(statements, connection, source or str(path))

    def import_from_cloud(self, cloud_path: str, disk: str, connection: Optional[str] = None) -> ImportResult:
        """Download a dump from a cloud disk to a temp file and import it"""
        if self.downloader is None:
            raise ConfigurationError("Cloud imports need a storage downloader")

        local_path = self.downloader.download(cloud_path, disk)
        try:
            return self.import_from_file(local_path, connection, source=cloud_path)
        finally:
            if local_path.exists():
                local_path.unlink()

    def import_request(self, request: ImportRequest) -> ImportResult:
        if request.is_cloud:
            return self.import_from_cloud(request.source, request.cloud_disk, request.connection)
        return self.import_from_file(request.source, request.connection)

    def _require_queue(self):
        if self.task_queue is None or self.status_store is None:
            raise ConfigurationError("Async imports need a task queue and a status store")

    def import_async(self, path: Union[str, Path], connection: Optional[str] = None) -> str:
        """Queue a local import and return its status id"""
        self._require_queue()
        connection = connection or self.config.default_connection
        if not Path(path).is_file():
            raise SourceNotFoundError(f"File not found: {path}", str(path))

        import_id = str(uuid.uuid4())
        self.status_store.create(import_id, OperationType.IMPORT.value, {
            'source': str(path),
            'connection': connection,
        })
        self.task_queue.dispatch(ImportFileTask(status_id=import_id, path=str(path), connection=connection))
        return import_id

    def import_from_cloud_async(self, cloud_path: str, disk: str, connection: Optional[str] = None) -> str:
        """Queue a cloud import and return its status id"""
        self._require_queue()
        connection = connection or self.config.default_connection

        import_id = str(uuid.uuid4())
        self.status_store.create(import_id, OperationType.IMPORT.value, {
            'source': cloud_path,
            'disk': disk,
            'connection': connection,
        })
        self.task_queue.dispatch(ImportCloudFileTask(
            status_id=import_id, cloud_path=cloud_path, disk=disk, connection=connection))
        return import_id

    def import_request_async(self, request: ImportRequest) -> str:
        if request.is_cloud:
            return self.import_from_cloud_async(request.source, request.cloud_disk, request.connection)
        return self.import_async(request.source, request.connection)
