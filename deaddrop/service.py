#!/usr/bin/env python3
"""
Service wiring: builds every Dead Drop component from one DeadDropConfig.
"""

import logging
from typing import Optional

from deaddrop.cloud_storage import CloudDownloader, CloudUploader, StorageRegistry
from deaddrop.config import DeadDropConfig
from deaddrop.database_manager import DatabaseManager
from deaddrop.export_status import SQLiteStatusStore, StatusStore
from deaddrop.exporter import Exporter
from deaddrop.import_executor import ImportExecutor
from deaddrop.importer import Importer
from deaddrop.row_transformer import RowTransformer
from deaddrop.table_config import TableConfigResolver
from deaddrop.table_writer import TableWriter
from deaddrop.task_queue import TaskQueue, TaskWorker, create_task_queue

logger = logging.getLogger(__name__)


class DeadDrop:
    """Owns the exporter, importer and their collaborators"""

    def __init__(self, config: DeadDropConfig, database: Optional[DatabaseManager] = None,
                 storage: Optional[StorageRegistry] = None, status_store: Optional[StatusStore] = None,
                 task_queue: Optional[TaskQueue] = None, transformer: Optional[RowTransformer] = None):
        self.config = config
        self.database = database or DatabaseManager(config.connections, config.default_connection)
        self.storage = storage or StorageRegistry(config.storage.get('disks', {}), config.output_path.parent)
        self.status_store = status_store or SQLiteStatusStore(config.status_path)
        self.task_queue = task_queue or create_task_queue(config.queue)
        self.resolver = TableConfigResolver(config.tables)

        transformer = transformer or RowTransformer(
            locale=config.censor.get('locale', 'en_US'),
            seed=config.censor.get('seed'),
            password_rounds=int(config.censor.get('password_rounds', 10)),
        )
        writer = TableWriter(transformer, chunk_size=config.chunk_size, batch_size=config.batch_size)
        uploader = CloudUploader(self.storage, config.storage_disk, config.storage_path,
                                 config.delete_local_after_upload)

        self.exporter = Exporter(config, self.database, self.resolver, writer, uploader,
                                 self.status_store, self.task_queue)
        self.importer = Importer(config, self.database, ImportExecutor(self.database),
                                 CloudDownloader(self.storage, config.temp_path),
                                 self.status_store, self.task_queue)

        self.worker = TaskWorker(self.exporter, self.importer, self.status_store)
        self.task_queue.bind(self.worker)

    @classmethod
    def from_config(cls, config: DeadDropConfig, **collaborators) -> 'DeadDrop':
        return cls(config, **collaborators)

    def close(self):
        self.task_queue.shutdown(wait=True)
        self.database.close_all()
