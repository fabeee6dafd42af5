#!/usr/bin/env python3
"""
Background task descriptors, queues and the worker that runs them.

Async exports and imports are plain frozen task values. A queue hands them
to ``TaskWorker``, which calls the same exporter/importer methods as the
synchronous path and records the outcome in the status store.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, Union

from deaddrop.export_status import StatusState, StatusStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportTableTask:
    status_id: str
    table: str
    connection: str
    output_path: str
    overrides: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ExportTablesToSingleFileTask:
    status_id: str
    tables: Tuple[str, ...]
    connection: str
    output_path: str
    overrides: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ImportFileTask:
    status_id: str
    path: str
    connection: Optional[str] = None


@dataclass(frozen=True)
class ImportCloudFileTask:
    status_id: str
    cloud_path: str
    disk: str
    connection: Optional[str] = None


Task = Union[ExportTableTask, ExportTablesToSingleFileTask, ImportFileTask, ImportCloudFileTask]

Worker = Callable[[Task], Dict[str, Any]]


@dataclass
class TaskHandle:
    """Returned by ``dispatch``; wraps the eventual outcome"""
    task: Task
    future: Future

    @property
    def status_id(self) -> str:
        return self.task.status_id

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self.future.result(timeout)


class TaskQueue:
    """Base class for task queues"""

    def __init__(self, worker: Optional[Worker] = None, queue_name: str = 'default'):
        self.worker = worker
        self.queue_name = queue_name

    def bind(self, worker: Worker):
        self.worker = worker

    def dispatch(self, task: Task) -> TaskHandle:
        raise NotImplementedError("Subclasses must implement dispatch")

    def shutdown(self, wait: bool = True):
        pass


class SyncTaskQueue(TaskQueue):
    """Runs tasks immediately on the calling thread"""

    def dispatch(self, task: Task) -> TaskHandle:
        if self.worker is None:
            raise RuntimeError("Task queue has no worker bound")
        future: Future = Future()
        try:
            future.set_result(self.worker(task))
        except Exception as e:
            future.set_exception(e)
        return TaskHandle(task, future)


class ThreadPoolTaskQueue(TaskQueue):
    """Runs tasks on a small pool of worker threads"""

    def __init__(self, worker: Optional[Worker] = None, queue_name: str = 'default', max_workers: int = 2):
        super().__init__(worker, queue_name)
        self.executor = ThreadPoolExecutor(max_workers=max_workers,
                                           thread_name_prefix=f"dead-drop-{queue_name}")

    def dispatch(self, task: Task) -> TaskHandle:
        if self.worker is None:
            raise RuntimeError("Task queue has no worker bound")
        logger.debug(f"Queued {type(task).__name__} {task.status_id} on {self.queue_name}")
        return TaskHandle(task, self.executor.submit(self.worker, task))

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)


def create_task_queue(queue_config: Dict[str, Any]) -> TaskQueue:
    connection = queue_config.get('connection', 'sync')
    queue_name = queue_config.get('queue_name', 'default')
    if connection == 'sync':
        return SyncTaskQueue(queue_name=queue_name)
    if connection == 'thread':
        return ThreadPoolTaskQueue(queue_name=queue_name, max_workers=int(queue_config.get('max_workers', 2)))
    raise ValueError(f"Unknown queue connection: {connection}")


class TaskWorker:
    """Executes task descriptors and keeps their status records current"""

    def __init__(self, exporter, importer, status_store: StatusStore):
        self.exporter = exporter
        self.importer = importer
        self.status_store = status_store

    def __call__(self, task: Task) -> Dict[str, Any]:
        return self.run(task)

    def run(self, task: Task) -> Dict[str, Any]:
        status_id = task.status_id
        self.status_store.update_status(status_id, StatusState.PROCESSING.value)
        logger.info(f"Running {type(task).__name__} {status_id}")

        try:
            result = self._execute(task)
        except Exception as e:
            logger.error(f"Task {status_id} failed: {e}")
            self.status_store.fail(status_id, str(e))
            raise

        self.status_store.complete(status_id, result)
        return result

    def _progress(self, status_id: str):
        return lambda current: self.status_store.update_progress(status_id, current)

    def _execute(self, task: Task) -> Dict[str, Any]:
        if isinstance(task, ExportTableTask):
            total = self.exporter.count_records(task.table, task.connection, task.overrides)
            self.status_store.update_progress(task.status_id, 0, total)
            result = self.exporter.export_table(
                task.table, task.connection, task.output_path, task.overrides,
                progress_callback=self._progress(task.status_id))
            return result.to_dict()

        if isinstance(task, ExportTablesToSingleFileTask):
            total = sum(self.exporter.count_records(t, task.connection, task.overrides) for t in task.tables)
            self.status_store.update_progress(task.status_id, 0, total)
            result = self.exporter.export_tables_to_single_file(
                list(task.tables), task.output_path, task.connection, task.overrides,
                progress_callback=self._progress(task.status_id))
            return result.to_dict()

        if isinstance(task, ImportFileTask):
            return self.importer.import_from_file(task.path, task.connection).to_dict()

        if isinstance(task, ImportCloudFileTask):
            return self.importer.import_from_cloud(task.cloud_path, task.disk, task.connection).to_dict()

        raise TypeError(f"Unknown task type: {type(task).__name__}")
