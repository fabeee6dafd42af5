#!/usr/bin/env python3
"""
Export Status Tracking

Status records follow background exports and imports:

    pending -> processing -> completed | failed

``completed`` and ``failed`` are terminal. Records live in the
``dead_drop_exports`` table of a small SQLite database.
"""

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class OperationType(Enum):
    EXPORT = "export"
    IMPORT = "import"


class StatusState(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = (StatusState.COMPLETED.value, StatusState.FAILED.value)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


@dataclass
class ExportStatusRecord:
    """One tracked background operation"""
    id: str
    type: str
    status: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    progress_current: int = 0
    progress_total: Optional[int] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def progress_percent(self) -> Optional[float]:
        if not self.progress_total:
            return None
        return round(self.progress_current / self.progress_total * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'status': self.status,
            'metadata': self.metadata,
            'progress_current': self.progress_current,
            'progress_total': self.progress_total,
            'progress_percent': self.progress_percent,
            'result': self.result,
            'error': self.error,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }


class StatusStore:
    """Interface for status persistence"""

    def create(self, status_id: str, operation_type: str, metadata: Optional[Dict[str, Any]] = None) -> ExportStatusRecord:
        raise NotImplementedError

    def update_status(self, status_id: str, status: str):
        raise NotImplementedError

    def update_progress(self, status_id: str, current: int, total: Optional[int] = None):
        raise NotImplementedError

    def complete(self, status_id: str, result: Dict[str, Any]):
        raise NotImplementedError

    def fail(self, status_id: str, error: str):
        raise NotImplementedError

    def get(self, status_id: str) -> Optional[ExportStatusRecord]:
        raise NotImplementedError

    def get_recent(self, limit: int = 10) -> List[ExportStatusRecord]:
        raise NotImplementedError

    def builder(self) -> 'ExportStatusBuilder':
        return ExportStatusBuilder(self)


class SQLiteStatusStore(StatusStore):
    """Status records in a SQLite file"""

    TABLE = "dead_drop_exports"

    def __init__(self, db_path: Path):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._memory_conn = sqlite3.connect(':memory:', check_same_thread=False) if self.db_path == ':memory:' else None
        self._ensure_schema()

    def _connect(self):
        if self._memory_conn is not None:
            return self._memory_conn
        return sqlite3.connect(self.db_path, timeout=30)

    def _run(self, sql: str, params: tuple = ()):
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute(sql, params)
                    return cursor.fetchall(), cursor.rowcount
            finally:
                if conn is not self._memory_conn:
                    conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> List[tuple]:
        return self._run(sql, params)[0]

    def _ensure_schema(self):
        self._execute(f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE} (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                metadata TEXT,
                progress_current INTEGER NOT NULL DEFAULT 0,
                progress_total INTEGER,
                result TEXT,
                error TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._execute(f"CREATE INDEX IF NOT EXISTS idx_{self.TABLE}_status ON {self.TABLE} (status)")
        self._execute(f"CREATE INDEX IF NOT EXISTS idx_{self.TABLE}_created ON {self.TABLE} (created_at)")

    def _update(self, status_id: str, assignments: str, params: tuple):
        _, rowcount = self._run(
            f"UPDATE {self.TABLE} SET {assignments}, updated_at = ? "
            f"WHERE id = ? AND status NOT IN (?, ?)",
            params + (_now(), status_id) + TERMINAL_STATES,
        )
        if rowcount == 0:
            logger.warning(f"Status {status_id} not updated: unknown id or already finished")

    def create(self, status_id: str, operation_type: str, metadata: Optional[Dict[str, Any]] = None) -> ExportStatusRecord:
        now = _now()
        self._execute(
            f"INSERT INTO {self.TABLE} (id, type, status, metadata, created_at, updated_at) "
            f"VALUES (?, ?, ?, ?, ?, ?)",
            (status_id, operation_type, StatusState.PENDING.value,
             json.dumps(metadata or {}, default=str), now, now),
        )
        return self.get(status_id)

    def update_status(self, status_id: str, status: str):
        self._update(status_id, "status = ?", (StatusState(status).value,))

    def update_progress(self, status_id: str, current: int, total: Optional[int] = None):
        if total is None:
            self._update(status_id, "progress_current = ?", (current,))
        else:
            self._update(status_id, "progress_current = ?, progress_total = ?", (current, total))

    def complete(self, status_id: str, result: Dict[str, Any]):
        self._update(status_id, "status = ?, result = ?",
                     (StatusState.COMPLETED.value, json.dumps(result, default=str)))

    def fail(self, status_id: str, error: str):
        self._update(status_id, "status = ?, error = ?", (StatusState.FAILED.value, error))

    @staticmethod
    def _record(row: tuple) -> ExportStatusRecord:
        return ExportStatusRecord(
            id=row[0],
            type=row[1],
            status=row[2],
            metadata=json.loads(row[3]) if row[3] else {},
            progress_current=row[4],
            progress_total=row[5],
            result=json.loads(row[6]) if row[6] else None,
            error=row[7],
            created_at=row[8],
            updated_at=row[9],
        )

    _COLUMNS = ("id, type, status, metadata, progress_current, progress_total, "
                "result, error, created_at, updated_at")

    def get(self, status_id: str) -> Optional[ExportStatusRecord]:
        rows = self._execute(f"SELECT {self._COLUMNS} FROM {self.TABLE} WHERE id = ?", (status_id,))
        return self._record(rows[0]) if rows else None

    def get_recent(self, limit: int = 10) -> List[ExportStatusRecord]:
        rows = self._execute(
            f"SELECT {self._COLUMNS} FROM {self.TABLE} ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (int(limit),),
        )
        return [self._record(row) for row in rows]


class ExportStatusBuilder:
    """Fluent construction of pending status records"""

    def __init__(self, store: StatusStore):
        self.store = store
        self._id: Optional[str] = None
        self._type = OperationType.EXPORT.value
        self._metadata: Dict[str, Any] = {}

    def with_id(self, status_id: str) -> 'ExportStatusBuilder':
        self._id = status_id
        return self

    def for_export(self) -> 'ExportStatusBuilder':
        self._type = OperationType.EXPORT.value
        return self

    def for_import(self) -> 'ExportStatusBuilder':
        self._type = OperationType.IMPORT.value
        return self

    def with_metadata(self, metadata: Optional[Dict[str, Any]] = None, **extra) -> 'ExportStatusBuilder':
        self._metadata.update(metadata or {})
        self._metadata.update(extra)
        return self

    def create(self) -> ExportStatusRecord:
        status_id = self._id or str(uuid.uuid4())
        return self.store.create(status_id, self._type, self._metadata)
