#!/usr/bin/env python3
"""
Dead Drop Database Manager - Named Connections for Export and Import

Maps connection names from the configuration to database adapters and
gives the export/import pipeline one interface over every backend:

- streaming reads in fixed-size chunks (``iter_chunks``)
- scalar reads (``fetch_value``)
- driver-native string literal quoting (``quote_string``)
- a transaction scope for replaying statements (``transaction``)

Supported backends:
- SQLite (built-in)
- PostgreSQL (psycopg2)
- MySQL / MariaDB (PyMySQL)

Usage:
    manager = DatabaseManager({'default': {'type': 'sqlite', 'path': 'app.db'}})
    adapter = manager.get_adapter('default')
    for chunk in adapter.iter_chunks('SELECT * FROM users', chunk_size=500):
        ...
"""

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

from deaddrop.errors import ConfigurationError, StatementExecutionError, TransactionError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class BackendType(Enum):
    """Supported database backend types"""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"


BACKEND_ALIASES = {
    'sqlite': BackendType.SQLITE,
    'sqlite3': BackendType.SQLITE,
    'postgresql': BackendType.POSTGRESQL,
    'postgres': BackendType.POSTGRESQL,
    'pgsql': BackendType.POSTGRESQL,
    'mysql': BackendType.MYSQL,
    'mariadb': BackendType.MARIADB,
}


class DatabaseAdapter:
    """Base class for database adapters.

    Subclasses open one DB-API connection lazily and keep it for the life of
    the adapter. Streaming cursors, quoting and transactions all run on it.
    """

    dialect = 'unknown'
    param_style = 'qmark'
    supports_statement_savepoints = False

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.backend_type = config.get('type', 'unknown')
        self._connection = None
        self._lock = threading.RLock()

    def connect(self):
        """Open a DB-API connection - to be implemented by subclasses"""
        raise NotImplementedError("Subclasses must implement connect")

    @property
    def connection(self):
        with self._lock:
            if self._connection is None:
                self._connection = self.connect()
            return self._connection

    def _streaming_cursor(self):
        return self.connection.cursor()

    def _end_stream(self):
        """Hook run after a streaming read finishes"""

    def iter_chunks(self, sql: str, params: Optional[Sequence[Any]] = None,
                    chunk_size: int = 1000) -> Iterator[List[Row]]:
        """Yield query results as lists of row dicts, ``chunk_size`` rows at a time"""
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        cursor = self._streaming_cursor()
        try:
            cursor.execute(sql, tuple(params or ()))
            columns = None
            while True:
                rows = cursor.fetchmany(chunk_size)
                if not rows:
                    break
                if columns is None:
                    columns = [d[0] for d in cursor.description]
                yield [dict(zip(columns, row)) for row in rows]
        finally:
            cursor.close()
            self._end_stream()

    def fetch_value(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Run a query and return the first column of the first row"""
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql, tuple(params or ()))
            row = cursor.fetchone()
        finally:
            cursor.close()
        self._end_stream()
        if row is None:
            return None
        return row[0]

    def quote_string(self, value: str) -> str:
        """Render ``value`` as a SQL string literal using the driver's escaping"""
        raise NotImplementedError("Subclasses must implement quote_string")

    def _begin(self, cursor):
        pass

    def _commit(self, cursor):
        self.connection.commit()

    def _rollback(self, cursor):
        try:
            self.connection.rollback()
        except Exception as e:
            logger.warning(f"Rollback on {self.backend_type} failed: {e}")

    @contextmanager
    def transaction(self):
        """Yield a cursor inside one transaction.

        Exceptions raised by the caller roll back and propagate. A failed
        begin or commit rolls back and raises TransactionError.
        """
        with self._lock:
            cursor = self.connection.cursor()
            try:
                try:
                    self._begin(cursor)
                except Exception as e:
                    logger.error(f"Begin on {self.backend_type} failed: {e}")
                    self._rollback(cursor)
                    raise TransactionError(
                        f"Begin failed: {e}", {'backend': self.backend_type}) from e
                try:
                    yield cursor
                except Exception:
                    self._rollback(cursor)
                    raise
                try:
                    self._commit(cursor)
                except Exception as e:
                    logger.error(f"Commit on {self.backend_type} failed: {e}")
                    self._rollback(cursor)
                    raise TransactionError(
                        f"Commit failed: {e}", {'backend': self.backend_type}) from e
            finally:
                cursor.close()

    def _savepoint(self, cursor, command: str):
        try:
            cursor.execute(f"{command} dead_drop_statement")
        except Exception as e:
            raise TransactionError(
                f"{command} failed: {e}", {'backend': self.backend_type}) from e

    def execute(self, cursor, statement: str):
        """Execute one raw statement inside an open transaction.

        Driver errors are raised as StatementExecutionError.

        Backends that abort the whole transaction on the first error wrap the
        statement in a savepoint so later statements still run. A savepoint
        that cannot be set, released or rolled back to raises
        TransactionError.
        """
        if not self.supports_statement_savepoints:
            try:
                cursor.execute(statement)
            except Exception as e:
                raise StatementExecutionError(str(e), statement) from e
            return

        self._savepoint(cursor, "SAVEPOINT")
        try:
            cursor.execute(statement)
        except Exception as e:
            self._savepoint(cursor, "ROLLBACK TO SAVEPOINT")
            raise StatementExecutionError(str(e), statement) from e
        self._savepoint(cursor, "RELEASE SAVEPOINT")

    def close(self):
        with self._lock:
            if self._connection is not None:
                try:
                    self._connection.close()
                finally:
                    self._connection = None


class SQLiteAdapter(DatabaseAdapter):
    """SQLite database adapter"""

    dialect = 'sqlite'
    param_style = 'qmark'

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.db_path = config.get('path', 'database.sqlite')
        self.timeout = config.get('timeout', 30)

    def connect(self):
        dirname = os.path.dirname(self.db_path)
        if dirname and self.db_path != ':memory:':
            os.makedirs(dirname, exist_ok=True)
        # Autocommit mode; transactions are opened explicitly with BEGIN
        conn = sqlite3.connect(self.db_path, timeout=self.timeout,
                               isolation_level=None, check_same_thread=False)
        logger.debug(f"Opened SQLite database {self.db_path}")
        return conn

    def quote_string(self, value: str) -> str:
        # Same rule as sqlite3_mprintf("%Q")
        return "'" + value.replace("'", "''") + "'"

    def _begin(self, cursor):
        cursor.execute("BEGIN")

    def _commit(self, cursor):
        cursor.execute("COMMIT")

    def _rollback(self, cursor):
        try:
            if self.connection.in_transaction:
                cursor.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.warning(f"Rollback on sqlite failed: {e}")


class DatabaseManager:
    """
    Named-connection manager for Dead Drop

    Connection definitions share the shape used in the config file:
        {'default': {'type': 'sqlite', 'path': 'database.sqlite'},
         'reporting': {'type': 'postgresql', 'host': ..., 'database': ...}}
    """

    def __init__(self, connections: Dict[str, Dict[str, Any]], default_connection: str = 'default'):
        self.connections = connections
        self.default_connection = default_connection
        self.adapters: Dict[str, DatabaseAdapter] = {}
        self._lock = threading.RLock()

    def _initialize_backend(self, name: str) -> DatabaseAdapter:
        backend_config = self.connections.get(name)
        if not backend_config:
            raise ConfigurationError(f"Connection '{name}' is not configured")

        backend_type = BACKEND_ALIASES.get(str(backend_config.get('type', '')).lower())
        if backend_type is None:
            raise ConfigurationError(f"Unsupported backend type: {backend_config.get('type')}")

        if backend_type == BackendType.SQLITE:
            adapter = SQLiteAdapter(backend_config)
        elif backend_type == BackendType.POSTGRESQL:
            try:
                from deaddrop.adapters.postgresql_adapter import PostgreSQLAdapter
            except ImportError as e:
                logger.error(f"PostgreSQL adapter not available: {e}")
                raise ConfigurationError(
                    "PostgreSQL support needs psycopg2: pip install psycopg2-binary") from e
            adapter = PostgreSQLAdapter(backend_config)
        else:
            try:
                from deaddrop.adapters.mysql_adapter import MySQLAdapter
            except ImportError as e:
                logger.error(f"MySQL adapter not available: {e}")
                raise ConfigurationError(
                    "MySQL support needs PyMySQL: pip install PyMySQL") from e
            adapter = MySQLAdapter(backend_config, dialect=backend_type.value)

        logger.info(f"Initialized connection: {name} ({adapter.dialect})")
        return adapter

    def get_adapter(self, name: Optional[str] = None) -> DatabaseAdapter:
        """Get (and lazily create) the adapter for a named connection"""
        name = name or self.default_connection
        with self._lock:
            if name not in self.adapters:
                self.adapters[name] = self._initialize_backend(name)
            return self.adapters[name]

    def driver_name(self, name: Optional[str] = None) -> str:
        """SQL dialect of a named connection (sqlite, postgres, mysql, mariadb)"""
        return self.get_adapter(name).dialect

    def get_available_connections(self) -> List[str]:
        return list(self.connections.keys())

    def get_connection_info(self, name: Optional[str] = None) -> Dict[str, Any]:
        """Connection details with secrets redacted"""
        name = name or self.default_connection
        if name not in self.connections:
            return {'name': name, 'configured': False}
        info = {k: ('***' if 'password' in k.lower() and v else v)
                for k, v in self.connections[name].items()}
        info['name'] = name
        info['configured'] = True
        info['initialized'] = name in self.adapters
        return info

    def close_all(self):
        with self._lock:
            for name, adapter in self.adapters.items():
                try:
                    adapter.close()
                except Exception as e:
                    logger.warning(f"Error closing connection {name}: {e}")
            self.adapters.clear()
