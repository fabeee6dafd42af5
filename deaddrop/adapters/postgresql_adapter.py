#!/usr/bin/env python3
"""
Dead Drop PostgreSQL Adapter

Streams export queries through a server-side (named) cursor so large tables
never load into client memory, quotes literals with psycopg2's own adapter,
and isolates replayed statements with savepoints.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import psycopg2
import psycopg2.extensions

from deaddrop.database_manager import DatabaseAdapter

logger = logging.getLogger(__name__)


class SSLMode(Enum):
    """SSL connection modes"""
    DISABLE = "disable"
    ALLOW = "allow"
    PREFER = "prefer"
    REQUIRE = "require"
    VERIFY_CA = "verify-ca"
    VERIFY_FULL = "verify-full"


@dataclass
class ConnectionConfig:
    """PostgreSQL connection configuration"""
    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    user: str = "postgres"
    password: str = ""

    ssl_mode: SSLMode = SSLMode.PREFER
    ssl_cert: Optional[str] = None
    ssl_key: Optional[str] = None
    ssl_ca: Optional[str] = None

    statement_timeout: int = 300  # seconds
    connect_timeout: int = 10
    application_name: str = "dead-drop"
    search_path: str = "public"

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ConnectionConfig':
        return cls(
            host=config.get('host', 'localhost'),
            port=int(config.get('port', 5432)),
            database=config.get('database', 'postgres'),
            user=config.get('user', config.get('username', 'postgres')),
            password=config.get('password', ''),
            ssl_mode=SSLMode(config.get('sslmode', SSLMode.PREFER.value)),
            ssl_cert=config.get('sslcert'),
            ssl_key=config.get('sslkey'),
            ssl_ca=config.get('sslrootcert'),
            statement_timeout=int(config.get('statement_timeout', 300)),
            connect_timeout=int(config.get('connect_timeout', 10)),
            application_name=config.get('application_name', 'dead-drop'),
            search_path=config.get('search_path', 'public'),
        )

    def to_connection_params(self) -> Dict[str, Any]:
        """Convert to psycopg2 connection parameters"""
        params = {
            'host': self.host,
            'port': self.port,
            'database': self.database,
            'user': self.user,
            'password': self.password,
            'connect_timeout': self.connect_timeout,
            'application_name': self.application_name,
            'options': f'-c search_path={self.search_path} -c statement_timeout={self.statement_timeout * 1000}',
        }

        if self.ssl_mode != SSLMode.DISABLE:
            params['sslmode'] = self.ssl_mode.value
            if self.ssl_cert:
                params['sslcert'] = self.ssl_cert
            if self.ssl_key:
                params['sslkey'] = self.ssl_key
            if self.ssl_ca:
                params['sslrootcert'] = self.ssl_ca

        return params


class PostgreSQLAdapter(DatabaseAdapter):
    """PostgreSQL adapter built on psycopg2"""

    dialect = 'postgres'
    param_style = 'format'
    supports_statement_savepoints = True

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.connection_config = ConnectionConfig.from_dict(config)
        self.itersize = int(config.get('itersize', 2000))

    def connect(self):
        conn = psycopg2.connect(**self.connection_config.to_connection_params())
        conn.autocommit = False
        logger.info(f"Connected to PostgreSQL {self.connection_config.host}:"
                    f"{self.connection_config.port}/{self.connection_config.database}")
        return conn

    def _streaming_cursor(self):
        cursor = self.connection.cursor(name=f"dead_drop_{uuid.uuid4().hex[:12]}")
        cursor.itersize = self.itersize
        return cursor

    def _end_stream(self):
        # Named cursors live inside a transaction; end the read-only one
        if self.connection.status != psycopg2.extensions.STATUS_READY:
            self.connection.commit()

    def quote_string(self, value: str) -> str:
        quoted = psycopg2.extensions.QuotedString(value)
        quoted.prepare(self.connection)
        encoding = psycopg2.extensions.encodings.get(self.connection.encoding, 'utf-8')
        return quoted.getquoted().decode(encoding)
