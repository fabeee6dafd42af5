#!/usr/bin/env python3
"""
Dead Drop MySQL / MariaDB Adapter

Streams export queries with an unbuffered ``SSCursor`` and quotes literals
through the connection so the server's charset and SQL mode are honoured.
"""

import logging
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import pymysql
import pymysql.cursors

from deaddrop.database_manager import DatabaseAdapter

logger = logging.getLogger(__name__)


class SSLMode(Enum):
    """SSL connection modes"""
    DISABLED = "DISABLED"
    PREFERRED = "PREFERRED"
    REQUIRED = "REQUIRED"
    VERIFY_CA = "VERIFY_CA"
    VERIFY_IDENTITY = "VERIFY_IDENTITY"


@dataclass
class ConnectionConfig:
    """MySQL connection configuration"""
    host: str = "localhost"
    port: int = 3306
    database: str = "mysql"
    user: str = "root"
    password: str = ""

    ssl_mode: SSLMode = SSLMode.DISABLED
    ssl_ca: Optional[str] = None
    ssl_cert: Optional[str] = None
    ssl_key: Optional[str] = None

    connect_timeout: int = 10
    read_timeout: int = 300
    write_timeout: int = 300
    charset: str = "utf8mb4"

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ConnectionConfig':
        return cls(
            host=config.get('host', 'localhost'),
            port=int(config.get('port', 3306)),
            database=config.get('database', 'mysql'),
            user=config.get('user', config.get('username', 'root')),
            password=config.get('password', ''),
            ssl_mode=SSLMode(config.get('ssl_mode', SSLMode.DISABLED.value)),
            ssl_ca=config.get('ssl_ca'),
            ssl_cert=config.get('ssl_cert'),
            ssl_key=config.get('ssl_key'),
            connect_timeout=int(config.get('connect_timeout', 10)),
            read_timeout=int(config.get('read_timeout', 300)),
            write_timeout=int(config.get('write_timeout', 300)),
            charset=config.get('charset', 'utf8mb4'),
        )

    def to_connection_params(self) -> Dict[str, Any]:
        """Convert to PyMySQL connection parameters"""
        params = {
            'host': self.host,
            'port': self.port,
            'database': self.database,
            'user': self.user,
            'password': self.password,
            'connect_timeout': self.connect_timeout,
            'read_timeout': self.read_timeout,
            'write_timeout': self.write_timeout,
            'charset': self.charset,
            'autocommit': False,
        }

        if self.ssl_mode != SSLMode.DISABLED:
            ssl_context = {}
            if self.ssl_mode in (SSLMode.PREFERRED, SSLMode.REQUIRED):
                ssl_context['check_hostname'] = False
                ssl_context['verify_mode'] = ssl.CERT_NONE
            elif self.ssl_mode == SSLMode.VERIFY_CA:
                ssl_context['check_hostname'] = False
                ssl_context['verify_mode'] = ssl.CERT_REQUIRED
            else:
                ssl_context['check_hostname'] = True
                ssl_context['verify_mode'] = ssl.CERT_REQUIRED
            if self.ssl_ca:
                ssl_context['ca'] = self.ssl_ca
            if self.ssl_cert:
                ssl_context['cert'] = self.ssl_cert
            if self.ssl_key:
                ssl_context['key'] = self.ssl_key
            params['ssl'] = ssl_context

        return params


class MySQLAdapter(DatabaseAdapter):
    """MySQL and MariaDB adapter built on PyMySQL"""

    param_style = 'format'

    def __init__(self, config: Dict[str, Any], dialect: str = 'mysql'):
        super().__init__(config)
        self.dialect = dialect
        self.connection_config = ConnectionConfig.from_dict(config)

    def connect(self):
        conn = pymysql.connect(**self.connection_config.to_connection_params())
        logger.info(f"Connected to {self.dialect} {self.connection_config.host}:"
                    f"{self.connection_config.port}/{self.connection_config.database}")
        return conn

    def _streaming_cursor(self):
        return self.connection.cursor(pymysql.cursors.SSCursor)

    def _end_stream(self):
        self.connection.commit()

    def _begin(self, cursor):
        self.connection.begin()

    def quote_string(self, value: str) -> str:
        return self.connection.escape(value)
