#!/usr/bin/env python3
"""
Dead Drop Test Configuration - PyTest Configuration and Fixtures

Shared fixtures: a seeded SQLite source database, an empty SQLite target
with the same schema, and a fully wired DeadDrop service that runs async
tasks inline.
"""

import copy
import os
import sqlite3
import sys
import tempfile
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from deaddrop.config import ConfigManager, DeadDropConfig
from deaddrop.service import DeadDrop
from deaddrop.task_queue import SyncTaskQueue

SCHEMA = """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT,
        password TEXT,
        active INTEGER DEFAULT 1,
        created_at TEXT
    );

    CREATE TABLE posts (
        id INTEGER PRIMARY KEY,
        user_id INTEGER,
        title TEXT NOT NULL,
        body TEXT
    );
"""

USERS = [
    (1, 'Alice Johnson', 'alice@example.com', 'x1', 1, '2024-01-05 10:00:00'),
    (2, "Bob O'Brien", 'bob@example.com', 'x2', 1, '2024-02-10 11:30:00'),
    (3, 'Carol Davis', 'carol@example.com', 'x3', 0, '2024-03-15 09:15:00'),
    (4, 'David Wilson', 'david@example.com', 'x4', 1, '2024-04-20 16:45:00'),
    (5, 'Eve Brown', 'eve@example.com', 'x5', 1, '2024-05-25 08:00:00'),
]

POSTS = [
    (1, 1, 'Hello; world', "It's -- not a comment"),
    (2, 2, 'Second post', '/* also not a comment */'),
    (3, 1, 'Third', None),
]

TABLES = {
    'users': {
        'columns': ['id', 'name', 'email', 'active', 'created_at'],
        'censor': ['email'],
        'defaults': {'password': 'secret'},
    },
    'posts': {'columns': '*'},
    'sessions': False,
}


def create_schema(db_path: str):
    with sqlite3.connect(db_path) as conn:
        conn.executescript(SCHEMA)


def count_rows(db_path: str, table: str) -> int:
    with sqlite3.connect(db_path) as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep DEAD_DROP_* variables from the developer's shell out of tests"""
    for key in list(os.environ):
        if key.startswith('DEAD_DROP_'):
            monkeypatch.delenv(key, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def source_db(temp_dir):
    """Create and populate the source database"""
    db_path = str(temp_dir / 'source.db')
    create_schema(db_path)
    with sqlite3.connect(db_path) as conn:
        conn.executemany("INSERT INTO users VALUES (?, ?, ?, ?, ?, ?)", USERS)
        conn.executemany("INSERT INTO posts VALUES (?, ?, ?, ?)", POSTS)
    return db_path


@pytest.fixture
def target_db(temp_dir):
    """Create an empty target database with the source schema"""
    db_path = str(temp_dir / 'target.db')
    create_schema(db_path)
    return db_path


@pytest.fixture
def config_data(temp_dir, source_db, target_db):
    """Raw configuration document, as it would appear in a JSON file"""
    return {
        'default_connection': 'default',
        'connections': {
            'default': {'type': 'sqlite', 'path': source_db},
            'target': {'type': 'sqlite', 'path': target_db},
        },
        'output_path': str(temp_dir / 'exports'),
        'status_path': str(temp_dir / 'status.db'),
        'temp_path': str(temp_dir / 'tmp'),
        'tables': copy.deepcopy(TABLES),
        'storage': {
            'disk': 'local',
            'path': 'dead-drop',
            'disks': {
                'archive': {'driver': 'local', 'root': str(temp_dir / 'archive')},
            },
        },
        'censor': {'seed': 1234, 'password_rounds': 4},
    }


@pytest.fixture
def row_count():
    return count_rows


@pytest.fixture
def dead_drop_config(config_data):
    return DeadDropConfig.from_dict(config_data)


@pytest.fixture
def dead_drop(dead_drop_config):
    """Fully wired service; async work runs on the calling thread"""
    service = DeadDrop(dead_drop_config, task_queue=SyncTaskQueue())
    yield service
    service.close()


def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test component interaction"
    )
