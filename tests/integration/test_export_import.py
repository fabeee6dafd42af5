#!/usr/bin/env python3
"""
End-to-end export and import against real SQLite databases
"""

import sqlite3
from datetime import datetime

import bcrypt
import pytest

from deaddrop.errors import ConfigurationError, SourceNotFoundError
from deaddrop.request_types import ExportRequest, ImportRequest
from deaddrop.service import DeadDrop
from deaddrop.statement_parser import SqlStatementParser
from deaddrop.task_queue import SyncTaskQueue

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5)


@pytest.fixture
def exporter(dead_drop):
    dead_drop.exporter.clock = lambda: FIXED_NOW
    return dead_drop.exporter


@pytest.fixture
def importer(dead_drop):
    return dead_drop.importer


def fetch_all(db_path, sql):
    with sqlite3.connect(db_path) as conn:
        return conn.execute(sql).fetchall()


class TestSingleTableExport:

    def test_file_header_and_rows(self, exporter, temp_dir):
        result = exporter.export('posts')

        assert result.table == 'posts'
        assert result.records == 3
        assert result.file == str(temp_dir / 'exports' / 'posts.sql')
        assert result.cloud_path is None

        lines = open(result.file, encoding='utf-8').read().splitlines()
        assert lines[0] == '-- Table: posts'
        assert lines[1] == '-- Exported: 2024-01-02 03:04:05'
        assert lines[2] == '-- Format: upsert (safe for re-import)'
        assert lines[3] == ''
        assert lines[4].startswith('INSERT OR REPLACE INTO `posts`')
        assert len(lines) == 7
        assert result.size == len(open(result.file, 'rb').read())

    def test_limit_override(self, exporter):
        assert exporter.count_records('users', overrides={'limit': 2}) == 2
        assert exporter.count_records('users', overrides={'limit': 50}) == 5
        assert exporter.export('users', overrides={'limit': 2}).records == 2

    def test_where_override(self, exporter):
        overrides = {'where': [['active', '=', 1]]}
        assert exporter.count_records('users', overrides=overrides) == 4
        assert exporter.export('users', overrides=overrides).records == 4

    def test_disabled_and_unconfigured_tables(self, exporter):
        with pytest.raises(ConfigurationError, match="disabled"):
            exporter.export('sessions')
        with pytest.raises(ConfigurationError, match="not configured"):
            exporter.export('audit_log')

    def test_export_all_skips_disabled(self, exporter):
        results = exporter.export_all()
        assert [r.table for r in results] == ['users', 'posts']
        assert exporter.count_all_records() == 8

    def test_progress_reported_every_hundred_rows(self, dead_drop, source_db):
        with sqlite3.connect(source_db) as conn:
            conn.executemany("INSERT INTO posts (id, user_id, title) VALUES (?, 1, 'bulk')",
                             [(i,) for i in range(100, 347)])
        calls = []
        dead_drop.exporter.export_table('posts', 'default', dead_drop.config.output_path,
                                        progress_callback=calls.append)
        assert calls == [100, 200, 250]


class TestSingleFileExport:

    def test_combined_file(self, exporter, temp_dir):
        progress = []
        result = exporter.export_all_to_single_file(progress_callback=progress.append)

        assert result.file == str(temp_dir / 'exports' / 'database-export-2024-01-02-030405.sql')
        assert result.tables == ['users', 'posts']
        assert result.total_records == 8
        assert result.table_records == {'users': 5, 'posts': 3}
        assert progress[-1] == 8
        assert progress == sorted(progress)

        content = open(result.file, encoding='utf-8').read()
        assert content.startswith(
            "-- Dead Drop Export\n"
            "-- Exported: 2024-01-02 03:04:05\n"
            "-- Connection: default\n"
            "-- Tables: 2\n"
        )
        assert "\n-- Table: users\n" in content
        assert "\n-- Table: posts\n" in content
        assert content.endswith("\n-- Export complete: 8 records\n")

    def test_filters_written_to_banner(self, exporter):
        result = exporter.export_tables_to_single_file(
            ['users'], exporter.config.output_path, overrides={'where': [['active', '=', 1]]})
        content = open(result.file, encoding='utf-8').read()
        assert "-- Filters: active = 1\n" in content
        assert result.total_records == 4

    def test_no_tables(self, exporter):
        with pytest.raises(ConfigurationError):
            exporter.export_tables_to_single_file([], exporter.config.output_path)

    def test_failed_export_leaves_no_file(self, dead_drop, temp_dir):
        dead_drop.resolver.tables['ghosts'] = {}

        with pytest.raises(sqlite3.OperationalError):
            dead_drop.exporter.export_tables_to_single_file(['users', 'ghosts'], temp_dir / 'exports')

        assert list((temp_dir / 'exports').glob('*.sql')) == []

    def test_export_request(self, dead_drop):
        request = ExportRequest.builder().table('posts').limit(1).build(dead_drop.config)
        assert dead_drop.exporter.count_request(request) == 1
        assert dead_drop.exporter.export_request(request).total_records == 1


class TestCensoringAndDefaults:

    def test_censored_export(self, exporter, source_db):
        result = exporter.export('users')
        statements = SqlStatementParser(backslash_escapes=False).parse(open(result.file).read())
        assert len(statements) == 5

        content = open(result.file, encoding='utf-8').read()
        for _, name, email, *_ in fetch_all(source_db, "SELECT * FROM users"):
            assert email not in content
            assert name.replace("'", "''") in content
        assert "'secret'" not in content


class TestRoundTrip:

    def test_export_then_import(self, exporter, importer, source_db, target_db):
        dump = exporter.export_all_to_single_file()
        result = importer.import_from_file(dump.file, 'target')

        assert result.failed == 0
        assert result.executed == result.total == 8

        source_users = fetch_all(source_db, "SELECT id, name, active, created_at FROM users ORDER BY id")
        target_users = fetch_all(target_db, "SELECT id, name, active, created_at FROM users ORDER BY id")
        assert target_users == source_users

        source_emails = {row[0] for row in fetch_all(source_db, "SELECT email FROM users")}
        for email, password in fetch_all(target_db, "SELECT email, password FROM users"):
            assert email not in source_emails
            assert bcrypt.checkpw(b'secret', password.encode('utf-8'))

        assert fetch_all(target_db, "SELECT * FROM posts ORDER BY id") == \
            fetch_all(source_db, "SELECT * FROM posts ORDER BY id")

    def test_reimport_is_idempotent(self, exporter, importer, target_db, row_count):
        dump = exporter.export_all_to_single_file()

        importer.import_from_file(dump.file, 'target')
        snapshot = fetch_all(target_db, "SELECT * FROM users ORDER BY id")
        second = importer.import_from_file(dump.file, 'target')

        assert second.failed == 0
        assert row_count(target_db, 'users') == 5
        assert row_count(target_db, 'posts') == 3
        assert fetch_all(target_db, "SELECT * FROM users ORDER BY id") == snapshot

    def test_quoted_column_names_round_trip(self, dead_drop, exporter, importer,
                                            source_db, target_db, row_count):
        schema = "CREATE TABLE notes (id INTEGER PRIMARY KEY, `it's` TEXT, `say \"hi\"` TEXT)"
        for db_path in (source_db, target_db):
            with sqlite3.connect(db_path) as conn:
                conn.execute(schema)
        with sqlite3.connect(source_db) as conn:
            conn.executemany("INSERT INTO notes VALUES (?, ?, ?)", [
                (1, 'plain', 'one'),
                (2, 'semi; colon', 'tick ` mark'),
                (3, "it's", '-- not a comment'),
            ])
        dead_drop.resolver.tables['notes'] = {'columns': '*'}

        result = importer.import_from_file(exporter.export('notes').file, 'target')

        assert (result.executed, result.failed, result.total) == (3, 0, 3)
        assert row_count(target_db, 'notes') == 3
        assert fetch_all(target_db, "SELECT * FROM notes ORDER BY id") == \
            fetch_all(source_db, "SELECT * FROM notes ORDER BY id")

    def test_existing_rows_are_updated(self, exporter, importer, target_db):
        with sqlite3.connect(target_db) as conn:
            conn.execute("INSERT INTO posts (id, user_id, title) VALUES (1, 9, 'stale')")

        importer.import_from_file(exporter.export('posts').file, 'target')

        assert fetch_all(target_db, "SELECT user_id, title FROM posts WHERE id = 1") == [(1, 'Hello; world')]


class TestImporter:

    def test_missing_file(self, importer, temp_dir):
        with pytest.raises(SourceNotFoundError):
            importer.import_from_file(temp_dir / 'missing.sql', 'target')

    def test_sqlite_parser_keeps_backslashes_literal(self, importer):
        assert importer.parser_for('target').backslash_escapes is False

    def test_trailing_backslash_value(self, importer, temp_dir, target_db):
        dump = temp_dir / 'paths.sql'
        dump.write_text("INSERT INTO posts (id, user_id, title) VALUES (1, 1, 'C:\\');\n"
                        "INSERT INTO posts (id, user_id, title) VALUES (2, 1, 'D:\\');\n")

        result = importer.import_from_file(dump, 'target')

        assert (result.executed, result.failed) == (2, 0)
        assert fetch_all(target_db, "SELECT title FROM posts ORDER BY id") == [('C:\\',), ('D:\\',)]

    def test_cloud_import(self, exporter, importer, temp_dir, target_db, row_count):
        dump = exporter.export('posts')
        archive = importer.downloader.registry.get('archive')
        archive.put('dumps/posts.sql', open(dump.file, 'rb').read())

        result = importer.import_request(ImportRequest.from_cloud('dumps/posts.sql', 'target', 'archive'))

        assert result.source == 'dumps/posts.sql'
        assert result.executed == 3
        assert row_count(target_db, 'posts') == 3
        assert list((temp_dir / 'tmp').iterdir()) == []

    def test_cloud_import_missing_file(self, importer):
        with pytest.raises(SourceNotFoundError):
            importer.import_from_cloud('dumps/none.sql', 'archive', 'target')


class TestCloudUpload:

    def test_export_uploaded_to_configured_disk(self, dead_drop_config, temp_dir):
        dead_drop_config.storage['disk'] = 'archive'
        dead_drop_config.storage['delete_local_after_upload'] = True
        service = DeadDrop(dead_drop_config, task_queue=SyncTaskQueue())
        try:
            result = service.exporter.export('posts')
        finally:
            service.close()

        assert result.cloud_path == 'dead-drop/posts.sql'
        assert result.storage_disk == 'archive'
        assert result.local_deleted is True
        assert not (temp_dir / 'exports' / 'posts.sql').exists()
        assert (temp_dir / 'archive' / 'dead-drop' / 'posts.sql').exists()
