#!/usr/bin/env python3
"""
Export query builder tests
"""

from datetime import datetime

import pytest

from deaddrop.query_builder import QueryBuilder
from deaddrop.table_config import TableConfig


def test_sqlite_query_with_filters_and_limit():
    config = TableConfig.from_dict({
        'columns': ['id', 'name'],
        'where': [['active', '=', 1]],
        'limit': 10,
    })
    query = QueryBuilder('sqlite').build('users', config)

    assert query.sql == "SELECT `id`, `name` FROM `users` WHERE `active` = ? ORDER BY `id` ASC LIMIT 10"
    assert query.params == (1,)
    assert query.count_sql == "SELECT COUNT(*) FROM `users` WHERE `active` = ?"
    assert query.count_params == (1,)
    assert query.limit == 10


def test_postgres_query_uses_format_placeholders():
    config = TableConfig.from_dict({
        'where': [['status', 'IN', ['new', 'open']], ['age', '>=', 21]],
        'order_by': 'created_at DESC',
    })
    query = QueryBuilder('postgresql', 'format').build('tickets', config)

    assert query.sql == ('SELECT * FROM "tickets" WHERE "status" IN (%s, %s) AND "age" >= %s '
                         'ORDER BY "created_at" DESC')
    assert query.params == ('new', 'open', 21)


def test_primary_key_order_when_unordered():
    config = TableConfig.from_dict({'primary_key': 'uuid'})
    query = QueryBuilder('mysql', 'format').build('events', config)
    assert query.sql == "SELECT * FROM `events` ORDER BY `uuid` ASC"
    assert query.params == ()


def test_null_comparisons():
    config = TableConfig.from_dict({'where': [['deleted_at', '=', None], ['parent_id', '!=', None]]})
    query = QueryBuilder('sqlite').build('nodes', config)
    assert "`deleted_at` IS NULL AND `parent_id` IS NOT NULL" in query.sql
    assert query.params == ()


def test_datetime_values_bound_as_text_for_sqlite():
    config = TableConfig.from_dict({'where': [['created_at', '>=', datetime(2024, 1, 2, 3, 4, 5)]]})
    query = QueryBuilder('sqlite').build('users', config)
    assert query.params == ('2024-01-02 03:04:05',)


def test_identifiers_are_escaped():
    config = TableConfig.from_dict({'columns': ['we`ird']})
    query = QueryBuilder('sqlite').build('t', config)
    assert query.sql.startswith("SELECT `we``ird` FROM `t`")


def test_unknown_param_style():
    with pytest.raises(ValueError):
        QueryBuilder('sqlite', 'named')
