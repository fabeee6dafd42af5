#!/usr/bin/env python3
"""
Table configuration: parsing, override merging and resolution
"""

import unittest

from deaddrop.errors import ConfigurationError
from deaddrop.table_config import (
    WILDCARD,
    ExportOverrides,
    OrderBy,
    TableConfig,
    TableConfigResolver,
    WhereCondition,
    merge_overrides,
)


class TestWhereCondition(unittest.TestCase):

    def test_two_element_condition_defaults_to_equals(self):
        condition = WhereCondition.from_value(['status', 'active'])
        self.assertEqual(condition, WhereCondition('status', '=', 'active'))

    def test_operator_is_normalized(self):
        condition = WhereCondition.from_value(['name', 'not   like', 'a%'])
        self.assertEqual(condition.operator, 'NOT LIKE')

    def test_dict_condition(self):
        condition = WhereCondition.from_value({'column': 'age', 'operator': '>', 'value': 30})
        self.assertEqual((condition.column, condition.operator, condition.value), ('age', '>', 30))

    def test_unknown_operator_rejected(self):
        with self.assertRaises(ConfigurationError):
            WhereCondition.from_value(['id', '===', 1])

    def test_in_requires_list(self):
        with self.assertRaises(ConfigurationError):
            WhereCondition.from_value(['id', 'IN', 5])
        condition = WhereCondition.from_value(['id', 'in', [1, 2]])
        self.assertEqual(condition.value, (1, 2))

    def test_malformed_condition_rejected(self):
        with self.assertRaises(ConfigurationError):
            WhereCondition.from_value(['only-one'])


class TestOrderBy(unittest.TestCase):

    def test_parse_forms(self):
        self.assertEqual(OrderBy.parse('created_at'), OrderBy('created_at', 'ASC'))
        self.assertEqual(OrderBy.parse('created_at desc'), OrderBy('created_at', 'DESC'))
        self.assertEqual(OrderBy.parse(['name', 'DESC']), OrderBy('name', 'DESC'))
        self.assertEqual(OrderBy.parse({'column': 'id'}), OrderBy('id', 'ASC'))

    def test_bad_direction(self):
        with self.assertRaises(ConfigurationError):
            OrderBy.parse('name SIDEWAYS')


class TestTableConfig(unittest.TestCase):

    def test_empty_config_selects_everything(self):
        config = TableConfig.from_dict({})
        self.assertTrue(config.selects_all)
        self.assertEqual(config.where, ())
        self.assertIsNone(config.limit)
        self.assertEqual(config.primary_key, 'id')

    def test_censor_list_and_mapping(self):
        self.assertEqual(TableConfig.from_dict({'censor': ['email', 'phone']}).censor,
                         {'email': None, 'phone': None})
        self.assertEqual(TableConfig.from_dict({'censor': {'bio': 'sentence'}}).censor,
                         {'bio': 'sentence'})

    def test_negative_limit_rejected(self):
        with self.assertRaises(ConfigurationError):
            TableConfig.from_dict({'limit': -1})

    def test_default_shadowed_by_exported_column_is_reported(self):
        config = TableConfig.from_dict({'columns': ['id', 'password'], 'defaults': {'password': 'x'}})
        problems = config.problems()
        self.assertEqual(len(problems), 1)
        self.assertIn('password', problems[0])

    def test_describe_filters(self):
        config = TableConfig.from_dict({'where': [['active', 1], ['age', '>', 18]]})
        self.assertEqual(config.describe_filters(), 'active = 1, age > 18')


class TestMergeOverrides(unittest.TestCase):

    def setUp(self):
        self.base = TableConfig.from_dict({
            'columns': ['id', 'name'],
            'where': [['active', '=', 1]],
            'limit': 100,
            'censor': ['name'],
        })

    def test_where_is_appended_and_limit_replaced(self):
        overrides = ExportOverrides.from_dict({'where': [['age', '>', 30]], 'limit': 5})
        merged = merge_overrides(self.base, overrides)

        self.assertEqual([w.column for w in merged.where], ['active', 'age'])
        self.assertEqual(merged.limit, 5)
        self.assertEqual(merged.columns, ('id', 'name'))
        self.assertEqual(merged.censor, {'name': None})

    def test_columns_replaced(self):
        merged = merge_overrides(self.base, ExportOverrides.from_dict({'columns': '*'}))
        self.assertEqual(merged.columns, WILDCARD)

    def test_base_is_untouched(self):
        merge_overrides(self.base, ExportOverrides.from_dict({'where': [['x', 1]], 'limit': 1}))
        self.assertEqual(len(self.base.where), 1)
        self.assertEqual(self.base.limit, 100)

    def test_no_overrides(self):
        self.assertIs(merge_overrides(self.base, None), self.base)
        self.assertTrue(ExportOverrides.from_dict({}).is_empty())

    def test_overrides_round_trip_through_plain_data(self):
        overrides = ExportOverrides.from_dict({
            'where': [['id', 'IN', [1, 2]]],
            'order_by': 'name DESC',
            'limit': 3,
        })
        self.assertEqual(ExportOverrides.from_dict(overrides.to_dict()), overrides)


class TestTableConfigResolver(unittest.TestCase):

    def setUp(self):
        self.resolver = TableConfigResolver({
            'users': {'columns': ['id', 'email'], 'limit': 10},
            'posts': True,
            'sessions': False,
        })

    def test_enabled_tables_skip_disabled(self):
        self.assertEqual(self.resolver.enabled_tables(), ['users', 'posts'])
        self.assertTrue(self.resolver.is_configured('sessions'))
        self.assertFalse(self.resolver.is_enabled('sessions'))

    def test_disabled_table_message(self):
        with self.assertRaises(ConfigurationError) as ctx:
            self.resolver.resolve('sessions')
        self.assertEqual(ctx.exception.message, "Table 'sessions' is disabled for export")

    def test_unconfigured_table_message(self):
        with self.assertRaises(ConfigurationError) as ctx:
            self.resolver.resolve('audit_log')
        self.assertEqual(ctx.exception.message, "Table 'audit_log' is not configured for export")

    def test_resolve_with_plain_overrides(self):
        config = self.resolver.resolve('users', {'limit': 2})
        self.assertEqual(config.limit, 2)
        self.assertEqual(config.columns, ('id', 'email'))

    def test_true_means_defaults(self):
        self.assertTrue(self.resolver.resolve('posts').selects_all)


if __name__ == '__main__':
    unittest.main()
