#!/usr/bin/env python3
"""
Row transformer tests: default injection and censoring
"""

import unittest
from unittest.mock import MagicMock

import bcrypt

from deaddrop.row_transformer import (
    PLACEHOLDER,
    FakeDataKind,
    RowTransformer,
    kind_for_column,
    kind_for_method,
)
from deaddrop.table_config import TableConfig


class TestGeneratorLookup(unittest.TestCase):

    def test_column_names(self):
        self.assertEqual(kind_for_column('email'), FakeDataKind.SAFE_EMAIL)
        self.assertEqual(kind_for_column('Phone'), FakeDataKind.PHONE_NUMBER)
        self.assertEqual(kind_for_column('favourite_colour'), FakeDataKind.WORD)

    def test_method_names(self):
        self.assertEqual(kind_for_method('safeEmail'), FakeDataKind.SAFE_EMAIL)
        self.assertEqual(kind_for_method('phone_number'), FakeDataKind.PHONE_NUMBER)
        self.assertEqual(kind_for_method('jobTitle'), FakeDataKind.JOB)
        self.assertEqual(kind_for_method('doesNotExist'), FakeDataKind.WORD)


class TestRowTransformer(unittest.TestCase):

    def setUp(self):
        self.transformer = RowTransformer(seed=42, password_rounds=4)
        self.row = {'id': 7, 'name': 'Alice', 'email': 'alice@example.com', 'bio': 'hi'}

    def test_censored_field_replaced_others_identical(self):
        config = TableConfig.from_dict({'censor': ['email']})
        result = self.transformer.transform(self.row, config)

        self.assertNotEqual(result['email'], 'alice@example.com')
        self.assertIn('@', result['email'])
        self.assertEqual(result['id'], 7)
        self.assertEqual(result['name'], 'Alice')
        self.assertEqual(result['bio'], 'hi')

    def test_input_row_not_mutated(self):
        original = dict(self.row)
        config = TableConfig.from_dict({'censor': ['email', 'name'], 'defaults': {'role': 'user'}})
        self.transformer.transform(self.row, config)
        self.assertEqual(self.row, original)

    def test_censor_skips_absent_columns(self):
        config = TableConfig.from_dict({'censor': ['phone']})
        result = self.transformer.transform(self.row, config)
        self.assertNotIn('phone', result)

    def test_defaults_fill_missing_columns_only(self):
        config = TableConfig.from_dict({'defaults': {'role': 'user', 'name': 'Nobody'}})
        result = self.transformer.transform(self.row, config)
        self.assertEqual(result['role'], 'user')
        self.assertEqual(result['name'], 'Alice')

    def test_password_default_is_bcrypt_hashed(self):
        config = TableConfig.from_dict({'defaults': {'password': 'secret'}})
        result = self.transformer.transform(self.row, config)

        self.assertNotEqual(result['password'], 'secret')
        self.assertTrue(result['password'].startswith('$2'))
        self.assertTrue(bcrypt.checkpw(b'secret', result['password'].encode('utf-8')))

    def test_password_hash_reused_for_same_literal(self):
        self.assertEqual(self.transformer.hash_password('secret'), self.transformer.hash_password('secret'))

    def test_defaults_applied_before_censor(self):
        config = TableConfig.from_dict({'defaults': {'city': 'Springfield'}, 'censor': ['city']})
        result = self.transformer.transform(self.row, config)
        self.assertNotEqual(result['city'], 'Springfield')

    def test_explicit_method(self):
        faker = MagicMock()
        faker.company.return_value = 'ACME Ltd'
        transformer = RowTransformer(faker=faker)

        result = transformer.transform(self.row, TableConfig.from_dict({'censor': {'bio': 'company'}}))
        self.assertEqual(result['bio'], 'ACME Ltd')

    def test_generator_failure_yields_placeholder(self):
        faker = MagicMock()
        faker.safe_email.side_effect = RuntimeError("provider exploded")
        transformer = RowTransformer(faker=faker)

        result = transformer.transform(self.row, TableConfig.from_dict({'censor': ['email']}))
        self.assertEqual(result['email'], PLACEHOLDER)
        self.assertEqual(result['name'], 'Alice')


if __name__ == '__main__':
    unittest.main()
