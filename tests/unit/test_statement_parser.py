#!/usr/bin/env python3
"""
SQL statement parser tests
"""

import unittest

from deaddrop.statement_parser import SqlStatementParser


class TestStatementSplitting(unittest.TestCase):

    def setUp(self):
        self.parser = SqlStatementParser()

    def test_semicolon_inside_literal(self):
        sql = "INSERT INTO t (name) VALUES ('a;b'); INSERT INTO t (name) VALUES ('c');"
        self.assertEqual(self.parser.parse(sql), [
            "INSERT INTO t (name) VALUES ('a;b')",
            "INSERT INTO t (name) VALUES ('c')",
        ])

    def test_trailing_statement_without_semicolon(self):
        self.assertEqual(self.parser.parse("SELECT 1; SELECT 2"), ["SELECT 1", "SELECT 2"])

    def test_empty_statements_discarded(self):
        self.assertEqual(self.parser.parse(";;  ;\nSELECT 1;;"), ["SELECT 1"])
        self.assertEqual(self.parser.parse(""), [])

    def test_doubled_quotes(self):
        sql = "INSERT INTO t VALUES ('it''s; fine');"
        self.assertEqual(self.parser.parse(sql), ["INSERT INTO t VALUES ('it''s; fine')"])

    def test_double_quoted_identifiers(self):
        sql = 'INSERT INTO "odd;name" VALUES (1);'
        self.assertEqual(self.parser.parse(sql), ['INSERT INTO "odd;name" VALUES (1)'])

    def test_backtick_identifiers_hide_quotes(self):
        sql = ("INSERT INTO `notes` (`id`, `it's`) VALUES (1, 'a;b');\n"
               "INSERT INTO `notes` (`id`, `say \"hi\"`) VALUES (2, 'c');")
        self.assertEqual(self.parser.parse(sql), [
            "INSERT INTO `notes` (`id`, `it's`) VALUES (1, 'a;b')",
            "INSERT INTO `notes` (`id`, `say \"hi\"`) VALUES (2, 'c')",
        ])

    def test_doubled_backtick_stays_inside_identifier(self):
        sql = "INSERT INTO `odd``;name` VALUES (1); SELECT 2;"
        self.assertEqual(self.parser.parse(sql), ["INSERT INTO `odd``;name` VALUES (1)", "SELECT 2"])

    def test_backslash_does_not_escape_backtick(self):
        sql = "INSERT INTO `dir\\` VALUES ('x'); SELECT 2;"
        self.assertEqual(self.parser.parse(sql), ["INSERT INTO `dir\\` VALUES ('x')", "SELECT 2"])

    def test_comment_markers_inside_backticks(self):
        sql = "INSERT INTO `a--b` (`c/*d*/`) VALUES (1);"
        self.assertEqual(self.parser.parse(sql), ["INSERT INTO `a--b` (`c/*d*/`) VALUES (1)"])


class TestCommentStripping(unittest.TestCase):

    def setUp(self):
        self.parser = SqlStatementParser()

    def test_dump_header_and_block_comments(self):
        sql = (
            "-- Dead Drop Export\n"
            "-- Tables: 2\n"
            "\n"
            "INSERT INTO a VALUES (1);\n"
            "/* separator */\n"
            "INSERT INTO b VALUES (2);\n"
            "-- Export complete: 2 records\n"
        )
        self.assertEqual(self.parser.parse(sql), ["INSERT INTO a VALUES (1)", "INSERT INTO b VALUES (2)"])

    def test_comment_markers_inside_literals_survive(self):
        sql = "INSERT INTO t VALUES ('x -- y', '/* z */');"
        self.assertEqual(self.parser.parse(sql), ["INSERT INTO t VALUES ('x -- y', '/* z */')"])

    def test_multiline_literal_keeps_blank_lines(self):
        sql = "INSERT INTO t VALUES ('line one\n\n-- line three');"
        self.assertEqual(self.parser.parse(sql), ["INSERT INTO t VALUES ('line one\n\n-- line three')"])

    def test_inline_block_comment(self):
        self.assertEqual(self.parser.parse("SELECT /* hint */ 1;"), ["SELECT  1"])


class TestBackslashEscapes(unittest.TestCase):

    def test_escaped_quote_does_not_close_literal(self):
        parser = SqlStatementParser(backslash_escapes=True)
        sql = "INSERT INTO t VALUES ('it\\'s; fine'); SELECT 1;"
        self.assertEqual(parser.parse(sql), ["INSERT INTO t VALUES ('it\\'s; fine')", "SELECT 1"])

    def test_even_backslashes_close_literal(self):
        parser = SqlStatementParser(backslash_escapes=True)
        sql = "INSERT INTO t VALUES ('C:\\\\'); SELECT 1;"
        self.assertEqual(parser.parse(sql), ["INSERT INTO t VALUES ('C:\\\\')", "SELECT 1"])

    def test_backslash_is_plain_character_without_escapes(self):
        parser = SqlStatementParser(backslash_escapes=False)
        sql = "INSERT INTO t VALUES ('C:\\'); SELECT 1;"
        self.assertEqual(parser.parse(sql), ["INSERT INTO t VALUES ('C:\\')", "SELECT 1"])


if __name__ == '__main__':
    unittest.main()
