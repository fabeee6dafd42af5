#!/usr/bin/env python3
"""
SQL Statement Parser - splits a dump into individual statements

Comments and statement boundaries are only recognised outside string
literals, so values containing ``;``, ``--`` or ``/*`` survive intact:

    parser = SqlStatementParser()
    parser.parse("INSERT INTO t (name) VALUES ('a;b'); INSERT INTO t (name) VALUES ('c');")
    # ["INSERT INTO t (name) VALUES ('a;b')", "INSERT INTO t (name) VALUES ('c')"]
"""

from typing import List

QUOTES = ("'", '"', '`')
IDENTIFIER_QUOTE = '`'


class SqlStatementParser:
    """Quote-aware comment stripping and ``;`` splitting.

    With ``backslash_escapes`` (MySQL style) a quote preceded by an odd
    number of backslashes does not close the literal. SQLite and standard
    PostgreSQL strings treat backslash as an ordinary character.

    Backtick-quoted identifiers are tracked like literals so names holding
    quotes or semicolons do not open a false string. Backslash never escapes
    inside them; a doubled backtick closes and reopens the identifier.
    """

    def __init__(self, backslash_escapes: bool = True):
        self.backslash_escapes = backslash_escapes

    def parse(self, sql: str) -> List[str]:
        return self.split_statements(self.strip_comments(sql))

    def _closes(self, sql: str, index: int) -> bool:
        if not self.backslash_escapes or sql[index] == IDENTIFIER_QUOTE:
            return True
        backslashes = 0
        j = index - 1
        while j >= 0 and sql[j] == '\\':
            backslashes += 1
            j -= 1
        return backslashes % 2 == 0

    def strip_comments(self, sql: str) -> str:
        """Remove ``--`` line comments, ``/* */`` block comments and blank lines"""
        out: List[str] = []
        quote = None
        at_line_start = True
        i = 0
        length = len(sql)

        while i < length:
            char = sql[i]

            if quote is not None:
                out.append(char)
                if char == quote and self._closes(sql, i):
                    quote = None
                i += 1
                continue

            if char in QUOTES:
                quote = char
                at_line_start = False
                out.append(char)
                i += 1
                continue

            if at_line_start and sql.startswith('--', i):
                end = sql.find('\n', i)
                i = length if end == -1 else end
                continue

            if sql.startswith('/*', i):
                end = sql.find('*/', i + 2)
                i = length if end == -1 else end + 2
                continue

            if char == '\n':
                at_line_start = True
            elif not char.isspace():
                at_line_start = False
            out.append(char)
            i += 1

        return self._drop_blank_lines(''.join(out)).strip()

    def _drop_blank_lines(self, sql: str) -> str:
        """Drop whitespace-only lines that sit outside string literals"""
        lines: List[str] = []
        quote = None
        for line in sql.split('\n'):
            if quote is None and not line.strip():
                continue
            lines.append(line)
            for i, char in enumerate(line):
                if quote is None:
                    if char in QUOTES:
                        quote = char
                elif char == quote and self._closes(line, i):
                    quote = None
        return '\n'.join(lines)

    def split_statements(self, sql: str) -> List[str]:
        """Split on ``;`` outside quotes; empty statements are discarded"""
        statements: List[str] = []
        current: List[str] = []
        quote = None

        for i, char in enumerate(sql):
            if char in QUOTES:
                if quote is None:
                    quote = char
                elif char == quote and self._closes(sql, i):
                    quote = None

            if char == ';' and quote is None:
                statements.append(''.join(current).strip())
                current = []
            else:
                current.append(char)

        tail = ''.join(current).strip()
        if tail:
            statements.append(tail)

        return [s for s in statements if s]
