#!/usr/bin/env python3
"""
SQL dialect names and identifier quoting shared by the query builder and
the upsert generator.
"""

DIALECT_ALIASES = {
    'sqlite': 'sqlite',
    'sqlite3': 'sqlite',
    'mysql': 'mysql',
    'mariadb': 'mariadb',
    'postgres': 'postgres',
    'postgresql': 'postgres',
    'pgsql': 'postgres',
}


def normalize_dialect(driver: str) -> str:
    """Map a driver name to sqlite, mysql, mariadb, postgres or itself"""
    name = (driver or '').strip().lower()
    return DIALECT_ALIASES.get(name, name)


def quote_identifier(name: str, dialect: str) -> str:
    """Quote a table or column name, doubling any embedded quote character"""
    if normalize_dialect(dialect) == 'postgres':
        return '"' + name.replace('"', '""') + '"'
    return '`' + name.replace('`', '``') + '`'
