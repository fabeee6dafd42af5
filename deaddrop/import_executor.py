#!/usr/bin/env python3
"""
Import Executor - replays parsed statements in one transaction
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Sequence

from deaddrop.database_manager import DatabaseManager
from deaddrop.errors import StatementExecutionError, TransactionError

logger = logging.getLogger(__name__)

STATEMENT_PREVIEW_LENGTH = 100


@dataclass(frozen=True)
class StatementError:
    statement: str
    error: str


@dataclass(frozen=True)
class ImportResult:
    source: str
    executed: int
    failed: int
    total: int
    errors: List[StatementError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ImportExecutor:
    """Runs every statement inside a single transaction.

    A failing statement is recorded and skipped. Only a failed commit
    aborts the import, after rolling everything back.
    """

    def __init__(self, database: DatabaseManager):
        self.database = database

    def execute(self, statements: Sequence[str], connection: str, source: str) -> ImportResult:
        adapter = self.database.get_adapter(connection)
        executed = 0
        errors: List[StatementError] = []

        logger.info(f"Importing {len(statements)} statements from {source} into {connection}")

        try:
            with adapter.transaction() as cursor:
                for statement in statements:
                    if not statement.strip():
                        continue
                    try:
                        adapter.execute(cursor, statement)
                        executed += 1
                    except StatementExecutionError as e:
                        logger.debug(f"Statement failed: {e.message}")
                        errors.append(StatementError(
                            statement=statement[:STATEMENT_PREVIEW_LENGTH] + '...',
                            error=e.message,
                        ))
        except TransactionError as e:
            raise TransactionError(f"Import failed: {e.message}", {'source': source}) from e

        if errors:
            logger.warning(f"Import from {source} finished with {len(errors)} failed statements")
        else:
            logger.info(f"Import from {source} finished: {executed} statements executed")

        return ImportResult(
            source=source,
            executed=executed,
            failed=len(errors),
            total=len(statements),
            errors=errors,
        )
