#!/usr/bin/env python3
"""
Table Writer - streams one table into an open SQL dump
"""

import logging
from typing import Callable, Optional, TextIO

from deaddrop.database_manager import DatabaseAdapter
from deaddrop.query_builder import ExportQuery
from deaddrop.row_transformer import RowTransformer
from deaddrop.table_config import TableConfig
from deaddrop.upsert_generator import UpsertSqlGenerator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class TableWriter:
    """Fetches rows chunk by chunk, transforms them and writes one upsert per line.

    Memory use is bounded by ``chunk_size`` rows regardless of table size.
    """

    def __init__(self, transformer: RowTransformer, chunk_size: int = 1000,
                 progress_interval: int = 100, batch_size: int = 100):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.transformer = transformer
        self.chunk_size = chunk_size
        self.progress_interval = progress_interval
        self.batch_size = batch_size

    def write(self, table: str, query: ExportQuery, sink: TextIO, config: TableConfig,
              adapter: DatabaseAdapter, progress_callback: Optional[ProgressCallback] = None,
              primary_key: Optional[str] = None) -> int:
        """Write every row of ``query`` to ``sink`` and return the row count"""
        generator = UpsertSqlGenerator(
            quoter=adapter.quote_string,
            primary_key=primary_key or config.primary_key,
            batch_size=self.batch_size,
        )
        dialect = adapter.dialect

        record_count = 0
        last_reported = 0
        for chunk in adapter.iter_chunks(query.sql, query.params, self.chunk_size):
            for row in chunk:
                transformed = self.transformer.transform(row, config)
                sink.write(generator.for_row(table, transformed, dialect) + "\n")
                record_count += 1

                if progress_callback and record_count % self.progress_interval == 0:
                    progress_callback(record_count)
                    last_reported = record_count

            logger.debug(f"{table}: {record_count} rows written")

        if progress_callback and record_count and record_count != last_reported:
            progress_callback(record_count)

        return record_count
