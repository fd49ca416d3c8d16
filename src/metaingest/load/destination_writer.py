"""
Destination Writer - Load Layer

Truncate-and-load and append-load of polars batches into destination tables.
"""

import threading
from abc import ABC, abstractmethod
from typing import Optional

import duckdb
import polars as pl
import logging

from ..coreutils.errors import DataTransferError
from ..coreutils.sql import connect, qualified_name, quote_identifier, translate_error

logger = logging.getLogger(__name__)


class DestinationWriter(ABC):
    """Destination side of a copy"""

    @abstractmethod
    def truncate(self, schema: str, table: str) -> None:
        """Remove all rows from a destination table (missing tables are fine)"""

    @abstractmethod
    def write_batch(self, schema: str, table: str, df: pl.DataFrame) -> int:
        """Append a batch, creating the table from the batch schema if needed"""

    @abstractmethod
    def count_rows(self, schema: str, table: str) -> int:
        """Rows currently in a destination table (0 when it does not exist)"""


class DuckDBDestinationWriter(DestinationWriter):
    """Destination tables stored in a DuckDB database"""

    BATCH_VIEW = "_metaingest_batch"

    def __init__(
        self,
        database: str = ":memory:",
        connection: Optional[duckdb.DuckDBPyConnection] = None,
    ):
        self.database = database
        self._owns_connection = connection is None
        self._conn = connection if connection is not None else connect(database)
        self._ddl_lock = threading.Lock()

    def close(self):
        if self._owns_connection:
            self._conn.close()

    def _table_exists(self, cursor, schema: str, table: str) -> bool:
        cursor.execute(
            """
            SELECT 1 FROM information_schema.tables
            WHERE table_schema = ? AND table_name = ?
            """,
            [schema, table],
        )
        return cursor.fetchone() is not None

    def truncate(self, schema: str, table: str) -> None:
        cursor = self._conn.cursor()
        try:
            if self._table_exists(cursor, schema, table):
                cursor.execute(f"TRUNCATE {qualified_name(schema, table)}")
                logger.info(f"🧹 Truncated {schema}.{table}")
        except duckdb.Error as e:
            raise translate_error(e, DataTransferError, f"truncate {schema}.{table}") from e
        finally:
            cursor.close()

    def write_batch(self, schema: str, table: str, df: pl.DataFrame) -> int:
        """
        Append a batch of rows

        Args:
            schema: Destination schema (created if missing)
            table: Destination table (created from the batch schema if missing)
            df: Rows to append

        Returns:
            int: Number of rows written
        """
        if df.height == 0:
            return 0

        target = qualified_name(schema, table)
        cursor = self._conn.cursor()
        try:
            cursor.register(self.BATCH_VIEW, df)
            with self._ddl_lock:
                cursor.execute(f"CREATE SCHEMA IF NOT EXISTS {quote_identifier(schema)}")
                cursor.execute(
                    f"CREATE TABLE IF NOT EXISTS {target} AS SELECT * FROM {self.BATCH_VIEW} LIMIT 0"
                )
            cursor.execute(f"INSERT INTO {target} BY NAME SELECT * FROM {self.BATCH_VIEW}")
            logger.debug(f"Wrote {df.height} rows to {schema}.{table}")
            return df.height
        except duckdb.Error as e:
            raise translate_error(e, DataTransferError, f"write to {schema}.{table}") from e
        finally:
            cursor.close()

    def count_rows(self, schema: str, table: str) -> int:
        cursor = self._conn.cursor()
        try:
            if not self._table_exists(cursor, schema, table):
                return 0
            cursor.execute(f"SELECT COUNT(*) FROM {qualified_name(schema, table)}")
            return cursor.fetchone()[0]
        except duckdb.Error as e:
            raise translate_error(e, DataTransferError, f"count {schema}.{table}") from e
        finally:
            cursor.close()
