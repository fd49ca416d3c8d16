"""
Source Reader - Extract Layer

Full and watermark-filtered scans of source tables, streamed as polars
DataFrames of at most batch_size rows.
"""

from abc import ABC, abstractmethod
from typing import Iterator, List, Optional, Tuple

import duckdb
import polars as pl
import logging

from ..coreutils.errors import DataTransferError
from ..coreutils.sql import connect, qualified_name, quote_identifier, translate_error
from ..transformation.schemas import TableJob

logger = logging.getLogger(__name__)

CATALOG_SCHEMA = pl.Schema([("table_schema", pl.String()), ("table_name", pl.String())])


class SourceReader(ABC):
    """Source side of a copy"""

    @abstractmethod
    def read_batches(
        self, job: TableJob, since: Optional[str] = None, batch_size: int = 50_000
    ) -> Iterator[pl.DataFrame]:
        """Yield source rows, only those with watermark_column > since when given"""

    @abstractmethod
    def count_rows(self, job: TableJob, since: Optional[str] = None) -> int:
        """Count the rows read_batches would return"""

    @abstractmethod
    def list_tables(self, schemas: Optional[List[str]] = None) -> pl.DataFrame:
        """Base tables of the source catalog (table_schema, table_name)"""


def build_scan_query(job: TableJob, since: Optional[str] = None) -> Tuple[str, List[str]]:
    """
    SQL for a full or incremental scan of a job's source table

    Args:
        job: Table job
        since: Exclusive lower bound on the watermark column (None = all rows)

    Returns:
        Tuple: (sql, params)
    """
    sql = f"SELECT * FROM {qualified_name(job.source_schema, job.source_table)}"
    if since is None:
        return sql, []
    if not job.watermark_column:
        raise DataTransferError(f"{job.source_name}: incremental scan without a watermark column")
    return f"{sql} WHERE {quote_identifier(job.watermark_column)} > ?", [since]


class DuckDBSourceReader(SourceReader):
    """Source tables read from a DuckDB database"""

    def __init__(
        self,
        database: str = ":memory:",
        connection: Optional[duckdb.DuckDBPyConnection] = None,
    ):
        self.database = database
        self._owns_connection = connection is None
        self._conn = connection if connection is not None else connect(database)

    def close(self):
        if self._owns_connection:
            self._conn.close()

    def read_batches(
        self, job: TableJob, since: Optional[str] = None, batch_size: int = 50_000
    ) -> Iterator[pl.DataFrame]:
        """
        Stream source rows in batches

        Args:
            job: Table job naming the source table and watermark column
            since: Exclusive watermark lower bound (None = full scan)
            batch_size: Maximum rows per yielded DataFrame

        Yields:
            pl.DataFrame: Non-empty batches of source rows
        """
        sql, params = build_scan_query(job, since)
        logger.info(
            f"📥 Reading {job.source_name}"
            + (f" where {job.watermark_column} > {since}" if since is not None else " (full scan)")
        )

        cursor = self._conn.cursor()
        try:
            reader = cursor.execute(sql, params).to_arrow_reader(batch_size)
            for record_batch in reader:
                df = pl.from_arrow(record_batch)
                if df.height:
                    yield df
        except duckdb.Error as e:
            raise translate_error(e, DataTransferError, f"read {job.source_name}") from e
        finally:
            cursor.close()

    def count_rows(self, job: TableJob, since: Optional[str] = None) -> int:
        sql, params = build_scan_query(job, since)
        cursor = self._conn.cursor()
        try:
            cursor.execute(f"SELECT COUNT(*) FROM ({sql})", params)
            return cursor.fetchone()[0]
        except duckdb.Error as e:
            raise translate_error(e, DataTransferError, f"count {job.source_name}") from e
        finally:
            cursor.close()

    def list_tables(self, schemas: Optional[List[str]] = None) -> pl.DataFrame:
        """
        List base tables in the source catalog

        Args:
            schemas: Restrict to these schemas (None = all schemas)

        Returns:
            pl.DataFrame: table_schema, table_name sorted by both
        """
        sql = """
            SELECT table_schema, table_name
            FROM information_schema.tables
            WHERE table_type = 'BASE TABLE'
        """
        params: List[str] = []
        if schemas:
            sql += f" AND table_schema IN ({', '.join('?' for _ in schemas)})"
            params.extend(schemas)
        sql += " ORDER BY table_schema, table_name"

        cursor = self._conn.cursor()
        try:
            rows = cursor.execute(sql, params).fetchall()
        except duckdb.Error as e:
            raise translate_error(e, DataTransferError, "list source tables") from e
        finally:
            cursor.close()

        return pl.DataFrame(rows, schema=CATALOG_SCHEMA, orient="row")
