"""
Metadata Store - Load Layer

DuckDB-backed control plane: the table registry (table_config), the
per-table execution log and the master execution log, plus the monitoring
queries operators use to inspect recent runs.

All statements are short single-row reads/writes. They are serialized by a
lock and run on per-call cursors so worker threads can share one store.
"""

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, List, Optional, Sequence

import duckdb
import polars as pl
import logging

from ..coreutils.errors import ConnectivityError, IngestionError, UniquenessViolation
from ..coreutils.sql import connect, fetch_dicts, translate_error
from ..coreutils.time import utc_now
from ..transformation.schemas import (
    ExecutionLogEntry,
    MasterRunEntry,
    RunStatus,
    TableJob,
    ValidationStatus,
)

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    "CREATE SEQUENCE IF NOT EXISTS table_config_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS table_config (
        config_id INTEGER PRIMARY KEY DEFAULT nextval('table_config_seq'),
        source_schema VARCHAR NOT NULL,
        source_table VARCHAR NOT NULL,
        destination_schema VARCHAR NOT NULL,
        destination_table VARCHAR NOT NULL,
        load_type VARCHAR NOT NULL DEFAULT 'FULL'
            CHECK (load_type IN ('FULL', 'INCREMENTAL')),
        watermark_column VARCHAR,
        last_watermark_value VARCHAR,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        priority INTEGER NOT NULL DEFAULT 1,
        created_date TIMESTAMP NOT NULL,
        modified_date TIMESTAMP NOT NULL,
        UNIQUE (source_schema, source_table)
    )
    """,
    "CREATE SEQUENCE IF NOT EXISTS execution_log_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS execution_log (
        log_id BIGINT PRIMARY KEY DEFAULT nextval('execution_log_seq'),
        run_id VARCHAR NOT NULL,
        source_schema VARCHAR NOT NULL,
        source_table VARCHAR NOT NULL,
        start_time TIMESTAMP NOT NULL,
        end_time TIMESTAMP,
        status VARCHAR NOT NULL CHECK (status IN ('RUNNING', 'SUCCEEDED', 'FAILED')),
        rows_copied BIGINT,
        source_row_count BIGINT,
        destination_row_count BIGINT,
        error_message VARCHAR,
        validation_status VARCHAR NOT NULL DEFAULT 'UNKNOWN',
        created_date TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_execution_log_run_id ON execution_log (run_id)",
    "CREATE INDEX IF NOT EXISTS ix_execution_log_source_table ON execution_log (source_schema, source_table)",
    "CREATE INDEX IF NOT EXISTS ix_execution_log_start_time ON execution_log (start_time)",
    """
    CREATE TABLE IF NOT EXISTS master_execution_log (
        run_id VARCHAR PRIMARY KEY,
        start_time TIMESTAMP NOT NULL,
        end_time TIMESTAMP,
        status VARCHAR NOT NULL CHECK (status IN ('RUNNING', 'SUCCEEDED', 'FAILED')),
        table_count INTEGER,
        successful_tables INTEGER,
        failed_tables INTEGER,
        error_message VARCHAR,
        created_date TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_master_execution_log_start_time ON master_execution_log (start_time)",
]

PRIORITY_DESCRIPTIONS = {
    1: "High (Small lookup tables)",
    2: "Medium (Staging and medium tables)",
    3: "Low (Large transaction tables)",
    4: "Lowest (Archive tables)",
}

TABLE_CONFIG_ORDER = "ORDER BY priority, source_schema, source_table"


class MetadataStore:
    """Table registry plus execution logging on a DuckDB database"""

    def __init__(
        self,
        database: str = ":memory:",
        connection: Optional[duckdb.DuckDBPyConnection] = None,
    ):
        """
        Initialize the metadata store

        Args:
            database: DuckDB file path (ignored when a connection is given)
            connection: Existing DuckDB connection to share
        """
        self.database = database
        self._owns_connection = connection is None
        self._conn = connection if connection is not None else connect(database)
        self._lock = threading.RLock()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        if self._owns_connection:
            self._conn.close()

    @contextmanager
    def _cursor(self) -> Iterator[duckdb.DuckDBPyConnection]:
        with self._lock:
            cursor = self._conn.cursor()
            try:
                yield cursor
            finally:
                cursor.close()

    def _execute(
        self,
        sql: str,
        params: Optional[Sequence[Any]] = None,
        context: str = "metadata store",
        raise_constraint_errors: bool = False,
    ) -> List[Dict[str, Any]]:
        try:
            with self._cursor() as cursor:
                cursor.execute(sql, list(params or []))
                return fetch_dicts(cursor) if cursor.description else []
        except duckdb.ConstraintException as e:
            if raise_constraint_errors:
                raise
            raise translate_error(e, IngestionError, context) from e
        except duckdb.CatalogException as e:
            raise ConnectivityError(
                f"{context}: metadata store is not initialized ({e})"
            ) from e
        except duckdb.Error as e:
            raise translate_error(e, IngestionError, context) from e

    def _frame(self, sql: str, params: Optional[Sequence[Any]] = None) -> pl.DataFrame:
        try:
            with self._cursor() as cursor:
                return cursor.execute(sql, list(params or [])).pl()
        except duckdb.Error as e:
            raise translate_error(e, IngestionError, "metadata store query") from e

    def initialize(self) -> None:
        """Create the control tables and indexes (idempotent)"""
        for statement in SCHEMA_STATEMENTS:
            self._execute(statement, context="initialize metadata store")
        logger.info(f"✅ Metadata store ready: {self.database}")

    # ------------------------------------------------------------------
    # Table registry
    # ------------------------------------------------------------------

    def add_job(self, job: TableJob) -> TableJob:
        """
        Register a table job

        Args:
            job: Job to insert (config_id and audit dates are assigned here)

        Returns:
            TableJob: The stored job

        Raises:
            UniquenessViolation: When (source_schema, source_table) is already registered
        """
        now = utc_now()
        try:
            rows = self._execute(
                """
                INSERT INTO table_config (
                    source_schema, source_table, destination_schema, destination_table,
                    load_type, watermark_column, last_watermark_value, is_active,
                    priority, created_date, modified_date
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING *
                """,
                [
                    job.source_schema,
                    job.source_table,
                    job.destination_schema,
                    job.destination_table,
                    job.load_type.value,
                    job.watermark_column,
                    job.last_watermark_value,
                    job.is_active,
                    job.priority,
                    now,
                    now,
                ],
                context=f"register {job.source_name}",
                raise_constraint_errors=True,
            )
        except duckdb.ConstraintException as e:
            raise UniquenessViolation(job.source_schema, job.source_table) from e

        logger.info(f"📝 Registered {job.source_name} ({job.load_type.value}, priority {job.priority})")
        return TableJob(**rows[0])

    def get_job(self, source_schema: str, source_table: str) -> Optional[TableJob]:
        rows = self._execute(
            "SELECT * FROM table_config WHERE source_schema = ? AND source_table = ?",
            [source_schema, source_table],
        )
        return TableJob(**rows[0]) if rows else None

    def list_jobs(self, active_only: bool = False) -> List[TableJob]:
        """All registered jobs in scheduling order"""
        where = "WHERE is_active" if active_only else ""
        rows = self._execute(
            f"SELECT * FROM table_config {where} {TABLE_CONFIG_ORDER}",
            context="list table jobs",
        )
        return [TableJob(**row) for row in rows]

    def list_active_jobs(self) -> List[TableJob]:
        """
        Active jobs sorted by (priority, source_schema, source_table)

        Returns:
            List[TableJob]: Snapshot of the registry's active entries
        """
        return self.list_jobs(active_only=True)

    def update_watermark(self, source_schema: str, source_table: str, new_value: str) -> bool:
        """
        Set the last copied watermark for an active job

        Setting the same value twice only refreshes modified_date. Inactive
        or unknown jobs are left alone.

        Returns:
            bool: True if a registry row was updated
        """
        rows = self._execute(
            """
            UPDATE table_config
            SET last_watermark_value = ?, modified_date = ?
            WHERE source_schema = ? AND source_table = ? AND is_active
            RETURNING config_id
            """,
            [new_value, utc_now(), source_schema, source_table],
            context=f"update watermark for {source_schema}.{source_table}",
        )
        if rows:
            logger.info(f"🔖 Watermark for {source_schema}.{source_table} -> {new_value}")
        else:
            logger.info(
                f"🔖 Watermark for {source_schema}.{source_table} not updated (job inactive or missing)"
            )
        return bool(rows)

    def set_active(self, source_schema: str, source_table: str, is_active: bool) -> bool:
        """
        Enable or disable a job

        Returns:
            bool: True if the job exists
        """
        rows = self._execute(
            """
            UPDATE table_config
            SET is_active = ?, modified_date = ?
            WHERE source_schema = ? AND source_table = ?
            RETURNING config_id
            """,
            [is_active, utc_now(), source_schema, source_table],
            context=f"set active flag for {source_schema}.{source_table}",
        )
        if rows:
            state = "activated" if is_active else "deactivated"
            logger.info(f"🔧 {source_schema}.{source_table} {state}")
        return bool(rows)

    def config_summary(self) -> pl.DataFrame:
        """Per-schema registry counts with a trailing TOTAL row"""
        counts = """
            COUNT(*) AS table_count,
            COUNT(*) FILTER (WHERE load_type = 'FULL') AS full_load_tables,
            COUNT(*) FILTER (WHERE load_type = 'INCREMENTAL') AS incremental_tables,
            COUNT(*) FILTER (WHERE is_active) AS active_tables,
            COUNT(*) FILTER (WHERE NOT is_active) AS inactive_tables
        """
        return self._frame(
            f"""
            SELECT * FROM (
                SELECT source_schema, {counts} FROM table_config GROUP BY source_schema
                UNION ALL
                SELECT 'TOTAL' AS source_schema, {counts} FROM table_config
            )
            ORDER BY source_schema = 'TOTAL', source_schema
            """
        )

    def priority_distribution(self) -> pl.DataFrame:
        """Active jobs per priority tier"""
        cases = " ".join(
            f"WHEN {tier} THEN '{text}'" for tier, text in PRIORITY_DESCRIPTIONS.items()
        )
        return self._frame(
            f"""
            SELECT priority, COUNT(*) AS table_count,
                   CASE priority {cases} ELSE 'Other' END AS description
            FROM table_config
            WHERE is_active
            GROUP BY priority
            ORDER BY priority
            """
        )

    # ------------------------------------------------------------------
    # Execution log
    # ------------------------------------------------------------------

    def log_execution_start(
        self, run_id: str, source_schema: str, source_table: str
    ) -> ExecutionLogEntry:
        """Insert a RUNNING entry for one table-job attempt"""
        now = utc_now()
        rows = self._execute(
            """
            INSERT INTO execution_log (
                run_id, source_schema, source_table, start_time, status, created_date
            )
            VALUES (?, ?, ?, ?, 'RUNNING', ?)
            RETURNING *
            """,
            [run_id, source_schema, source_table, now, now],
            context=f"log execution start for {source_schema}.{source_table}",
        )
        logger.debug(f"Logged execution start for {source_schema}.{source_table} (run {run_id})")
        return ExecutionLogEntry(**rows[0])

    def log_execution_success(
        self,
        log_id: int,
        rows_copied: Optional[int] = None,
        source_row_count: Optional[int] = None,
        destination_row_count: Optional[int] = None,
        validation_status: ValidationStatus = ValidationStatus.UNKNOWN,
    ) -> bool:
        """
        Move a RUNNING entry to SUCCEEDED

        Returns:
            bool: False when the entry was already terminal (nothing changed)
        """
        rows = self._execute(
            """
            UPDATE execution_log
            SET end_time = ?, status = 'SUCCEEDED', rows_copied = ?,
                source_row_count = ?, destination_row_count = ?, validation_status = ?
            WHERE log_id = ? AND status = 'RUNNING'
            RETURNING log_id
            """,
            [
                utc_now(),
                rows_copied,
                source_row_count,
                destination_row_count,
                validation_status.value,
                log_id,
            ],
            context=f"log execution success for entry {log_id}",
        )
        if not rows:
            logger.warning(f"⚠️ Execution entry {log_id} is not RUNNING; success ignored")
        return bool(rows)

    def log_execution_failure(self, log_id: int, error_message: str) -> bool:
        """
        Move a RUNNING entry to FAILED

        Returns:
            bool: False when the entry was already terminal (nothing changed)
        """
        rows = self._execute(
            """
            UPDATE execution_log
            SET end_time = ?, status = 'FAILED', error_message = ?
            WHERE log_id = ? AND status = 'RUNNING'
            RETURNING log_id
            """,
            [utc_now(), error_message, log_id],
            context=f"log execution failure for entry {log_id}",
        )
        if not rows:
            logger.warning(f"⚠️ Execution entry {log_id} is not RUNNING; failure ignored")
        return bool(rows)

    def get_execution(self, log_id: int) -> Optional[ExecutionLogEntry]:
        rows = self._execute("SELECT * FROM execution_log WHERE log_id = ?", [log_id])
        return ExecutionLogEntry(**rows[0]) if rows else None

    def run_entries(self, run_id: str) -> List[ExecutionLogEntry]:
        """All execution entries belonging to one master run"""
        rows = self._execute(
            "SELECT * FROM execution_log WHERE run_id = ? ORDER BY log_id", [run_id]
        )
        return [ExecutionLogEntry(**row) for row in rows]

    def count_running(self, run_id: Optional[str] = None) -> int:
        """Number of execution entries currently RUNNING"""
        sql = "SELECT COUNT(*) AS running FROM execution_log WHERE status = 'RUNNING'"
        params: List[Any] = []
        if run_id is not None:
            sql += " AND run_id = ?"
            params.append(run_id)
        return self._execute(sql, params)[0]["running"]

    # ------------------------------------------------------------------
    # Master execution log
    # ------------------------------------------------------------------

    def log_master_start(self, run_id: str, table_count: int) -> MasterRunEntry:
        now = utc_now()
        rows = self._execute(
            """
            INSERT INTO master_execution_log (run_id, start_time, status, table_count, created_date)
            VALUES (?, ?, 'RUNNING', ?, ?)
            RETURNING *
            """,
            [run_id, now, table_count, now],
            context=f"log master start for run {run_id}",
        )
        logger.info(f"🚀 Master run {run_id} started with {table_count} tables")
        return MasterRunEntry(**rows[0])

    def _finish_master(
        self,
        run_id: str,
        status: RunStatus,
        successful_tables: int,
        failed_tables: int,
        error_message: Optional[str] = None,
    ) -> bool:
        rows = self._execute(
            """
            UPDATE master_execution_log
            SET end_time = ?, status = ?, successful_tables = ?, failed_tables = ?,
                error_message = ?
            WHERE run_id = ? AND status = 'RUNNING'
            RETURNING run_id
            """,
            [utc_now(), status.value, successful_tables, failed_tables, error_message, run_id],
            context=f"log master {status.value.lower()} for run {run_id}",
        )
        return bool(rows)

    def log_master_success(self, run_id: str, successful_tables: int, failed_tables: int) -> bool:
        return self._finish_master(run_id, RunStatus.SUCCEEDED, successful_tables, failed_tables)

    def log_master_failure(
        self,
        run_id: str,
        error_message: str,
        successful_tables: int = 0,
        failed_tables: int = 0,
    ) -> bool:
        return self._finish_master(
            run_id, RunStatus.FAILED, successful_tables, failed_tables, error_message
        )

    def get_master_run(self, run_id: str) -> Optional[MasterRunEntry]:
        rows = self._execute("SELECT * FROM master_execution_log WHERE run_id = ?", [run_id])
        return MasterRunEntry(**rows[0]) if rows else None

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def current_execution_status(self, days: int = 7, now: Optional[datetime] = None) -> pl.DataFrame:
        """
        Execution entries of the last N days with duration and validation

        Args:
            days: Look-back window in days
            now: Reference time (defaults to current UTC time)

        Returns:
            pl.DataFrame: One row per execution entry, newest first
        """
        now = now or utc_now()
        return self._frame(
            """
            SELECT run_id, source_schema, source_table, start_time, end_time, status,
                   rows_copied, source_row_count, destination_row_count,
                   date_diff('minute', start_time, coalesce(end_time, ?)) AS duration_minutes,
                   CASE
                       WHEN source_row_count > 0 AND destination_row_count > 0 THEN
                           CASE WHEN source_row_count = destination_row_count
                                THEN 'Valid' ELSE 'Invalid' END
                       ELSE 'Unknown'
                   END AS data_validation,
                   error_message
            FROM execution_log
            WHERE start_time >= ?
            ORDER BY start_time DESC, log_id DESC
            """,
            [now, now - timedelta(days=days)],
        )

    def master_execution_summary(self, days: int = 30, now: Optional[datetime] = None) -> pl.DataFrame:
        """
        Master runs of the last N days with duration and success percentage

        Args:
            days: Look-back window in days
            now: Reference time (defaults to current UTC time)

        Returns:
            pl.DataFrame: One row per master run, newest first
        """
        now = now or utc_now()
        return self._frame(
            """
            SELECT run_id, start_time, end_time, status, table_count,
                   successful_tables, failed_tables,
                   date_diff('minute', start_time, coalesce(end_time, ?)) AS duration_minutes,
                   CASE
                       WHEN table_count > 0 THEN
                           CAST(coalesce(successful_tables, 0) AS DOUBLE) / table_count * 100
                       ELSE 0.0
                   END AS success_percentage,
                   error_message
            FROM master_execution_log
            WHERE start_time >= ?
            ORDER BY start_time DESC
            """,
            [now, now - timedelta(days=days)],
        )
