"""
Copy Task - Orchestration Layer

Moves one table from source to destination under the job's load policy and
records the attempt in the execution log.

State machine per attempt: RUNNING -> SUCCEEDED | FAILED. The watermark of
an incremental job is advanced only after the attempt is logged SUCCEEDED.
"""

import time
from contextlib import closing
from typing import Callable, Optional

import logging

from ..coreutils.config import DEFAULT_BATCH_SIZE
from ..coreutils.errors import ConfigurationError, DataTransferError, describe_error
from ..extract.source_reader import SourceReader
from ..load.destination_writer import DestinationWriter
from ..load.metadata_store import MetadataStore
from ..transformation.schemas import (
    CopyOutcome,
    ExecutionLogEntry,
    LoadType,
    TableJob,
    ValidationStatus,
)
from ..transformation.validators import (
    advance_watermark,
    classify_row_counts,
    max_watermark,
    validate_table_job,
)

logger = logging.getLogger(__name__)


class CopyTask:
    """Per-table copy worker"""

    def __init__(
        self,
        store: MetadataStore,
        reader: SourceReader,
        writer: DestinationWriter,
        batch_size: int = DEFAULT_BATCH_SIZE,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the copy task

        Args:
            store: Metadata store for execution logging and watermarks
            reader: Source data reader
            writer: Destination data writer
            batch_size: Rows per transferred batch
            timeout_seconds: Per-table time limit (None = unbounded)
            clock: Monotonic clock, injectable for tests
        """
        self.store = store
        self.reader = reader
        self.writer = writer
        self.batch_size = batch_size
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    def execute(self, job: TableJob, run_id: str) -> ExecutionLogEntry:
        """
        Copy one table and log the outcome

        Job-level errors never escape: they end up as a FAILED entry. Only a
        failure to write the log itself propagates.

        Args:
            job: Registry entry to copy
            run_id: Master run this attempt belongs to

        Returns:
            ExecutionLogEntry: The terminal log entry
        """
        entry = self.store.log_execution_start(run_id, job.source_schema, job.source_table)
        logger.info(
            f"🔄 [{run_id[:8]}] Copying {job.source_name} -> {job.destination_name} "
            f"({job.load_type.value})"
        )

        try:
            validate_table_job(job)
            outcome = self._copy(job)
        except Exception as e:
            logger.error(f"❌ [{run_id[:8]}] {job.source_name} failed: {e}")
            self.store.log_execution_failure(entry.log_id, describe_error(e))
            return self.store.get_execution(entry.log_id)

        validation_status = classify_row_counts(
            outcome.source_row_count, outcome.destination_row_count
        )
        if validation_status == ValidationStatus.INVALID:
            logger.warning(
                f"⚠️ {job.source_name}: row count mismatch "
                f"(source {outcome.source_row_count}, destination {outcome.destination_row_count})"
            )

        self.store.log_execution_success(
            entry.log_id,
            rows_copied=outcome.rows_copied,
            source_row_count=outcome.source_row_count,
            destination_row_count=outcome.destination_row_count,
            validation_status=validation_status,
        )
        logger.info(f"✅ [{run_id[:8]}] {job.source_name}: {outcome.rows_copied} rows copied")

        if job.load_type == LoadType.INCREMENTAL:
            self._advance_watermark(job, outcome.max_watermark)

        return self.store.get_execution(entry.log_id)

    def reject(self, job: TableJob, run_id: str, error: ConfigurationError) -> ExecutionLogEntry:
        """
        Record a job that failed validation without touching any data

        Returns:
            ExecutionLogEntry: The FAILED log entry
        """
        entry = self.store.log_execution_start(run_id, job.source_schema, job.source_table)
        self.store.log_execution_failure(entry.log_id, describe_error(error))
        logger.error(f"❌ [{run_id[:8]}] {job.source_name} rejected: {error}")
        return self.store.get_execution(entry.log_id)

    def _copy(self, job: TableJob) -> CopyOutcome:
        incremental = job.load_type == LoadType.INCREMENTAL
        since = job.last_watermark_value if incremental else None
        started = self.clock()

        source_row_count = self.reader.count_rows(job, since)

        if incremental:
            destination_before = self.writer.count_rows(job.destination_schema, job.destination_table)
        else:
            # FULL loads leave the destination empty if the copy fails below
            self.writer.truncate(job.destination_schema, job.destination_table)
            destination_before = 0

        rows_copied = 0
        observed = None
        with closing(self.reader.read_batches(job, since, self.batch_size)) as batches:
            for batch in batches:
                self._check_deadline(job, started, rows_copied)
                rows_copied += self.writer.write_batch(
                    job.destination_schema, job.destination_table, batch
                )
                if incremental:
                    observed = advance_watermark(observed, max_watermark(batch, job.watermark_column))
        self._check_deadline(job, started, rows_copied)

        destination_after = self.writer.count_rows(job.destination_schema, job.destination_table)

        return CopyOutcome(
            rows_copied=rows_copied,
            source_row_count=source_row_count,
            destination_row_count=destination_after - destination_before,
            max_watermark=observed,
        )

    def _check_deadline(self, job: TableJob, started: float, rows_copied: int) -> None:
        if self.timeout_seconds is None:
            return
        elapsed = self.clock() - started
        if elapsed > self.timeout_seconds:
            raise DataTransferError(
                f"{job.source_name}: copy exceeded timeout of {self.timeout_seconds}s "
                f"after {rows_copied} rows"
            )

    def _advance_watermark(self, job: TableJob, observed: Optional[str]) -> None:
        new_value = advance_watermark(job.last_watermark_value, observed)
        if new_value is None or new_value == job.last_watermark_value:
            logger.info(f"🔖 {job.source_name}: no new rows, watermark unchanged")
            return

        try:
            self.store.update_watermark(job.source_schema, job.source_table, new_value)
        except Exception as e:
            # the copy is already logged SUCCEEDED; the next run re-reads this window
            logger.error(f"❌ {job.source_name}: watermark update failed: {e}")
