"""
Run Coordinator - Orchestration Layer

Executes one ingestion run:
1. Snapshot the active jobs from the registry (no re-polling mid-run)
2. Open a master execution log entry
3. Fan jobs out to a bounded thread pool in priority order
4. Wait for every copy task to reach a terminal state
5. Close the master entry with success/failure counts

A failed table is data, not an orchestrator failure: the master entry is
SUCCEEDED whenever the run itself completed.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional

import logging

from ..coreutils.config import DEFAULT_CONCURRENCY_LIMIT
from ..coreutils.errors import ConfigurationError, describe_error
from ..coreutils.time import new_run_id
from ..load.metadata_store import MetadataStore
from ..transformation.schemas import ExecutionLogEntry, MasterRunEntry, RunStatus
from ..transformation.validators import partition_valid_jobs
from .copy_task import CopyTask

logger = logging.getLogger(__name__)


class RunCoordinator:
    """Drives a metadata-driven fan-out of copy tasks"""

    def __init__(
        self,
        store: MetadataStore,
        copy_task: CopyTask,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
    ):
        """
        Initialize the run coordinator

        Args:
            store: Metadata store holding the registry and logs
            copy_task: Worker executed once per table job
            concurrency_limit: Default number of parallel copy tasks
        """
        self.store = store
        self.copy_task = copy_task
        self.concurrency_limit = concurrency_limit

    def run_all(self, concurrency_limit: Optional[int] = None) -> MasterRunEntry:
        """
        Run every active table job once

        Args:
            concurrency_limit: Parallel copy tasks for this run (defaults to the coordinator's)

        Returns:
            MasterRunEntry: Final master log entry for the run

        Raises:
            ConfigurationError: When the concurrency limit is below 1
            IngestionError: When the run could not even be recorded
        """
        limit = concurrency_limit if concurrency_limit is not None else self.concurrency_limit
        if limit < 1:
            raise ConfigurationError(f"concurrency_limit must be at least 1, got {limit}")

        run_id = new_run_id()
        logger.info(f"🚀 Starting ingestion run {run_id} (concurrency {limit})")
        logger.info("=" * 60)

        try:
            jobs = self.store.list_active_jobs()
        except Exception as e:
            logger.error(f"❌ Could not read the table registry: {e}")
            return self._fail_run(run_id, e)

        self.store.log_master_start(run_id, len(jobs))

        try:
            results = self._dispatch(run_id, jobs, limit)
        except Exception as e:
            logger.error(f"❌ Run {run_id} aborted: {e}")
            self.store.log_master_failure(run_id, describe_error(e))
            raise

        successful = sum(1 for entry in results if entry.status == RunStatus.SUCCEEDED)
        failed = len(jobs) - successful

        self.store.log_master_success(run_id, successful, failed)
        master = self.store.get_master_run(run_id)

        logger.info("=" * 60)
        if failed:
            logger.warning(f"⚠️ {master.summary()}")
        else:
            logger.info(f"✅ {master.summary()}")
        return master

    def _dispatch(self, run_id: str, jobs, limit: int) -> List[ExecutionLogEntry]:
        runnable, rejected = partition_valid_jobs(jobs)
        results: List[ExecutionLogEntry] = []

        for job, error in rejected:
            results.append(self.copy_task.reject(job, run_id, error))

        if not runnable:
            return results

        # the pool's work queue is FIFO, so submission order is admission order
        with ThreadPoolExecutor(max_workers=limit, thread_name_prefix="copy") as executor:
            future_to_job = {
                executor.submit(self.copy_task.execute, job, run_id): job for job in runnable
            }

            for i, future in enumerate(as_completed(future_to_job), start=1):
                job = future_to_job[future]
                try:
                    entry = future.result()
                except Exception as e:
                    # the copy task could not even write its log entry
                    logger.error(f"[{i}/{len(runnable)}] {job.source_name} ✗ - {e}")
                    continue

                results.append(entry)
                if entry.status == RunStatus.SUCCEEDED:
                    logger.info(
                        f"[{i}/{len(runnable)}] {job.source_name} ✓ - {entry.rows_copied} rows"
                    )
                else:
                    logger.info(f"[{i}/{len(runnable)}] {job.source_name} ✗ - {entry.error_message}")

        return results

    def _fail_run(self, run_id: str, error: Exception) -> MasterRunEntry:
        """Record a run that could not start; re-raise if even that is impossible"""
        try:
            self.store.log_master_start(run_id, 0)
            self.store.log_master_failure(run_id, describe_error(error))
            return self.store.get_master_run(run_id)
        except Exception as log_error:
            logger.error(f"❌ Could not record failed run {run_id}: {log_error}")
            raise error
