"""
Main Entry Point - Metadata-Driven Ingestion

Command line interface over the orchestration layer:

    metaingest init-db                 create the control tables
    metaingest seed [--dry-run]        populate the registry from the source catalog
    metaingest run [--concurrency N]   run every active table job once
    metaingest schedule                run daily at METAINGEST_SCHEDULE_TIME
    metaingest status [--run-id ID]    show recent runs
    metaingest set-active S T --inactive
"""

import argparse
import sys
from typing import Dict, List, Optional

import duckdb
import polars as pl
import logging

from .coreutils.config import Settings, load_settings
from .coreutils.errors import IngestionError
from .coreutils.logging import setup_logging
from .coreutils.sql import connect
from .extract.source_reader import DuckDBSourceReader
from .load.destination_writer import DuckDBDestinationWriter
from .load.metadata_store import MetadataStore
from .orchestration.copy_task import CopyTask
from .orchestration.coordinator import RunCoordinator
from .orchestration.registry_seeding import seed_registry
from .orchestration.scheduler import create_scheduler
from .transformation.schemas import LoadType, RunStatus, TableJob
from .transformation.seeding import load_seed_policy

logger = logging.getLogger(__name__)


class IngestionApp:
    """Wires the metadata store, source reader, destination writer and coordinator"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._connections: Dict[str, duckdb.DuckDBPyConnection] = {}

        self.store = MetadataStore(settings.metadata_db, connection=self._connection(settings.metadata_db))
        self.reader = DuckDBSourceReader(settings.source_db, connection=self._connection(settings.source_db))
        self.writer = DuckDBDestinationWriter(
            settings.destination_db, connection=self._connection(settings.destination_db)
        )
        self.copy_task = CopyTask(
            self.store,
            self.reader,
            self.writer,
            batch_size=settings.batch_size,
            timeout_seconds=settings.copy_timeout_seconds,
        )
        self.coordinator = RunCoordinator(
            self.store, self.copy_task, concurrency_limit=settings.concurrency_limit
        )

    def _connection(self, database: str) -> duckdb.DuckDBPyConnection:
        # equal paths share one connection so a single file can hold every role
        if database not in self._connections:
            self._connections[database] = connect(database)
        return self._connections[database]

    def close(self):
        for conn in self._connections.values():
            conn.close()
        self._connections.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def cmd_init_db(app: IngestionApp, args) -> int:
    app.store.initialize()
    return 0


def cmd_seed(app: IngestionApp, args) -> int:
    policy = load_seed_policy(args.policy) if args.policy else None
    jobs = seed_registry(app.store, app.reader, policy=policy, dry_run=args.dry_run)
    for job in jobs:
        print(
            f"{job.source_name} -> {job.destination_name} "
            f"{job.load_type.value} watermark={job.watermark_column} priority={job.priority}"
        )
    print(app.store.config_summary())
    return 0


def cmd_register(app: IngestionApp, args) -> int:
    job = TableJob(
        source_schema=args.source_schema,
        source_table=args.source_table,
        destination_schema=args.destination_schema or args.source_schema,
        destination_table=args.destination_table or args.source_table,
        load_type=args.load_type,
        watermark_column=args.watermark_column,
        priority=args.priority,
        is_active=not args.inactive,
    )
    stored = app.store.add_job(job)
    print(f"✅ Registered {stored.source_name} (config_id {stored.config_id})")
    return 0


def cmd_run(app: IngestionApp, args) -> int:
    master = app.coordinator.run_all(args.concurrency)
    print(master.summary())
    return 0 if master.status == RunStatus.SUCCEEDED else 1


def cmd_schedule(app: IngestionApp, args) -> int:
    scheduler = create_scheduler(
        app.coordinator,
        run_time=app.settings.schedule_time,
        concurrency_limit=args.concurrency,
    )
    if args.run_now:
        scheduler.run_now()

    try:
        scheduler.start()
    except KeyboardInterrupt:
        logger.info("🛑 Scheduler stopped by user")
        scheduler.stop()
    return 0


def cmd_status(app: IngestionApp, args) -> int:
    with pl.Config(tbl_rows=50, tbl_cols=-1):
        if args.run_id:
            master = app.store.get_master_run(args.run_id)
            if master is None:
                print(f"❌ Unknown run: {args.run_id}")
                return 1
            print(master.summary())
            for entry in app.store.run_entries(args.run_id):
                print(
                    f"  {entry.source_name}: {entry.status.value} "
                    f"rows={entry.rows_copied} validation={entry.validation_status.value}"
                    + (f" error={entry.error_message}" if entry.error_message else "")
                )
            return 0

        print("📊 Master runs")
        print(app.store.master_execution_summary(days=args.days))
        print("📋 Table executions")
        print(app.store.current_execution_status(days=min(args.days, 7)))
    return 0


def cmd_set_active(app: IngestionApp, args) -> int:
    if not app.store.set_active(args.source_schema, args.source_table, args.active):
        print(f"❌ Unknown table job: {args.source_schema}.{args.source_table}")
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Metadata-driven table ingestion")
    parser.add_argument("--metadata-db", help="Metadata DuckDB file (METAINGEST_METADATA_DB)")
    parser.add_argument("--source-db", help="Source DuckDB file (METAINGEST_SOURCE_DB)")
    parser.add_argument("--destination-db", help="Destination DuckDB file (METAINGEST_DESTINATION_DB)")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_db = subparsers.add_parser("init-db", help="Create the control tables")
    init_db.set_defaults(handler=cmd_init_db)

    seed = subparsers.add_parser("seed", help="Populate the registry from the source catalog")
    seed.add_argument("--policy", help="JSON seeding policy (default: built-in policy)")
    seed.add_argument("--dry-run", action="store_true", help="Show the jobs without registering them")
    seed.set_defaults(handler=cmd_seed)

    register = subparsers.add_parser("register", help="Register a single table job")
    register.add_argument("source_schema")
    register.add_argument("source_table")
    register.add_argument("--destination-schema")
    register.add_argument("--destination-table")
    register.add_argument(
        "--load-type", type=str.upper, choices=[t.value for t in LoadType], default="FULL"
    )
    register.add_argument("--watermark-column")
    register.add_argument("--priority", type=int, default=1)
    register.add_argument("--inactive", action="store_true")
    register.set_defaults(handler=cmd_register)

    run = subparsers.add_parser("run", help="Run every active table job once")
    run.add_argument("--concurrency", type=int, help="Parallel copy tasks")
    run.set_defaults(handler=cmd_run)

    schedule = subparsers.add_parser("schedule", help="Run ingestion daily")
    schedule.add_argument("--concurrency", type=int, help="Parallel copy tasks")
    schedule.add_argument("--run-now", action="store_true", help="Run once before waiting")
    schedule.set_defaults(handler=cmd_schedule)

    status = subparsers.add_parser("status", help="Show recent runs")
    status.add_argument("--run-id", help="Show the table entries of one run")
    status.add_argument("--days", type=int, default=30, help="Look-back window in days")
    status.set_defaults(handler=cmd_status)

    set_active = subparsers.add_parser("set-active", help="Enable or disable a table job")
    set_active.add_argument("source_schema")
    set_active.add_argument("source_table")
    group = set_active.add_mutually_exclusive_group()
    group.add_argument("--active", dest="active", action="store_true", default=True)
    group.add_argument("--inactive", dest="active", action="store_false")
    set_active.set_defaults(handler=cmd_set_active)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(
            metadata_db=args.metadata_db,
            source_db=args.source_db,
            destination_db=args.destination_db,
        )
    except IngestionError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2

    setup_logging(level=getattr(logging, args.log_level), log_dir=settings.log_dir)

    try:
        with IngestionApp(settings) as app:
            return args.handler(app, args)
    except IngestionError as e:
        logger.error(f"❌ {args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
