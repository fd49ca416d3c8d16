"""
metaingest - Metadata-Driven Table Ingestion

A control table (TableConfig) drives a priority-ordered fan-out of per-table
copy tasks with execution logging and watermark-based incremental loads.

Usage:
    python -m metaingest.main run

Environment Variables:
    METAINGEST_METADATA_DB: DuckDB file holding the registry and logs
    METAINGEST_SOURCE_DB: DuckDB file read by the source reader
    METAINGEST_DESTINATION_DB: DuckDB file written by the destination writer
    METAINGEST_CONCURRENCY_LIMIT: Worker count (default: 5)
"""

__version__ = "0.1.0"
