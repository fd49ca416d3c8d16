from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current UTC time as a naive datetime (DuckDB TIMESTAMP columns are naive)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_run_id() -> str:
    """Run identifier correlating a master run with its per-table log entries."""
    from uuid import uuid4

    return str(uuid4())
