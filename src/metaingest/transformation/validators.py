"""
Job Validators - Transform Layer

Pure functions guarding the registry invariants and the watermark rules.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Tuple

import polars as pl
import logging

from ..coreutils.errors import ConfigurationError
from .schemas import LoadType, TableJob, ValidationStatus

logger = logging.getLogger(__name__)

# chrono %.f keeps every non-zero fractional digit, down to nanoseconds
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S%.f"
DATE_FORMAT = "%Y-%m-%d"

_FRACTION = re.compile(r"\.(\d+)")


def validate_table_job(job: TableJob) -> TableJob:
    """
    Check a table job before any copy is attempted

    Args:
        job: Registry entry to check

    Returns:
        TableJob: The same job when valid

    Raises:
        ConfigurationError: When the watermark column does not match the load type
    """
    if job.load_type == LoadType.INCREMENTAL and not job.watermark_column:
        raise ConfigurationError(
            f"{job.source_name}: INCREMENTAL load requires a watermark column"
        )

    if job.load_type == LoadType.FULL and job.watermark_column:
        raise ConfigurationError(
            f"{job.source_name}: FULL load must not declare a watermark column "
            f"(found '{job.watermark_column}')"
        )

    if job.priority < 0:
        raise ConfigurationError(
            f"{job.source_name}: priority must be non-negative, got {job.priority}"
        )

    return job


def partition_valid_jobs(
    jobs: Iterable[TableJob],
) -> Tuple[List[TableJob], List[Tuple[TableJob, ConfigurationError]]]:
    """
    Split jobs into runnable ones and rejected ones, keeping input order

    Returns:
        Tuple: (valid jobs, [(rejected job, error), ...])
    """
    valid, rejected = [], []
    for job in jobs:
        try:
            valid.append(validate_table_job(job))
        except ConfigurationError as e:
            logger.warning(f"⚠️ Rejecting {job.source_name}: {e}")
            rejected.append((job, e))
    return valid, rejected


def sort_jobs(jobs: Iterable[TableJob]) -> List[TableJob]:
    """Order jobs by (priority, source_schema, source_table) ascending"""
    return sorted(jobs, key=lambda job: job.sort_key)


def format_watermark(value: Any) -> Optional[str]:
    """Render a watermark column value the way the registry stores it"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _as_number(value: str) -> Optional[Decimal]:
    try:
        number = Decimal(value.strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _as_timestamp(value: str) -> Optional[Tuple[datetime, int]]:
    """(timestamp without fraction, nanoseconds); datetime alone stops at microseconds"""
    nanos = 0
    match = _FRACTION.search(value)
    if match:
        nanos = int(match.group(1)[:9].ljust(9, "0"))
        value = value[: match.start()] + value[match.end() :]
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")), nanos
    except ValueError:
        return None


def compare_watermarks(left: str, right: str) -> int:
    """
    Compare two stored watermark strings

    Numbers compare exactly as decimals, ISO timestamps chronologically
    down to the nanosecond, anything else lexically.

    Returns:
        int: -1, 0 or 1
    """
    for parse in (_as_number, _as_timestamp):
        a, b = parse(left), parse(right)
        if a is not None and b is not None:
            try:
                return (a > b) - (a < b)
            except TypeError:
                # naive vs aware timestamps
                break
    return (left > right) - (left < right)


def advance_watermark(current: Optional[str], observed: Optional[str]) -> Optional[str]:
    """
    Monotonic watermark advance

    Args:
        current: Watermark stored in the registry (None = never loaded)
        observed: Highest watermark seen among copied rows (None = no rows)

    Returns:
        Optional[str]: The larger of the two; never smaller than current
    """
    if observed is None:
        return current
    if current is None:
        return observed
    return observed if compare_watermarks(observed, current) > 0 else current


def max_watermark(df: pl.DataFrame, column: str) -> Optional[str]:
    """
    Highest watermark value in a batch

    Args:
        df: Copied rows
        column: Watermark column name

    Returns:
        Optional[str]: Formatted maximum, None when the batch has no non-null values
    """
    if column not in df.columns:
        raise ConfigurationError(f"Watermark column '{column}' not found in source rows")
    if df.height == 0:
        return None

    # temporal maxima are rendered in polars so nanosecond timestamps keep their precision
    expr = pl.col(column).max()
    dtype = df.schema[column]
    if dtype == pl.Datetime:
        expr = expr.dt.to_string(DATETIME_FORMAT)
    elif dtype == pl.Date:
        expr = expr.dt.to_string(DATE_FORMAT)
    return format_watermark(df.select(expr).item())


def classify_row_counts(
    source_row_count: Optional[int], destination_row_count: Optional[int]
) -> ValidationStatus:
    """
    Compare independently obtained row counts

    Both counts must be known and positive to be judged; otherwise the
    result is UNKNOWN.
    """
    if not source_row_count or not destination_row_count:
        return ValidationStatus.UNKNOWN
    if source_row_count == destination_row_count:
        return ValidationStatus.VALID
    return ValidationStatus.INVALID
