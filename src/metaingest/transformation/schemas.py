"""
Transformation Layer Schemas

Records exchanged between the registry, the copy task and the coordinator.
Field names follow the metadata store's column names.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class LoadType(str, Enum):
    FULL = "FULL"
    INCREMENTAL = "INCREMENTAL"


class RunStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class ValidationStatus(str, Enum):
    """Outcome of comparing source and destination row counts"""

    VALID = "VALID"
    INVALID = "INVALID"
    UNKNOWN = "UNKNOWN"


class TableJob(BaseModel):
    """One row of the table registry (table_config)"""

    config_id: Optional[int] = Field(None, description="Surrogate key assigned by the store")
    source_schema: str = Field(..., description="Schema of the source table (e.g. 'dbo')")
    source_table: str = Field(..., description="Source table name")
    destination_schema: str = Field(..., description="Schema of the destination table")
    destination_table: str = Field(..., description="Destination table name")
    load_type: LoadType = Field(LoadType.FULL, description="FULL or INCREMENTAL")
    watermark_column: Optional[str] = Field(
        None, description="Monotonic column bounding incremental scans"
    )
    last_watermark_value: Optional[str] = Field(
        None, description="Highest watermark already copied"
    )
    is_active: bool = Field(True, description="Inactive jobs are skipped by every run")
    priority: int = Field(1, description="Lower values are scheduled first")
    created_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None

    @field_validator("source_schema", "source_table", "destination_schema", "destination_table")
    @classmethod
    def validate_names(cls, v):
        """Table and schema names must be non-blank"""
        v = v.strip()
        if not v:
            raise ValueError("Schema and table names must not be blank")
        return v

    @field_validator("load_type", mode="before")
    @classmethod
    def normalize_load_type(cls, v):
        """Accept 'full' / 'incremental' in any case"""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("watermark_column", "last_watermark_value", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source_schema, self.source_table)

    @property
    def sort_key(self) -> Tuple[int, str, str]:
        """Scheduling order: priority, then schema and table name"""
        return (self.priority, self.source_schema, self.source_table)

    @property
    def source_name(self) -> str:
        return f"{self.source_schema}.{self.source_table}"

    @property
    def destination_name(self) -> str:
        return f"{self.destination_schema}.{self.destination_table}"


class ExecutionLogEntry(BaseModel):
    """One table-job execution attempt (execution_log)"""

    log_id: Optional[int] = None
    run_id: str
    source_schema: str
    source_table: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    rows_copied: Optional[int] = None
    source_row_count: Optional[int] = None
    destination_row_count: Optional[int] = None
    error_message: Optional[str] = None
    validation_status: ValidationStatus = ValidationStatus.UNKNOWN

    @property
    def source_name(self) -> str:
        return f"{self.source_schema}.{self.source_table}"


class MasterRunEntry(BaseModel):
    """One orchestrator invocation (master_execution_log)"""

    run_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    table_count: int = 0
    successful_tables: Optional[int] = None
    failed_tables: Optional[int] = None
    error_message: Optional[str] = None

    def summary(self) -> str:
        """One-line human readable summary for logs and the CLI"""
        return (
            f"run {self.run_id} {self.status.value}: "
            f"{self.successful_tables or 0}/{self.table_count} tables succeeded, "
            f"{self.failed_tables or 0} failed"
        )


class CopyOutcome(BaseModel):
    """What a finished transfer reports back before it is logged"""

    rows_copied: int = 0
    source_row_count: Optional[int] = None
    destination_row_count: Optional[int] = None
    max_watermark: Optional[str] = None
