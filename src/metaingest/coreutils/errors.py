"""
Error Taxonomy

Every failure the orchestrator distinguishes derives from IngestionError.
Job-level errors are converted into FAILED execution log entries by the copy
task; only coordinator-level faults propagate out of a run.
"""


class IngestionError(Exception):
    """Base class for all ingestion errors"""


class ConfigurationError(IngestionError):
    """A table job (or setting) is malformed or missing required fields"""


class ConnectivityError(IngestionError):
    """Source, destination or metadata store could not be reached"""


class DataTransferError(IngestionError):
    """A copy failed mid-transfer (partial write, type mismatch, timeout)"""


class UniquenessViolation(IngestionError):
    """A registry insert collided with an existing (schema, table) key"""

    def __init__(self, source_schema: str, source_table: str):
        self.source_schema = source_schema
        self.source_table = source_table
        super().__init__(
            f"Table job already registered: {source_schema}.{source_table}"
        )


def describe_error(error: BaseException) -> str:
    """Render an exception for the execution log's error_message column."""
    return f"{type(error).__name__}: {error}"
