"""
DuckDB helpers shared by the extract and load layers
"""

from typing import Any, Dict, List, Type

import duckdb

from .errors import ConnectivityError, IngestionError

# errors that mean "the database is not reachable", not "the statement is wrong"
CONNECTIVITY_ERRORS = (duckdb.IOException, duckdb.ConnectionException)


def quote_identifier(name: str) -> str:
    """Quote a schema/table/column name for DuckDB"""
    return '"' + name.replace('"', '""') + '"'


def qualified_name(schema: str, table: str) -> str:
    return f"{quote_identifier(schema)}.{quote_identifier(table)}"


def connect(database: str = ":memory:", read_only: bool = False) -> duckdb.DuckDBPyConnection:
    """
    Open a DuckDB connection, reporting failures as ConnectivityError

    Args:
        database: Database file path or ':memory:'
        read_only: Open the file read-only

    Returns:
        duckdb.DuckDBPyConnection: Open connection
    """
    try:
        return duckdb.connect(database, read_only=read_only)
    except duckdb.Error as e:
        raise ConnectivityError(f"Could not open DuckDB database {database!r}: {e}") from e


def translate_error(
    error: duckdb.Error, fallback: Type[IngestionError], context: str
) -> IngestionError:
    """Map a DuckDB error onto the ingestion error taxonomy"""
    if isinstance(error, CONNECTIVITY_ERRORS):
        return ConnectivityError(f"{context}: {error}")
    return fallback(f"{context}: {error}")


def fetch_dicts(cursor: duckdb.DuckDBPyConnection) -> List[Dict[str, Any]]:
    """Rows of the last executed statement as dicts keyed by column name"""
    columns = [col[0] for col in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]
