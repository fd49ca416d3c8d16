"""
Shared fixtures: an initialized in-memory metadata store, a small source
database and an empty destination database.
"""

import duckdb
import pytest

from metaingest.extract.source_reader import DuckDBSourceReader
from metaingest.load.destination_writer import DuckDBDestinationWriter
from metaingest.load.metadata_store import MetadataStore
from metaingest.orchestration.copy_task import CopyTask
from metaingest.transformation.schemas import LoadType, TableJob


@pytest.fixture
def store():
    with MetadataStore() as store:
        store.initialize()
        yield store


@pytest.fixture
def source_conn():
    conn = duckdb.connect()
    conn.execute("CREATE SCHEMA dbo")
    conn.execute("CREATE TABLE dbo.customers (id INTEGER, name VARCHAR)")
    conn.execute("INSERT INTO dbo.customers VALUES (1, 'alice'), (2, 'bob'), (3, 'carol')")
    conn.execute("CREATE TABLE dbo.orders (id INTEGER, amount DOUBLE, ModifiedDate TIMESTAMP)")
    conn.execute(
        """
        INSERT INTO dbo.orders VALUES
            (1, 10.0, '2024-01-01 00:00:00'),
            (2, 20.0, '2024-01-02 00:00:00'),
            (3, 30.0, '2024-01-03 00:00:00')
        """
    )
    yield conn
    conn.close()


@pytest.fixture
def dest_conn():
    conn = duckdb.connect()
    yield conn
    conn.close()


@pytest.fixture
def reader(source_conn):
    return DuckDBSourceReader(connection=source_conn)


@pytest.fixture
def writer(dest_conn):
    return DuckDBDestinationWriter(connection=dest_conn)


@pytest.fixture
def copy_task(store, reader, writer):
    return CopyTask(store, reader, writer, batch_size=2)


@pytest.fixture
def make_job():
    """Factory for table jobs copying dbo.<table> into EDW_PSA.<table>"""

    def _make_job(table="customers", **overrides):
        fields = {
            "source_schema": "dbo",
            "source_table": table,
            "destination_schema": "EDW_PSA",
            "destination_table": table,
        }
        fields.update(overrides)
        return TableJob(**fields)

    return _make_job


@pytest.fixture
def orders_job(make_job):
    return make_job(
        "orders", load_type=LoadType.INCREMENTAL, watermark_column="ModifiedDate"
    )


@pytest.fixture
def destination_count(dest_conn):
    """Row count of a destination table"""

    def _count(table, schema="EDW_PSA"):
        return dest_conn.execute(f'SELECT COUNT(*) FROM "{schema}"."{table}"').fetchone()[0]

    return _count
