"""
CLI Tests - end-to-end runs against DuckDB files
"""

import duckdb
import pytest

from metaingest.main import build_parser, main


@pytest.fixture
def databases(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("METAINGEST_LOG_DIR", str(tmp_path / "logs"))

    source = tmp_path / "source.duckdb"
    conn = duckdb.connect(str(source))
    conn.execute("CREATE SCHEMA dbo")
    conn.execute("CREATE TABLE dbo.hub_orders (id INTEGER, ModifiedDate TIMESTAMP)")
    conn.execute(
        "INSERT INTO dbo.hub_orders VALUES (1, '2024-01-01 00:00:00'), (2, '2024-01-02 00:00:00')"
    )
    conn.execute("CREATE TABLE dbo.Customer_Staging (id INTEGER, name VARCHAR)")
    conn.execute("INSERT INTO dbo.Customer_Staging VALUES (1, 'alice')")
    conn.close()

    return [
        "--metadata-db",
        str(tmp_path / "metadata.duckdb"),
        "--source-db",
        str(source),
        "--destination-db",
        str(tmp_path / "destination.duckdb"),
    ]


def test_init_seed_run_status(databases, tmp_path, capsys):
    assert main(databases + ["init-db"]) == 0
    assert main(databases + ["seed"]) == 0
    assert main(databases + ["run", "--concurrency", "2"]) == 0

    output = capsys.readouterr().out
    assert "dbo.hub_orders -> EDW_PSA.hub_orders INCREMENTAL" in output
    assert "2/2 tables succeeded" in output

    conn = duckdb.connect(str(tmp_path / "destination.duckdb"))
    try:
        assert conn.execute('SELECT COUNT(*) FROM "EDW_PSA"."hub_orders"').fetchone()[0] == 2
        assert conn.execute('SELECT COUNT(*) FROM "EDW_PSA"."Customer_Staging"').fetchone()[0] == 1
    finally:
        conn.close()

    assert main(databases + ["status"]) == 0
    assert "Master runs" in capsys.readouterr().out


def test_seed_dry_run_registers_nothing(databases, capsys):
    main(databases + ["init-db"])

    assert main(databases + ["seed", "--dry-run"]) == 0
    assert main(databases + ["run"]) == 0
    assert "0/0 tables succeeded" in capsys.readouterr().out


def test_register_and_set_active(databases, capsys):
    main(databases + ["init-db"])

    assert main(databases + ["register", "dbo", "hub_orders", "--load-type", "incremental",
                             "--watermark-column", "ModifiedDate"]) == 0
    assert main(databases + ["register", "dbo", "hub_orders"]) == 1
    assert main(databases + ["set-active", "dbo", "hub_orders", "--inactive"]) == 0
    assert main(databases + ["set-active", "dbo", "nope"]) == 1
    assert main(databases + ["run"]) == 0
    assert "0/0 tables succeeded" in capsys.readouterr().out


def test_status_for_unknown_run(databases):
    main(databases + ["init-db"])

    assert main(databases + ["status", "--run-id", "nope"]) == 1


def test_run_without_init_records_nothing_and_fails(databases):
    assert main(databases + ["run"]) == 1


def test_bad_environment_exits_early(databases, monkeypatch):
    monkeypatch.setenv("METAINGEST_CONCURRENCY_LIMIT", "zero")

    assert main(databases + ["init-db"]) == 2


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
