"""
Registry Seeding Tests - pattern rules and catalog-driven registration
"""

import json

import polars as pl
import pytest

from metaingest.orchestration.registry_seeding import seed_registry
from metaingest.transformation.schemas import LoadType
from metaingest.transformation.seeding import (
    SchemaSeedPolicy,
    SeedPolicy,
    SeedRule,
    build_table_jobs,
    default_seed_policy,
    load_seed_policy,
)


def catalog(*pairs):
    return pl.DataFrame(
        {"table_schema": [s for s, _ in pairs], "table_name": [t for _, t in pairs]}
    )


@pytest.fixture
def default_jobs():
    df = catalog(
        ("dbo", "hub_all_State"),
        ("dbo", "hub_core_audit_records"),
        ("dbo", "hub_clk_Users"),
        ("dbo", "Orders_Staging"),
        ("dbo", "Customers"),
        ("dbo", "sysdiagrams"),
        ("archive", "OldOrders"),
        ("sales", "Ignored"),
    )
    return {job.source_table: job for job in build_table_jobs(df, default_seed_policy())}


def test_default_policy_lookup_table(default_jobs):
    job = default_jobs["hub_all_State"]
    assert (job.load_type, job.watermark_column, job.priority) == (
        LoadType.INCREMENTAL,
        "ModifiedDate",
        1,
    )
    assert job.destination_schema == "EDW_PSA"


def test_default_policy_large_table_with_watermark_override(default_jobs):
    job = default_jobs["hub_core_audit_records"]
    assert (job.load_type, job.watermark_column, job.priority) == (
        LoadType.INCREMENTAL,
        "CreatedDate",
        3,
    )


def test_default_policy_clock_table(default_jobs):
    job = default_jobs["hub_clk_Users"]
    assert (job.watermark_column, job.priority) == ("UpdatedDate", 2)


def test_default_policy_staging_and_plain_tables(default_jobs):
    staging = default_jobs["Orders_Staging"]
    plain = default_jobs["Customers"]

    assert (staging.load_type, staging.watermark_column, staging.priority) == (
        LoadType.FULL,
        None,
        2,
    )
    assert (plain.load_type, plain.priority) == (LoadType.FULL, 3)


def test_default_policy_archive_and_exclusions(default_jobs):
    archive = default_jobs["OldOrders"]

    assert archive.destination_schema == "EDW_PSA_ARCHIVE"
    assert (archive.load_type, archive.priority) == (LoadType.FULL, 4)
    assert "sysdiagrams" not in default_jobs
    assert "Ignored" not in default_jobs


def test_staging_pattern_matches_like_wildcard():
    jobs = build_table_jobs(
        catalog(("dbo", "FooStaging"), ("dbo", "Staging")), default_seed_policy()
    )
    by_name = {job.source_table: job for job in jobs}

    assert (by_name["FooStaging"].load_type, by_name["FooStaging"].priority) == (LoadType.FULL, 2)
    assert by_name["Staging"].priority == 3


def test_build_table_jobs_skips_existing_and_sorts():
    df = catalog(("dbo", "b"), ("dbo", "a"), ("dbo", "c"))
    policy = SeedPolicy(
        schemas=[
            SchemaSeedPolicy(
                source_schema="dbo",
                destination_schema="stage",
                rules=[SeedRule(patterns=["c"], priority=1)],
            )
        ]
    )

    jobs = build_table_jobs(df, policy, existing_keys=[("dbo", "b")])

    assert [job.source_table for job in jobs] == ["c", "a"]


def test_build_table_jobs_requires_catalog_columns():
    with pytest.raises(ValueError):
        build_table_jobs(pl.DataFrame({"name": ["x"]}), default_seed_policy())


def test_watermark_dropped_when_rule_makes_load_full():
    policy = SchemaSeedPolicy(
        source_schema="dbo",
        destination_schema="stage",
        default_load_type=LoadType.INCREMENTAL,
        default_watermark_column="ModifiedDate",
        rules=[SeedRule(patterns=["*_Staging"], load_type=LoadType.FULL)],
    )

    assert policy.resolve("x_Staging") == (LoadType.FULL, None, 3)
    assert policy.resolve("orders") == (LoadType.INCREMENTAL, "ModifiedDate", 3)


def test_load_seed_policy_from_json(tmp_path):
    path = tmp_path / "policy.json"
    path.write_text(
        json.dumps(
            {
                "schemas": [
                    {
                        "source_schema": "dbo",
                        "destination_schema": "stage",
                        "rules": [
                            {
                                "patterns": ["orders"],
                                "load_type": "INCREMENTAL",
                                "watermark_column": "ModifiedDate",
                            }
                        ],
                        "inactive_tables": ["customers"],
                    }
                ]
            }
        )
    )

    policy = load_seed_policy(path)

    assert policy.for_schema("dbo").destination_schema == "stage"
    assert policy.for_schema("archive") is None
    assert policy.excluded_tables == ["sysdiagrams", "dtproperties"]


def test_load_seed_policy_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_seed_policy(tmp_path / "nope.json")


def test_seed_registry_registers_catalog_tables_once(store, reader):
    policy = SeedPolicy(
        schemas=[
            SchemaSeedPolicy(
                source_schema="dbo",
                destination_schema="EDW_PSA",
                rules=[
                    SeedRule(
                        patterns=["orders"],
                        load_type=LoadType.INCREMENTAL,
                        watermark_column="ModifiedDate",
                        priority=1,
                    )
                ],
                inactive_tables=["customers"],
            )
        ]
    )

    registered = seed_registry(store, reader, policy=policy)

    assert [job.source_table for job in registered] == ["orders", "customers"]
    assert all(job.config_id is not None for job in registered)
    assert [job.source_table for job in store.list_active_jobs()] == ["orders"]
    assert seed_registry(store, reader, policy=policy) == []


def test_seed_registry_dry_run_writes_nothing(store, reader):
    jobs = seed_registry(store, reader, dry_run=True)

    assert {job.source_table for job in jobs} == {"customers", "orders"}
    assert store.list_jobs() == []
