"""
Registry Seeding Rules - Transform Layer

Turns a source catalog listing into table jobs using ordered name-pattern
rules. Rules are applied in order and each matching rule overwrites only the
fields it sets, so later rules refine earlier ones.
"""

import json
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

import polars as pl
import logging
from pydantic import BaseModel, Field

from .schemas import LoadType, TableJob
from .validators import sort_jobs

logger = logging.getLogger(__name__)

CATALOG_COLUMNS = ["table_schema", "table_name"]


class SeedRule(BaseModel):
    """Pattern rule deciding load settings for matching table names"""

    patterns: List[str] = Field(..., description="fnmatch patterns on the table name")
    load_type: Optional[LoadType] = None
    watermark_column: Optional[str] = None
    priority: Optional[int] = None

    def matches(self, table_name: str) -> bool:
        return any(fnmatchcase(table_name, pattern) for pattern in self.patterns)


class SchemaSeedPolicy(BaseModel):
    """How one source schema is mapped into the registry"""

    source_schema: str
    destination_schema: str
    default_load_type: LoadType = LoadType.FULL
    default_watermark_column: Optional[str] = None
    default_priority: int = 3
    rules: List[SeedRule] = Field(default_factory=list)
    watermark_overrides: Dict[str, str] = Field(
        default_factory=dict, description="table name -> watermark column"
    )
    inactive_tables: List[str] = Field(default_factory=list)

    def resolve(self, table_name: str) -> Tuple[LoadType, Optional[str], int]:
        """Apply defaults, rules and overrides for one table"""
        load_type = self.default_load_type
        watermark_column = self.default_watermark_column
        priority = self.default_priority

        for rule in self.rules:
            if not rule.matches(table_name):
                continue
            if rule.load_type is not None:
                load_type = rule.load_type
            if rule.watermark_column is not None:
                watermark_column = rule.watermark_column
            if rule.priority is not None:
                priority = rule.priority

        watermark_column = self.watermark_overrides.get(table_name, watermark_column)

        # only incremental loads carry a watermark column
        if load_type != LoadType.INCREMENTAL:
            watermark_column = None

        return load_type, watermark_column, priority


class SeedPolicy(BaseModel):
    """Complete seeding policy across source schemas"""

    schemas: List[SchemaSeedPolicy] = Field(default_factory=list)
    excluded_tables: List[str] = Field(
        default_factory=lambda: ["sysdiagrams", "dtproperties"]
    )

    def for_schema(self, source_schema: str) -> Optional[SchemaSeedPolicy]:
        for policy in self.schemas:
            if policy.source_schema == source_schema:
                return policy
        return None


LOOKUP_TABLES = [
    "FlagTypes",
    "hub_all_YesNo",
    "hub_all_State",
    "hub_all_Team",
    "hub_AgencyType",
    "hub_all_Lender",
    "hub_BANKNAME",
    "hub_all_Process",
    "hub_chk_Status",
    "hub_AR_Division",
]

LARGE_TRANSACTION_TABLES = [
    "hub_core_audit_records",
    "hub_core_fulfillment_orders",
    "hub_AR_TransactionPaymentHistory",
    "hub_AP_InvoiceHistoryDetail",
    "hub_AR_InvoiceHistoryDetail",
    "hub_ASM_BACMonthlyDetail",
]


def default_seed_policy() -> SeedPolicy:
    """
    Default policy for an EDW_PSA style source

    - *_Staging tables: FULL, medium priority
    - hub_* tables: INCREMENTAL on ModifiedDate
    - small lookup tables first, large transaction tables last
    - archive schema: FULL, lowest priority
    """
    watermark_overrides = {}
    for column, tables in {
        "CreatedDate": [
            "hub_core_audit_records",
            "hub_ExecutionLog",
            "hub_core_integration_bi_dailyfeeds",
        ],
        "LastModified": ["hub_core_customers", "hub_core_business_rules", "hub_AR_Customer"],
        "UpdatedDate": ["hub_clk_TimeEntries", "hub_clk_Users", "hub_clk_Projects"],
    }.items():
        watermark_overrides.update({table: column for table in tables})

    # LIKE '%_Staging': any name with at least one character before "Staging"
    staging = ["*?Staging", "*?staging"]

    return SeedPolicy(
        schemas=[
            SchemaSeedPolicy(
                source_schema="dbo",
                destination_schema="EDW_PSA",
                default_priority=3,
                rules=[
                    SeedRule(patterns=staging, load_type=LoadType.FULL, priority=2),
                    SeedRule(
                        patterns=["hub_*"],
                        load_type=LoadType.INCREMENTAL,
                        watermark_column="ModifiedDate",
                    ),
                    SeedRule(patterns=LOOKUP_TABLES, priority=1),
                    SeedRule(patterns=staging + ["hub_clk_*", "hub_cor_*"], priority=2),
                    SeedRule(patterns=LARGE_TRANSACTION_TABLES, priority=3),
                ],
                watermark_overrides=watermark_overrides,
            ),
            SchemaSeedPolicy(
                source_schema="archive",
                destination_schema="EDW_PSA_ARCHIVE",
                default_priority=4,
            ),
        ]
    )


def load_seed_policy(path: Union[str, Path]) -> SeedPolicy:
    """
    Load a seeding policy from a JSON file

    Args:
        path: Path to the JSON policy

    Returns:
        SeedPolicy: Parsed policy
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Seed policy not found: {path}")

    with open(path, "r") as f:
        data = json.load(f)

    return SeedPolicy.model_validate(data)


def build_table_jobs(
    catalog_df: pl.DataFrame,
    policy: SeedPolicy,
    existing_keys: Optional[Iterable[Tuple[str, str]]] = None,
) -> List[TableJob]:
    """
    Build registry entries for catalog tables covered by the policy

    Args:
        catalog_df: Source catalog with table_schema and table_name columns
        policy: Seeding policy
        existing_keys: (schema, table) pairs already registered; these are skipped

    Returns:
        List[TableJob]: New jobs in scheduling order
    """
    missing = [c for c in CATALOG_COLUMNS if c not in catalog_df.columns]
    if missing:
        raise ValueError(f"Catalog is missing columns: {missing}")

    existing: Set[Tuple[str, str]] = set(existing_keys or [])
    excluded = set(policy.excluded_tables)
    jobs = []

    for row in catalog_df.select(CATALOG_COLUMNS).iter_rows(named=True):
        schema, table = row["table_schema"], row["table_name"]
        schema_policy = policy.for_schema(schema)
        if schema_policy is None or table in excluded:
            continue
        if (schema, table) in existing:
            logger.debug(f"Skipping already registered table {schema}.{table}")
            continue

        load_type, watermark_column, priority = schema_policy.resolve(table)
        jobs.append(
            TableJob(
                source_schema=schema,
                source_table=table,
                destination_schema=schema_policy.destination_schema,
                destination_table=table,
                load_type=load_type,
                watermark_column=watermark_column,
                is_active=table not in schema_policy.inactive_tables,
                priority=priority,
            )
        )

    logger.info(f"Built {len(jobs)} table jobs from {catalog_df.height} catalog tables")
    return sort_jobs(jobs)
