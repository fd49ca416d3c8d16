"""
Registry Seeding - Orchestration Layer

Populates the table registry from the source catalog using a seeding policy.
Existing registry entries are never overwritten.
"""

from typing import List, Optional

import logging

from ..coreutils.errors import UniquenessViolation
from ..extract.source_reader import SourceReader
from ..load.metadata_store import MetadataStore
from ..transformation.schemas import TableJob
from ..transformation.seeding import SeedPolicy, build_table_jobs, default_seed_policy

logger = logging.getLogger(__name__)


def seed_registry(
    store: MetadataStore,
    reader: SourceReader,
    policy: Optional[SeedPolicy] = None,
    dry_run: bool = False,
) -> List[TableJob]:
    """
    Register every catalog table covered by the policy

    Args:
        store: Metadata store receiving the jobs
        reader: Source reader providing the catalog
        policy: Seeding policy (defaults to default_seed_policy())
        dry_run: Build the jobs without writing them

    Returns:
        List[TableJob]: Jobs that were (or would be) registered
    """
    policy = policy or default_seed_policy()
    schemas = [schema_policy.source_schema for schema_policy in policy.schemas]

    logger.info(f"🔍 Listing source tables in schemas: {schemas}")
    catalog_df = reader.list_tables(schemas)

    existing = [job.key for job in store.list_jobs()]
    jobs = build_table_jobs(catalog_df, policy, existing)

    if dry_run:
        logger.info(f"🔍 DRY RUN: would register {len(jobs)} table jobs")
        return jobs

    registered = []
    for job in jobs:
        try:
            registered.append(store.add_job(job))
        except UniquenessViolation as e:
            # registered concurrently since the listing above
            logger.warning(f"⚠️ {e}")

    logger.info(f"✅ Registered {len(registered)} new table jobs")
    return registered
