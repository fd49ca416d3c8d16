"""
Orchestration Layer - Workflow Coordination

This layer coordinates ingestion runs.
- Pure workflow coordination over the extract, transform and load layers
- Copy task per table, run coordinator per run, recurring scheduler
"""
