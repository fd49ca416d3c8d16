"""
Extract Layer - Pure I/O Against Source Databases

This layer handles all source data access with no business logic.
- No imports from the load or orchestration layers
- Full-table and watermark-filtered scans returned as polars batches
- Independent row counts and catalog listings
"""
