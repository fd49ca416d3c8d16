"""
Transformation Layer - Pure, Deterministic Functions

This layer contains the control-plane business rules.
- Record schemas for jobs and log entries
- Job validation, watermark arithmetic, row-count checks
- Registry seeding rules
- No database access
"""
