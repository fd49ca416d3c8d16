"""
Load Layer - Data Persistence

This layer handles all persistence operations.
- Control plane: table registry and execution logs (metadata_store)
- Destination tables: truncate, bulk append, row counts (destination_writer)
- No business logic, just I/O operations
"""
