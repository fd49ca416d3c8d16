"""
Core Utilities - Shared Plumbing

Logging setup, environment configuration, time helpers and the error taxonomy.
No imports from the pipeline layers.
"""
