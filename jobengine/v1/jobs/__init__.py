"""
Background job engine.

This package provides a per-tenant job system with:
- A JobStore contract with in-memory and SQLAlchemy implementations
- Registry-based pluggable handlers
- A polling dispatcher with atomic claims and exponential backoff retries
- Stats and retention cleanup
"""
