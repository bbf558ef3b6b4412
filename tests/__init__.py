"""
simplestore Test Suite.

This package contains:
- unit/: Unit tests for the store, the services and configuration
- integration/: Services and the HTTP API running against one in-memory store
"""
