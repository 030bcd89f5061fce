"""
docblob Test Suite.

This package contains:
- unit/: Unit tests (in-memory blob store, stub S3 client)
- integration/: CollectionStore against a mocked GitHub contents API
"""
