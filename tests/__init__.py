"""
Checkpoint Archiver Test Suite.

This package contains:
- unit/: Unit tests (stores, index, gap detection, gc, config, pruner)
- integration/: Handler cycles against filesystem and in-memory stores
"""
