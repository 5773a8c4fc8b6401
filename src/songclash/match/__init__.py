"""
Matching Module: overlap statistics and playlist curation.

- Pure functions over a party snapshot
- No I/O, synchronous, hash-based set intersection
"""

__all__ = ["engine", "curator"]
