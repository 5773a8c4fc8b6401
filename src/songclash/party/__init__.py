"""
Party Module: shared party sessions.

- Short URL-safe codes, shared via ?join= links
- Store contract: atomic create, member-scoped upsert, change subscription
- Client session: snapshots in, matches and playlist recomputed on each
"""

__all__ = ["codes", "store", "session"]
