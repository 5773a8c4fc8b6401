"""
SQLite-backed PartyStore for Songclash.

One row per party plus one row per member, so an upsert only ever touches
the writing member's row. Every read-modify-write runs inside
BEGIN IMMEDIATE, which makes it atomic across processes sharing the file.

Each party carries a version counter bumped on every change. Subscribers in
other processes see changes by polling that counter; writes made through
this instance are published to local subscribers immediately.

Blocking sqlite calls run in a worker thread so the event loop never stalls.
"""

import asyncio
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager, suppress
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from .models import Member, Party
from .party.store import PartyAlreadyExistsError, PartyNotFoundError, PartyStore

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqlitePartyStore(PartyStore):
    """SQLite database manager for party records."""

    SCHEMA_VERSION = 1

    SCHEMA = """
    -- Parties table: one row per party code
    CREATE TABLE IF NOT EXISTS parties (
        code TEXT PRIMARY KEY,
        host TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        updated_at TEXT NOT NULL
    );

    -- Members: one row per member, written only by that member's client
    CREATE TABLE IF NOT EXISTS party_members (
        code TEXT NOT NULL,
        member_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        name TEXT NOT NULL,
        liked_songs TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (code, member_id),
        FOREIGN KEY (code) REFERENCES parties(code) ON DELETE CASCADE
    );

    -- Schema version tracking
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_party_members_position ON party_members(code, position);
    """

    def __init__(self, db_path: str = "data/db/parties.sqlite", poll_interval: float = 1.0):
        """
        Initialize store.

        Args:
            db_path: Path to SQLite database file (":memory:" for a private store).
            poll_interval: Seconds between change polls for subscribed parties; 0 disables.
        """
        super().__init__()
        self.db_path = db_path
        self.poll_interval = poll_interval
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._seen_versions: Dict[str, int] = {}
        self._watchers: Dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(cls, config: dict) -> "SqlitePartyStore":
        """Build from the [store] config section."""
        return cls(
            db_path=config.get("db_path", "data/db/parties.sqlite"),
            poll_interval=config.get("poll_interval_seconds", 1.0),
        )

    def connect(self) -> None:
        """Open database connection and initialize schema."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None, timeout=10.0
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        logger.info(f"Connected to party store: {self.db_path}")
        self._initialize_schema()

    def disconnect(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
                logger.info("Party store disconnected")

    def _initialize_schema(self) -> None:
        """Initialize or check schema."""
        with self._transaction() as cursor:
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
            )
            if not cursor.fetchone():
                logger.info("Initializing party store schema...")
                for statement in self.SCHEMA.split(";"):
                    if statement.strip():
                        cursor.execute(statement)
                cursor.execute(
                    "INSERT INTO schema_version (version, updated_at) VALUES (?, ?)",
                    (self.SCHEMA_VERSION, _utcnow()),
                )
                logger.info(f"✅ Party store schema initialized (v{self.SCHEMA_VERSION})")
                return

            cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
            current_version = cursor.fetchone()[0]
            if current_version < self.SCHEMA_VERSION:
                logger.warning(
                    f"Schema version mismatch: {current_version} < {self.SCHEMA_VERSION}. "
                    f"Consider running migration."
                )

    @contextmanager
    def _transaction(self, immediate: bool = True) -> Iterator[sqlite3.Cursor]:
        """Serialised transaction on the shared connection."""
        if self.conn is None:
            raise RuntimeError("Party store is not connected; call connect() first")
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            try:
                yield cursor
            except BaseException:
                cursor.execute("ROLLBACK")
                raise
            else:
                cursor.execute("COMMIT")

    # -- synchronous primitives, run in a worker thread --

    @staticmethod
    def _read(cursor: sqlite3.Cursor, code: str) -> Optional[Tuple[Party, int]]:
        cursor.execute("SELECT host, created_at, version FROM parties WHERE code = ?", (code,))
        row = cursor.fetchone()
        if not row:
            return None

        cursor.execute(
            "SELECT member_id, name, liked_songs FROM party_members WHERE code = ? ORDER BY position",
            (code,),
        )
        members = tuple(
            Member(m["member_id"], m["name"], tuple(json.loads(m["liked_songs"])))
            for m in cursor.fetchall()
        )
        party = Party(code=code, host_member_id=row["host"], members=members, created_at=row["created_at"])
        return party, row["version"]

    def _create_sync(self, code: str, party: Party) -> Tuple[Party, int]:
        now = _utcnow()
        with self._transaction() as cursor:
            try:
                cursor.execute(
                    "INSERT INTO parties (code, host, created_at, version, updated_at) VALUES (?, ?, ?, 1, ?)",
                    (code, party.host_member_id, party.created_at, now),
                )
            except sqlite3.IntegrityError as e:
                raise PartyAlreadyExistsError(code) from e

            cursor.executemany(
                """
                INSERT INTO party_members (code, member_id, position, name, liked_songs, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (code, m.member_id, pos, m.display_name, json.dumps(list(m.track_ids)), now)
                    for pos, m in enumerate(party.members)
                ],
            )
            return self._read(cursor, code)

    def _snapshot_sync(self, code: str) -> Optional[Tuple[Party, int]]:
        with self._transaction(immediate=False) as cursor:
            return self._read(cursor, code)

    def _upsert_sync(self, code: str, member: Member) -> Tuple[Party, int, bool]:
        songs = json.dumps(list(member.track_ids))
        now = _utcnow()
        with self._transaction() as cursor:
            cursor.execute("SELECT 1 FROM parties WHERE code = ?", (code,))
            if not cursor.fetchone():
                raise PartyNotFoundError(code)

            cursor.execute(
                "SELECT name, liked_songs FROM party_members WHERE code = ? AND member_id = ?",
                (code, member.member_id),
            )
            existing = cursor.fetchone()

            if existing and existing["name"] == member.display_name and existing["liked_songs"] == songs:
                party, version = self._read(cursor, code)
                return party, version, False

            if existing:
                cursor.execute(
                    """
                    UPDATE party_members SET name = ?, liked_songs = ?, updated_at = ?
                    WHERE code = ? AND member_id = ?
                    """,
                    (member.display_name, songs, now, code, member.member_id),
                )
            else:
                cursor.execute(
                    """
                    INSERT INTO party_members (code, member_id, position, name, liked_songs, updated_at)
                    VALUES (?, ?, (SELECT COALESCE(MAX(position) + 1, 0) FROM party_members WHERE code = ?), ?, ?, ?)
                    """,
                    (code, member.member_id, code, member.display_name, songs, now),
                )

            cursor.execute(
                "UPDATE parties SET version = version + 1, updated_at = ? WHERE code = ?",
                (now, code),
            )
            party, version = self._read(cursor, code)
            return party, version, True

    def _delete_sync(self, code: str) -> bool:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM party_members WHERE code = ?", (code,))
            cursor.execute("DELETE FROM parties WHERE code = ?", (code,))
            return cursor.rowcount > 0

    def _advance(self, code: str, version: int) -> bool:
        """Record version as seen if it is newer than the last one published."""
        seen = self._seen_versions.get(code)
        if seen is not None and version <= seen:
            return False
        self._seen_versions[code] = version
        return True

    # -- PartyStore contract --

    async def create(self, code: str, party: Party) -> Party:
        self._check_code(code, party)
        created, version = await asyncio.to_thread(self._create_sync, code, party)
        self._seen_versions[code] = version
        logger.info(f"Created party {code} (host: {party.host_member_id})")
        self._hub.publish(created)
        return created

    async def get(self, code: str) -> Party:
        result = await asyncio.to_thread(self._snapshot_sync, code)
        if result is None:
            raise PartyNotFoundError(code)
        return result[0]

    async def upsert_member(self, code: str, member: Member) -> Party:
        party, version, changed = await asyncio.to_thread(self._upsert_sync, code, member)
        if not changed:
            logger.debug(f"Member {member.member_id} unchanged in party {code}")
            return party

        if not self._advance(code, version):
            logger.debug(f"Upsert of {member.member_id} in party {code} already superseded (v{version})")
            return party

        logger.debug(
            f"Upserted member {member.member_id} into party {code} "
            f"(v{version}, {len(party.members)} members)"
        )
        self._hub.publish(party)
        return party

    async def delete(self, code: str) -> None:
        removed = await asyncio.to_thread(self._delete_sync, code)
        self._seen_versions.pop(code, None)
        if removed:
            logger.info(f"Deleted party {code}")
            self._hub.publish_removed(code)

    async def _watch(self, code: str) -> None:
        if self.poll_interval <= 0 or code in self._watchers:
            return
        self._watchers[code] = asyncio.create_task(self._poll(code))

    async def _poll(self, code: str) -> None:
        """Publish changes made by other processes until nobody is subscribed."""
        logger.debug(f"Polling party {code} every {self.poll_interval}s")
        try:
            while self._hub.has_subscribers(code):
                await asyncio.sleep(self.poll_interval)
                if not self._hub.has_subscribers(code):
                    break

                try:
                    result = await asyncio.to_thread(self._snapshot_sync, code)
                except sqlite3.Error as e:
                    logger.warning(f"Poll of party {code} failed: {e}")
                    continue

                if result is None:
                    logger.info(f"Party {code} no longer exists")
                    self._seen_versions.pop(code, None)
                    self._hub.publish_removed(code)
                    break

                party, version = result
                if self._advance(code, version):
                    self._hub.publish(party)
        finally:
            self._watchers.pop(code, None)

    async def close(self) -> None:
        """Stop pollers and close the connection."""
        watchers = list(self._watchers.values())
        for task in watchers:
            task.cancel()
        for task in watchers:
            with suppress(asyncio.CancelledError):
                await task
        self.disconnect()
