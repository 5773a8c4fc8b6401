"""Shared fixtures for Songclash tests."""

import pytest

from songclash.db import SqlitePartyStore
from songclash.models import Member, Party, Track, TrackSet
from songclash.party.store import InMemoryPartyStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def alice():
    return Member("alice-id", "Alice", ("1", "2", "3"))


@pytest.fixture
def bob():
    return Member("bob-id", "Bob", ("2", "3", "4"))


@pytest.fixture
def party(alice, bob):
    """Alice hosts, Bob has joined."""
    return Party.start("123456", alice, created_at=1700000000000).with_member(bob)


@pytest.fixture
def alice_tracks():
    return TrackSet(
        [
            Track("1", "One", "Artist A"),
            Track("2", "Two", "Artist B"),
            Track("3", "Three", "Artist C"),
        ]
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Each store adapter, with polling disabled."""
    if request.param == "memory":
        yield InMemoryPartyStore()
        return

    sqlite_store = SqlitePartyStore(str(tmp_path / "parties.sqlite"), poll_interval=0)
    sqlite_store.connect()
    yield sqlite_store
    sqlite_store.disconnect()
