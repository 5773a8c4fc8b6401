"""
PartyStore: authoritative, replicated record of each party.

Contract every adapter honours:
- create(code, party): atomic; fails with PartyAlreadyExistsError if the
  code is taken, never overwrites.
- get(code): point-in-time read, PartyNotFoundError if absent.
- upsert_member(code, member): merge by member_id against the current
  member list (replace in place, else append). Only that member's entry
  is written, so concurrent joins by different members never clobber
  each other.
- subscribe(code, on_change, on_removed): current value first, then every
  observed change; on_removed() once the record is gone.

Store and network errors other than the two above propagate unchanged.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from ..models import Member, Party

logger = logging.getLogger(__name__)

OnChange = Callable[[Party], None]
OnRemoved = Callable[[], None]


class PartyStoreError(Exception):
    """Base class for store outcomes callers are expected to handle."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class PartyNotFoundError(PartyStoreError):
    """The party code does not exist or the party has ended."""

    def __init__(self, code: str):
        super().__init__(code, f"Party {code} not found")


class PartyAlreadyExistsError(PartyStoreError):
    """A create landed on a code that is already in use."""

    def __init__(self, code: str):
        super().__init__(code, f"Party {code} already exists")


class Subscription:
    """Handle returned by PartyStore.subscribe()."""

    def __init__(self, hub: "SubscriptionHub", code: str, on_change: OnChange, on_removed: OnRemoved):
        self.code = code
        self.active = True
        self.delivered = False
        self._hub = hub
        self._on_change = on_change
        self._on_removed = on_removed

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._hub.remove(self)

    def deliver(self, party: Party) -> None:
        if not self.active:
            return
        self.delivered = True
        self._on_change(party)

    def deliver_removed(self) -> None:
        if not self.active:
            return
        self.active = False
        self._on_removed()

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"Subscription(code={self.code}, {state})"


class SubscriptionHub:
    """
    Fans snapshots out to the subscribers of each party code.

    Delivery is synchronous and in publish order. A failing callback is
    logged and does not stop delivery to the other subscribers.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = {}

    def add(self, code: str, on_change: OnChange, on_removed: OnRemoved) -> Subscription:
        sub = Subscription(self, code, on_change, on_removed)
        self._subscribers.setdefault(code, []).append(sub)
        logger.debug(f"Subscribed to party {code} ({len(self._subscribers[code])} subscribers)")
        return sub

    def remove(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.code, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscribers.pop(sub.code, None)

    def has_subscribers(self, code: str) -> bool:
        return bool(self._subscribers.get(code))

    def codes(self) -> List[str]:
        return list(self._subscribers)

    def publish(self, party: Party) -> None:
        for sub in list(self._subscribers.get(party.code, [])):
            try:
                sub.deliver(party)
            except Exception:
                logger.exception(f"Subscriber callback failed for party {party.code}")

    def publish_removed(self, code: str) -> None:
        for sub in self._subscribers.pop(code, []):
            try:
                sub.deliver_removed()
            except Exception:
                logger.exception(f"Removal callback failed for party {code}")


class PartyStore(ABC):
    """Async adapter contract for party persistence and change delivery."""

    def __init__(self):
        self._hub = SubscriptionHub()

    @abstractmethod
    async def create(self, code: str, party: Party) -> Party:
        """Write the initial record. Raises PartyAlreadyExistsError."""

    @abstractmethod
    async def get(self, code: str) -> Party:
        """Read the current record. Raises PartyNotFoundError."""

    @abstractmethod
    async def upsert_member(self, code: str, member: Member) -> Party:
        """Merge one member by member_id. Raises PartyNotFoundError."""

    @abstractmethod
    async def delete(self, code: str) -> None:
        """Remove a party record (expiry/administration)."""

    async def subscribe(self, code: str, on_change: OnChange, on_removed: OnRemoved) -> Subscription:
        """
        Watch a party.

        on_change(party) is called with the current value and then on every
        change; it may see the same snapshot twice. on_removed() is called
        once if the record is absent or disappears, after which the
        subscription is closed.
        """
        sub = self._hub.add(code, on_change, on_removed)
        try:
            party = await self.get(code)
        except PartyNotFoundError:
            self._hub.remove(sub)
            sub.deliver_removed()
            return sub

        # A write published while the read was in flight is at least as new
        if not sub.delivered:
            sub.deliver(party)
        if sub.active:
            await self._watch(code)
        return sub

    async def _watch(self, code: str) -> None:
        """Hook for adapters that must actively poll for remote changes."""

    @staticmethod
    def _check_code(code: str, party: Party) -> None:
        if party.code != code:
            raise ValueError(f"Party record code {party.code} does not match slot {code}")

    async def close(self) -> None:
        """Release adapter resources."""


class InMemoryPartyStore(PartyStore):
    """
    Single-process store.

    Writes take effect between awaits of the event loop, so each
    read-modify-write is atomic with respect to other coroutines.
    """

    def __init__(self):
        super().__init__()
        self._parties: Dict[str, Party] = {}

    async def create(self, code: str, party: Party) -> Party:
        self._check_code(code, party)
        if code in self._parties:
            raise PartyAlreadyExistsError(code)
        self._parties[code] = party
        logger.info(f"Created party {code} (host: {party.host_member_id})")
        self._hub.publish(party)
        return party

    async def get(self, code: str) -> Party:
        party: Optional[Party] = self._parties.get(code)
        if party is None:
            raise PartyNotFoundError(code)
        return party

    async def upsert_member(self, code: str, member: Member) -> Party:
        party = await self.get(code)
        if party.member(member.member_id) == member:
            logger.debug(f"Member {member.member_id} unchanged in party {code}")
            return party

        updated = party.with_member(member)
        self._parties[code] = updated
        logger.debug(
            f"Upserted member {member.member_id} into party {code} "
            f"({len(member.track_ids)} tracks, {len(updated.members)} members)"
        )
        self._hub.publish(updated)
        return updated

    async def delete(self, code: str) -> None:
        if self._parties.pop(code, None) is None:
            return
        logger.info(f"Deleted party {code}")
        self._hub.publish_removed(code)
