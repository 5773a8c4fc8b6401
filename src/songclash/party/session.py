"""
PartySession: one member's view of a party.

The store pushes immutable snapshots; every snapshot is run through the
match engine and curator, and the results replace the previous ones.
Nothing derived is ever patched in place.

Library fetches can take minutes. Each create/join/leave starts a new
generation, and a fetch that completes for an older generation (or for a
code that is no longer active) is discarded without writing anything.
"""

import logging
from typing import Callable, List, Optional

from ..config import Config
from ..library import LibraryFetcher, LibrarySource
from ..match.curator import CurationSettings, curate, estimated_minutes
from ..match.engine import compute
from ..models import MatchResult, Member, Party, Track, TrackSet
from .codes import PartyCodeGenerator, parse_join_code, share_link, synthesize_member_id
from .store import PartyAlreadyExistsError, PartyNotFoundError, PartyStore, Subscription

logger = logging.getLogger(__name__)

VIEW_WELCOME = "welcome"
VIEW_MENU = "menu"
VIEW_PARTY = "party"

DEFAULT_DISPLAY_NAME = "Songclash User"

NOTICE_NOT_FOUND = "Songclash not found. Please check the code."
NOTICE_ENDED = "Songclash ended or does not exist."
NOTICE_CREATE_FAILED = "Failed to create Songclash. Please try again."
NOTICE_JOIN_FAILED = "Failed to join Songclash. Please try again."
NOTICE_REFRESH_FAILED = "Failed to update your library. Please try again."


class NotAuthenticatedError(Exception):
    """A party action was attempted before authenticate()."""
    pass


class PartySession:
    """Client controller for creating, joining and following a party."""

    def __init__(
        self,
        store: PartyStore,
        config: Optional[Config] = None,
        fetcher: Optional[LibraryFetcher] = None,
        code_generator: Optional[PartyCodeGenerator] = None,
        on_update: Optional[Callable[["PartySession"], None]] = None,
    ):
        """
        Args:
            store: Party store adapter
            config: Loaded config (defaults if None)
            fetcher: Library fetcher (built from config["fetch"] if None)
            code_generator: Code generator (built from config["party"] if None)
            on_update: Called after every state change, for presentation
        """
        config = config or Config.defaults()
        self.store = store
        self.fetcher = fetcher or LibraryFetcher.from_config(config["fetch"])
        self.codes = code_generator or PartyCodeGenerator.from_config(config["party"])
        self.curation = CurationSettings(config["playlist"])
        self.create_attempts = config["party"].get("create_attempts", 3)
        self.base_url = config["share"].get("base_url", "https://songclash.app")
        self.on_update = on_update

        self.view = VIEW_WELCOME
        self.member_id: Optional[str] = None
        self.display_name: Optional[str] = None
        self.party_code = ""
        self.pending_join_code: Optional[str] = None
        self.notice: Optional[str] = None

        self.tracks = TrackSet()
        self.snapshot: Optional[Party] = None
        self.matches: Optional[MatchResult] = None
        self.playlist: List[Track] = []

        self._subscription: Optional[Subscription] = None
        self._generation = 0

    # -- identity --

    def remember_join_link(self, link_or_code: str) -> Optional[str]:
        """
        Record a code from a share link.

        Before authentication the code is held as pending and picked up by
        authenticate(); afterwards it becomes the code to join directly.
        """
        code = parse_join_code(link_or_code)
        if code is None:
            return None
        if self.member_id is None:
            self.pending_join_code = code
        else:
            self.party_code = code
        return code

    def authenticate(self, member_id: Optional[str] = None, display_name: str = DEFAULT_DISPLAY_NAME) -> Optional[str]:
        """
        Establish the local member and move to the menu.

        Returns:
            The pending join code, if one was waiting
        """
        self.member_id = member_id or synthesize_member_id()
        self.display_name = display_name
        self.view = VIEW_MENU
        logger.info(f"Authenticated as {self.display_name} ({self.member_id})")

        pending, self.pending_join_code = self.pending_join_code, None
        if pending:
            self.party_code = pending
        self._notify()
        return pending

    def logout(self) -> None:
        self._reset_to_menu()
        self.view = VIEW_WELCOME
        self.member_id = None
        self.display_name = None
        self.tracks = TrackSet()
        self._notify()

    # -- party lifecycle --

    async def create_party(self, source: LibrarySource) -> Optional[Party]:
        """
        Fetch the local library and host a new party.

        Returns:
            The created party, or None if the session moved on meanwhile
        """
        self._require_user()
        if self.view == VIEW_PARTY:
            self._reset_to_menu()
        generation = self._begin()
        self.notice = None

        try:
            tracks = await self.fetcher.fetch_all(source)
            if not self._is_current(generation):
                logger.warning("Discarding library fetched for an abandoned create")
                return None
            self.tracks = tracks

            created = await self._create_with_fresh_code(self._local_member())
        except Exception:
            logger.error("Error creating party", exc_info=True)
            self.notice = NOTICE_CREATE_FAILED
            self._notify()
            raise

        if not self._is_current(generation):
            logger.warning(f"Party {created.code} created after the session moved on")
            return None
        await self._enter(created.code, generation)
        return created

    async def _create_with_fresh_code(self, host: Member) -> Party:
        for attempt in range(1, self.create_attempts + 1):
            code = self.codes.generate()
            try:
                return await self.store.create(code, Party.start(code, host))
            except PartyAlreadyExistsError:
                if attempt == self.create_attempts:
                    raise
                logger.warning(f"Party code {code} taken, retrying ({attempt}/{self.create_attempts})")

    async def join_party(self, code: str, source: LibrarySource) -> Optional[Party]:
        """
        Join (or rejoin) a party with a freshly fetched library.

        Returns:
            The party snapshot after joining, or None if the code was not
            found or the session moved on during the fetch
        """
        self._require_user()
        code = code.strip()
        if self.view == VIEW_PARTY:
            self._reset_to_menu()
        generation = self._begin()
        self.party_code = code
        self.notice = None

        try:
            await self.store.get(code)
            tracks = await self.fetcher.fetch_all(source)
            if not self._is_current(generation, code):
                logger.warning(f"Discarding library fetched for abandoned party {code}")
                return None
            self.tracks = tracks

            await self.store.upsert_member(code, self._local_member())
        except PartyNotFoundError:
            logger.warning(f"Party {code} not found")
            if self._is_current(generation, code):
                self.notice = NOTICE_NOT_FOUND
                self._reset_to_menu()
                self._notify()
            return None
        except Exception:
            logger.error(f"Error joining party {code}", exc_info=True)
            if self._is_current(generation, code):
                self._reset_to_menu()
            self.notice = NOTICE_JOIN_FAILED
            self._notify()
            raise

        if not self._is_current(generation, code):
            return None
        logger.info(f"Joined party {code} as {self.display_name}")
        await self._enter(code, generation)
        return self.snapshot

    async def refresh_library(self, source: LibrarySource) -> Optional[Party]:
        """Re-fetch the local library and publish it to the current party."""
        self._require_user()
        code = self.party_code
        if self.view != VIEW_PARTY or not code:
            raise RuntimeError("Not in a party")
        generation = self._generation

        try:
            tracks = await self.fetcher.fetch_all(source)
            if not self._is_current(generation, code):
                logger.warning(f"Discarding library refresh for abandoned party {code}")
                return None
            self.tracks = tracks
            return await self.store.upsert_member(code, self._local_member())
        except PartyNotFoundError:
            # The subscription reports the removal; nothing else to do here
            logger.warning(f"Party {code} disappeared during library refresh")
            return None
        except Exception:
            logger.error(f"Error refreshing library for party {code}", exc_info=True)
            self.notice = NOTICE_REFRESH_FAILED
            self._notify()
            raise

    def leave_party(self) -> None:
        """Stop following the party and return to the menu."""
        if self.party_code:
            logger.info(f"Left party {self.party_code}")
        self._reset_to_menu()
        self._notify()

    # -- derived state --

    @property
    def estimated_minutes(self) -> int:
        return estimated_minutes(self.playlist, self.curation.avg_track_minutes)

    @property
    def share_link(self) -> Optional[str]:
        return share_link(self.base_url, self.party_code) if self.party_code else None

    def support(self, track_id: str) -> int:
        return self.matches.support(track_id) if self.matches else 0

    # -- store callbacks --

    def _on_change(self, party: Party) -> None:
        if party.code != self.party_code:
            logger.debug(f"Ignoring snapshot for inactive party {party.code}")
            return

        self.snapshot = party
        self.matches = compute(party)
        self.playlist = curate(self.matches, self.tracks.get, self.curation)
        logger.debug(
            f"Party {party.code} updated: {len(party.members)} members, "
            f"{len(self.playlist)} playlist tracks"
        )
        self._notify()

    def _on_removed(self) -> None:
        logger.info(f"Party {self.party_code} ended")
        self.notice = NOTICE_ENDED
        self._reset_to_menu()
        self._notify()

    # -- internals --

    def _require_user(self) -> None:
        if self.member_id is None:
            raise NotAuthenticatedError("authenticate() must be called first")

    def _local_member(self) -> Member:
        return Member.from_track_set(self.member_id, self.display_name, self.tracks)

    def _begin(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int, code: Optional[str] = None) -> bool:
        if generation != self._generation:
            return False
        return code is None or code == self.party_code

    async def _enter(self, code: str, generation: int) -> None:
        if not self._is_current(generation):
            logger.warning(f"Not entering party {code}: session moved on")
            return
        self._unsubscribe()
        self.party_code = code
        self.view = VIEW_PARTY
        subscription = await self.store.subscribe(code, self._on_change, self._on_removed)

        if not self._is_current(generation, code):
            subscription.unsubscribe()
            return
        if subscription.active:
            self._subscription = subscription

    def _unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _reset_to_menu(self) -> None:
        self._begin()
        self._unsubscribe()
        self.view = VIEW_MENU if self.member_id else VIEW_WELCOME
        self.party_code = ""
        self.snapshot = None
        self.matches = None
        self.playlist = []

    def _notify(self) -> None:
        if self.on_update:
            self.on_update(self)
