"""
Library fetching: enumerate a member's library into a TrackSet.

Provider specifics live behind LibrarySource. The fetcher handles:
- Offset/limit pagination with a hard cap per listing (guaranteed to end)
- Deduplication by track id (first occurrence wins)
- Partial failure: a playlist that fails to load is skipped
- Listing failure: raised as LibraryFetchError, never returned as a
  silently truncated library
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .models import Track, TrackSet

logger = logging.getLogger(__name__)

SONG_TYPES = frozenset({"songs", "library-songs"})

Progress = Callable[[str], None]
PageRequest = Callable[[int, int], Awaitable[List[Dict[str, Any]]]]


class LibraryFetchError(Exception):
    """A library listing could not be fetched completely."""
    pass


class LibrarySource(ABC):
    """Provider adapter (one per authenticated member)."""

    @abstractmethod
    async def library_songs(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        """One page of saved songs."""

    @abstractmethod
    async def playlists(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        """One page of playlists ({id, name})."""

    @abstractmethod
    async def playlist_tracks(self, playlist_id: str) -> List[Dict[str, Any]]:
        """All tracks of one playlist."""


def track_from_item(item: Dict[str, Any]) -> Optional[Track]:
    """
    Normalise a provider item into a Track.

    Accepts flat items ({id, name, artists}) and catalog-style items
    ({id, type, attributes: {name, artistName}}). Non-song items give None.
    """
    item_type = item.get("type")
    if item_type is not None and item_type not in SONG_TYPES:
        return None

    track_id = item.get("id")
    if not track_id:
        return None

    attributes = item.get("attributes") or {}
    name = item.get("name", attributes.get("name", ""))
    artists = item.get("artists", attributes.get("artistName", ""))
    if isinstance(artists, list):
        artists = ", ".join(a.get("name", "") if isinstance(a, dict) else str(a) for a in artists)
    return Track(id=str(track_id), name=name or "", artists=artists or "")


class LibraryFetcher:
    """Paginated, deduplicating library fetcher."""

    def __init__(self, page_size: int = 100, max_items: int = 5000, progress: Optional[Progress] = None):
        """
        Args:
            page_size: Items requested per page
            max_items: Hard cap on items fetched per listing
            progress: Optional callback receiving status lines
        """
        self.page_size = page_size
        self.max_items = max_items
        self.progress = progress

    @classmethod
    def from_config(cls, config: dict, progress: Optional[Progress] = None) -> "LibraryFetcher":
        """Build from the [fetch] config section."""
        return cls(
            page_size=config.get("page_size", 100),
            max_items=config.get("max_items", 5000),
            progress=progress,
        )

    def _report(self, message: str) -> None:
        logger.debug(message)
        if self.progress:
            self.progress(message)

    async def _paginate(self, request: PageRequest, label: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        offset = 0

        while offset < self.max_items:
            limit = min(self.page_size, self.max_items - offset)
            try:
                page = await request(offset, limit)
            except Exception as e:
                raise LibraryFetchError(f"Failed to fetch {label} at offset {offset}: {e}") from e

            if not page:
                break
            page = page[:limit]
            items.extend(page)
            offset += len(page)
            self._report(f"Fetched {len(items)} {label}...")

            if len(page) < limit:
                break
        else:
            logger.warning(f"Stopped fetching {label} at the {self.max_items} item limit")

        return items

    async def fetch_all(self, source: LibrarySource) -> TrackSet:
        """
        Fetch saved songs and every playlist's tracks.

        Returns:
            Deduplicated TrackSet

        Raises:
            LibraryFetchError: If the songs or playlists listing fails
        """
        tracks = TrackSet()

        self._report("Fetching library songs...")
        for item in await self._paginate(source.library_songs, "library songs"):
            track = track_from_item(item)
            if track:
                tracks.add(track)

        self._report("Fetching playlists...")
        playlists = await self._paginate(source.playlists, "playlists")

        skipped = 0
        for idx, playlist in enumerate(playlists, 1):
            name = playlist.get("name") or (playlist.get("attributes") or {}).get("name", "")
            self._report(f"Scanning playlist {idx}/{len(playlists)}: {name}")
            try:
                items = await source.playlist_tracks(playlist["id"])
            except Exception as e:
                skipped += 1
                logger.warning(f"Failed to fetch playlist {playlist.get('id')} ({name}): {e}")
                continue

            for item in items:
                track = track_from_item(item)
                if track:
                    tracks.add(track)

        logger.info(
            f"✅ Library fetched: {len(tracks)} unique tracks "
            f"({len(playlists)} playlists, {skipped} skipped)"
        )
        return tracks


class JsonLibrarySource(LibrarySource):
    """
    Library export file as a source.

    Format: {"songs": [...], "playlists": [{"id", "name", "tracks": [...]}]}
    """

    def __init__(self, path: str):
        self.path = Path(path)
        with open(self.path) as f:
            data = json.load(f)
        self._songs: List[Dict[str, Any]] = data.get("songs", [])
        self._playlists: List[Dict[str, Any]] = data.get("playlists", [])
        logger.debug(f"Loaded library export {self.path}: {len(self._songs)} songs")

    async def library_songs(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        return self._songs[offset:offset + limit]

    async def playlists(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        return [
            {"id": p.get("id"), "name": p.get("name", "")}
            for p in self._playlists[offset:offset + limit]
        ]

    async def playlist_tracks(self, playlist_id: str) -> List[Dict[str, Any]]:
        for playlist in self._playlists:
            if playlist.get("id") == playlist_id:
                return playlist.get("tracks", [])
        raise KeyError(f"Unknown playlist {playlist_id}")
