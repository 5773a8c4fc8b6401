"""
Playlist Curator: turn match results into a bounded shared playlist.

- Most widely shared tracks first (stable on ties)
- Only tracks resolvable in the local library are kept
- Length capped at target duration / average track duration
- Deterministic, no I/O (apart from the explicit JSON export)
"""

import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..models import MatchResult, Track

logger = logging.getLogger(__name__)

TARGET_DURATION_MINUTES = 150
AVG_TRACK_MINUTES = 3.5

MetadataLookup = Callable[[str], Optional[Track]]


class CurationSettings:
    """Playlist sizing from config."""

    def __init__(self, config: Optional[dict] = None):
        """
        Args:
            config: Playlist dict from config["playlist"]
        """
        config = config or {}
        self.target_duration_minutes = config.get("target_duration_minutes", TARGET_DURATION_MINUTES)
        self.avg_track_minutes = config.get("avg_track_minutes", AVG_TRACK_MINUTES)

    @property
    def target_count(self) -> int:
        return target_track_count(self.target_duration_minutes, self.avg_track_minutes)


def target_track_count(
    target_minutes: float = TARGET_DURATION_MINUTES,
    avg_track_minutes: float = AVG_TRACK_MINUTES,
) -> int:
    """Number of average-length tracks that fit the target duration (150/3.5 -> 42)."""
    return math.floor((target_minutes * 60) / (avg_track_minutes * 60))


def curate(
    matches: Optional[MatchResult],
    lookup: MetadataLookup,
    settings: Optional[CurationSettings] = None,
) -> List[Track]:
    """
    Build the shared playlist.

    Args:
        matches: MatchEngine output (None when the party is too small)
        lookup: Resolves a track id against the local library, None if unknown
        settings: Playlist sizing; defaults to 150 minutes of 3.5 minute tracks

    Returns:
        Ordered list of tracks, at most settings.target_count long
    """
    if not matches or not matches.shared_tracks:
        return []

    settings = settings or CurationSettings()

    # sorted() is stable, so equal counts keep the engine's order
    ranked = sorted(matches.shared_tracks, key=lambda s: s.count, reverse=True)

    resolved = []
    for shared in ranked:
        track = lookup(shared.track_id)
        if track is None:
            continue
        resolved.append(track)

    dropped = len(ranked) - len(resolved)
    if dropped:
        logger.debug(f"Dropped {dropped} shared tracks missing from the local library")

    playlist = resolved[: min(settings.target_count, len(resolved))]
    logger.debug(f"Curated {len(playlist)} of {len(resolved)} resolvable shared tracks")
    return playlist


def estimated_minutes(playlist: List[Track], avg_track_minutes: float = AVG_TRACK_MINUTES) -> int:
    """Rough playlist length for display."""
    return round(len(playlist) * avg_track_minutes)


def playlist_title(code: str) -> str:
    return f"Songclash Party {code}"


def write_playlist_json(
    playlist: List[Track],
    matches: Optional[MatchResult],
    code: str,
    output_path: Path,
    avg_track_minutes: float = AVG_TRACK_MINUTES,
) -> bool:
    """
    Write the curated playlist as JSON.

    Args:
        playlist: Curated tracks
        matches: Match result the playlist was built from (for support counts)
        code: Party code
        output_path: Output JSON file path
        avg_track_minutes: Used for the duration estimate

    Returns:
        True if successful, False otherwise
    """
    entries: List[Dict[str, Any]] = []
    for position, track in enumerate(playlist):
        entry = track.to_dict()
        entry["position"] = position
        entry["members"] = matches.support(track.id) if matches else 0
        entries.append(entry)

    document = {
        "title": playlist_title(code),
        "party_code": code,
        "estimated_minutes": estimated_minutes(playlist, avg_track_minutes),
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "tracks": entries,
    }

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump(document, f, indent=2)
        logger.info(f"Wrote playlist: {output_path}")
        return True
    except OSError as e:
        logger.error(f"Failed to write playlist: {e}")
        return False
