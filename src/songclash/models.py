"""
Shared data types for Songclash parties.

Party snapshots are immutable: every mutation returns a new Party, so the
matching and curation functions can be run against any snapshot without
worrying about it changing underneath them.

Wire record shape (one record per party code):
    {code, host, members: [{id, name, likedSongs: [trackId...]}], createdAt}
"""

import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class Track:
    """One library entry with its display metadata."""

    id: str
    name: str = ""
    artists: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "artists": self.artists}


class TrackSet:
    """
    A member's own library, deduplicated by track id.

    Insertion order is preserved and the first occurrence of an id wins.
    """

    def __init__(self, tracks: Iterable[Track] = ()):
        self._tracks: Dict[str, Track] = {}
        for track in tracks:
            self.add(track)

    def add(self, track: Track) -> bool:
        """Add a track; returns False if its id was already present."""
        if track.id in self._tracks:
            return False
        self._tracks[track.id] = track
        return True

    def get(self, track_id: str) -> Optional[Track]:
        """Local metadata lookup used by the curator."""
        return self._tracks.get(track_id)

    def ids(self) -> List[str]:
        return list(self._tracks)

    def __contains__(self, track_id: object) -> bool:
        return track_id in self._tracks

    def __iter__(self) -> Iterator[Track]:
        return iter(self._tracks.values())

    def __len__(self) -> int:
        return len(self._tracks)

    def __repr__(self) -> str:
        return f"TrackSet({len(self)} tracks)"


def _dedupe(track_ids: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(track_ids))


@dataclass(frozen=True)
class Member:
    """A party member and the track ids they contributed (possibly none yet)."""

    member_id: str
    display_name: str
    track_ids: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "track_ids", _dedupe(self.track_ids))

    @classmethod
    def from_track_set(cls, member_id: str, display_name: str, tracks: TrackSet) -> "Member":
        return cls(member_id, display_name, tuple(tracks.ids()))

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.member_id,
            "name": self.display_name,
            "likedSongs": list(self.track_ids),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Member":
        # Empty lists are dropped by some realtime backends, so likedSongs may be absent
        return cls(
            member_id=str(record["id"]),
            display_name=str(record.get("name", "")),
            track_ids=tuple(str(t) for t in record.get("likedSongs") or ()),
        )


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Party:
    """
    Immutable snapshot of one party.

    Members are unique by member_id and ordered by first join.
    """

    code: str
    host_member_id: str
    members: Tuple[Member, ...]
    created_at: int = field(default_factory=now_millis)

    @classmethod
    def start(cls, code: str, host: Member, created_at: Optional[int] = None) -> "Party":
        """New party whose only member is the host."""
        if created_at is None:
            created_at = now_millis()
        return cls(code=code, host_member_id=host.member_id, members=(host,), created_at=created_at)

    def member(self, member_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.member_id == member_id), None)

    def with_member(self, member: Member) -> "Party":
        """
        Merge a member by member_id.

        An existing entry is replaced in place (its position is kept);
        otherwise the member is appended. Other members are untouched.
        """
        members = list(self.members)
        for idx, existing in enumerate(members):
            if existing.member_id == member.member_id:
                members[idx] = member
                break
        else:
            members.append(member)
        return replace(self, members=tuple(members))

    def with_code(self, code: str) -> "Party":
        return replace(self, code=code)

    def to_record(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "host": self.host_member_id,
            "members": [m.to_record() for m in self.members],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Party":
        return cls(
            code=str(record["code"]),
            host_member_id=str(record["host"]),
            members=tuple(Member.from_record(m) for m in record.get("members") or ()),
            created_at=int(record.get("createdAt", 0)),
        )


@dataclass(frozen=True)
class SharedTrack:
    """A track held by two or more members."""

    track_id: str
    member_names: Tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.member_names)


@dataclass(frozen=True)
class PairwiseMatch:
    """Overlap between two members, normalised against the smaller library."""

    member_names: Tuple[str, str]
    common_count: int
    percentage: int


@dataclass(frozen=True)
class MatchResult:
    shared_tracks: Tuple[SharedTrack, ...]
    pairwise: Tuple[PairwiseMatch, ...]

    def support(self, track_id: str) -> int:
        """Number of members holding track_id (0 if fewer than two do)."""
        shared = next((s for s in self.shared_tracks if s.track_id == track_id), None)
        return shared.count if shared else 0
