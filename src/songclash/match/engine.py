"""
Match Engine: overlap statistics for a party snapshot.

- Global support: which members hold each track (kept when ≥ 2 do)
- Pairwise overlap: common tracks per member pair, as a percentage of
  the smaller library
- Pure and synchronous; cheap enough to rerun on every snapshot
"""

import logging
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..models import MatchResult, Member, PairwiseMatch, Party, SharedTrack

logger = logging.getLogger(__name__)

MIN_MEMBERS = 2


def overlap_percentage(common_count: int, size_a: int, size_b: int) -> int:
    """
    Common tracks as a whole percentage of the smaller library.

    Rounds half up (2.5% -> 3%), computed in integers to avoid float error.
    """
    smaller = min(size_a, size_b)
    return (200 * common_count + smaller) // (2 * smaller)


def shared_tracks(members: Sequence[Member]) -> Tuple[SharedTrack, ...]:
    """
    Tracks held by at least two members.

    Member names are listed in party member order.
    """
    holders: Dict[str, List[str]] = {}
    for member in members:
        for track_id in member.track_ids:
            holders.setdefault(track_id, []).append(member.display_name)

    return tuple(
        SharedTrack(track_id=track_id, member_names=tuple(names))
        for track_id, names in holders.items()
        if len(names) >= MIN_MEMBERS
    )


def pairwise_overlaps(members: Sequence[Member]) -> Tuple[PairwiseMatch, ...]:
    """
    Overlap for every member pair (i < j in member order).

    Pairs with nothing in common are left out, so empty libraries never
    reach the percentage calculation.
    """
    sets: List[FrozenSet[str]] = [frozenset(m.track_ids) for m in members]
    results = []

    for i, member in enumerate(members):
        for j in range(i + 1, len(members)):
            other = members[j]
            smaller, larger = sorted((sets[i], sets[j]), key=len)
            common_count = sum(1 for track_id in smaller if track_id in larger)
            if common_count == 0:
                continue

            results.append(
                PairwiseMatch(
                    member_names=(member.display_name, other.display_name),
                    common_count=common_count,
                    percentage=overlap_percentage(common_count, len(sets[i]), len(sets[j])),
                )
            )

    return tuple(results)


def compute(party: Optional[Party]) -> Optional[MatchResult]:
    """
    Compute match statistics for a party snapshot.

    Args:
        party: Current party snapshot

    Returns:
        MatchResult, or None if the party has fewer than two members
    """
    if party is None or len(party.members) < MIN_MEMBERS:
        return None

    result = MatchResult(
        shared_tracks=shared_tracks(party.members),
        pairwise=pairwise_overlaps(party.members),
    )
    logger.debug(
        f"Party {party.code}: {len(result.shared_tracks)} shared tracks, "
        f"{len(result.pairwise)} matching pairs across {len(party.members)} members"
    )
    return result
