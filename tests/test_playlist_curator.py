"""
Unit tests for the playlist curator.

Tests ordering, local resolution, truncation and JSON export.
"""

import json

import pytest

from songclash.match.curator import (
    CurationSettings,
    curate,
    estimated_minutes,
    playlist_title,
    target_track_count,
    write_playlist_json,
)
from songclash.match.engine import compute
from songclash.models import MatchResult, SharedTrack, Track, TrackSet


def shared(track_id, count):
    return SharedTrack(track_id, tuple(f"m{i}" for i in range(count)))


def library_for(ids):
    return TrackSet(Track(i, f"Song {i}", "Artist") for i in ids)


class TestTargetCount:
    """Test playlist sizing."""

    def test_default_is_42(self):
        """150 minutes of 3.5 minute tracks."""
        assert target_track_count() == 42
        assert CurationSettings().target_count == 42

    def test_from_config(self):
        settings = CurationSettings({"target_duration_minutes": 60, "avg_track_minutes": 4.0})
        assert settings.target_count == 15

    def test_floored(self):
        assert target_track_count(100, 3.0) == 33


class TestCurate:
    """Test curate() behaviour."""

    def test_none_matches(self):
        assert curate(None, TrackSet().get) == []

    def test_no_shared_tracks(self):
        assert curate(MatchResult((), ()), TrackSet().get) == []

    def test_sorted_by_descending_count(self):
        matches = MatchResult((shared("a", 2), shared("b", 4), shared("c", 3)), ())
        playlist = curate(matches, library_for("abc").get)
        assert [t.id for t in playlist] == ["b", "c", "a"]

    def test_stable_on_ties(self):
        """Equal counts keep the engine's order."""
        matches = MatchResult(
            (shared("x", 2), shared("y", 3), shared("z", 2), shared("w", 2)),
            (),
        )
        playlist = curate(matches, library_for("wxyz").get)
        assert [t.id for t in playlist] == ["y", "x", "z", "w"]

    def test_unresolvable_tracks_dropped(self):
        """Tracks only in other members' libraries are left out."""
        matches = MatchResult((shared("mine", 2), shared("theirs", 5)), ())
        playlist = curate(matches, library_for(["mine"]).get)
        assert [t.id for t in playlist] == ["mine"]

    def test_truncates_to_target(self):
        """50 resolvable shared tracks give exactly the first 42."""
        ids = [f"t{i:02d}" for i in range(50)]
        matches = MatchResult(tuple(shared(i, 2 + (50 - n) // 10) for n, i in enumerate(ids)), ())
        expected = [s.track_id for s in sorted(matches.shared_tracks, key=lambda s: -s.count)][:42]

        playlist = curate(matches, library_for(ids).get)

        assert len(playlist) == 42
        assert [t.id for t in playlist] == expected

    def test_shorter_than_target(self):
        matches = MatchResult(tuple(shared(str(i), 2) for i in range(5)), ())
        assert len(curate(matches, library_for([str(i) for i in range(5)]).get)) == 5

    def test_custom_settings(self):
        matches = MatchResult(tuple(shared(str(i), 2) for i in range(30)), ())
        settings = CurationSettings({"target_duration_minutes": 35, "avg_track_minutes": 3.5})
        playlist = curate(matches, library_for([str(i) for i in range(30)]).get, settings)
        assert len(playlist) == 10

    def test_from_party(self, party, alice_tracks):
        playlist = curate(compute(party), alice_tracks.get)
        assert [t.name for t in playlist] == ["Two", "Three"]


class TestDisplayHelpers:
    def test_estimated_minutes(self):
        assert estimated_minutes([Track("a")] * 42) == 147
        assert estimated_minutes([]) == 0

    def test_playlist_title(self):
        assert playlist_title("123456") == "Songclash Party 123456"


class TestWritePlaylistJson:
    """Test JSON export."""

    def test_writes_entries_with_support(self, tmp_path, party, alice_tracks):
        matches = compute(party)
        playlist = curate(matches, alice_tracks.get)
        output = tmp_path / "out" / "playlist.json"

        assert write_playlist_json(playlist, matches, party.code, output) is True

        document = json.loads(output.read_text())
        assert document["title"] == "Songclash Party 123456"
        assert document["estimated_minutes"] == 7
        assert [t["id"] for t in document["tracks"]] == ["2", "3"]
        assert document["tracks"][0]["members"] == 2
        assert document["tracks"][1]["position"] == 1

    def test_unwritable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        assert write_playlist_json([], None, "1", blocker / "playlist.json") is False
