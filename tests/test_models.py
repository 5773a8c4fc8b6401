"""
Unit tests for shared party types.

Tests TrackSet dedupe, member merge semantics and the wire record shape.
"""

from songclash.models import Member, Party, Track, TrackSet


class TestTrackSet:
    """Test TrackSet deduplication."""

    def test_first_occurrence_wins(self):
        tracks = TrackSet([Track("1", "First"), Track("2", "Two"), Track("1", "Again")])
        assert tracks.ids() == ["1", "2"]
        assert tracks.get("1").name == "First"

    def test_add_reports_duplicates(self):
        tracks = TrackSet()
        assert tracks.add(Track("1")) is True
        assert tracks.add(Track("1")) is False
        assert len(tracks) == 1

    def test_lookup_missing(self):
        assert TrackSet().get("nope") is None
        assert "nope" not in TrackSet()


class TestMember:
    def test_track_ids_deduplicated(self):
        member = Member("m", "M", ("a", "b", "a", "c", "b"))
        assert member.track_ids == ("a", "b", "c")

    def test_from_track_set(self, alice_tracks):
        member = Member.from_track_set("alice-id", "Alice", alice_tracks)
        assert member.track_ids == ("1", "2", "3")

    def test_record_without_liked_songs(self):
        """Backends that drop empty arrays still decode as an empty set."""
        member = Member.from_record({"id": "m", "name": "M"})
        assert member.track_ids == ()


class TestPartyMerge:
    """Test merge-by-member-id."""

    def test_append_new_member(self, party):
        carol = Member("carol-id", "Carol", ("9",))
        updated = party.with_member(carol)
        assert [m.display_name for m in updated.members] == ["Alice", "Bob", "Carol"]

    def test_replace_keeps_position(self, party):
        new_alice = Member("alice-id", "Alice B.", ("7",))
        updated = party.with_member(new_alice)
        assert [m.member_id for m in updated.members] == ["alice-id", "bob-id"]
        assert updated.members[0].display_name == "Alice B."
        assert updated.members[1] == party.members[1]

    def test_original_snapshot_untouched(self, party):
        party.with_member(Member("carol-id", "Carol"))
        assert len(party.members) == 2

    def test_host_preserved(self, party):
        assert party.with_member(Member("alice-id", "A")).host_member_id == "alice-id"


class TestWireRecord:
    """Test persisted record shape."""

    def test_record_shape(self, party):
        record = party.to_record()
        assert record == {
            "code": "123456",
            "host": "alice-id",
            "members": [
                {"id": "alice-id", "name": "Alice", "likedSongs": ["1", "2", "3"]},
                {"id": "bob-id", "name": "Bob", "likedSongs": ["2", "3", "4"]},
            ],
            "createdAt": 1700000000000,
        }

    def test_from_record(self, party):
        assert Party.from_record(party.to_record()) == party
