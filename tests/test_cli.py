"""
End-to-end tests for the songclash CLI against a temporary SQLite store.
"""

import json
import re

import pytest

from songclash.cli import EXIT_NOT_FOUND, main


@pytest.fixture
def workspace(tmp_path):
    """Database path, absent config and two library exports."""
    alice = tmp_path / "alice.json"
    alice.write_text(json.dumps({
        "songs": [
            {"id": "1", "name": "One", "artists": "A"},
            {"id": "2", "name": "Two", "artists": "B"},
        ],
        "playlists": [{"id": "p", "name": "Mix", "tracks": [{"id": "3", "name": "Three", "artists": "C"}]}],
    }))
    bob = tmp_path / "bob.json"
    bob.write_text(json.dumps({"songs": [{"id": "2"}, {"id": "3"}, {"id": "4"}]}))

    return {
        "base": ["--config", str(tmp_path / "absent.toml"), "--db", str(tmp_path / "parties.sqlite")],
        "alice": str(alice),
        "bob": str(bob),
        "out": tmp_path / "playlist.json",
    }


def run(workspace, capsys, *args):
    code = main(workspace["base"] + list(args))
    return code, capsys.readouterr().out


class TestCli:
    def test_create_join_show(self, workspace, capsys):
        status, out = run(
            workspace, capsys, "create", "--library", workspace["alice"], "--name", "Alice", "--member-id", "alice-id"
        )
        assert status == 0
        party_code = re.search(r"join=(\w+)", out).group(1)

        status, out = run(
            workspace, capsys, "join", f"https://songclash.app/?join={party_code}",
            "--library", workspace["bob"], "--name", "Bob",
        )
        assert status == 0
        assert "Alice & Bob: 2 songs in common (67% match)" in out

        status, out = run(
            workspace, capsys, "show", party_code, "--library", workspace["alice"], "--output", str(workspace["out"])
        )
        assert status == 0
        assert "Playlist (2 songs, ~7 minutes)" in out
        document = json.loads(workspace["out"].read_text())
        assert [t["name"] for t in document["tracks"]] == ["Two", "Three"]

    def test_join_unknown_code(self, workspace, capsys):
        status, out = run(workspace, capsys, "join", "999999", "--library", workspace["bob"], "--name", "Bob")
        assert status == EXIT_NOT_FOUND
        assert "Songclash not found" in out

    def test_show_unknown_code(self, workspace, capsys):
        status, out = run(workspace, capsys, "show", "999999")
        assert status == EXIT_NOT_FOUND

    def test_watch_unknown_code(self, workspace, capsys):
        status, out = run(workspace, capsys, "watch", "999999")
        assert status == EXIT_NOT_FOUND
        assert "ended or does not exist" in out
