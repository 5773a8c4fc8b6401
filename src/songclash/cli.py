#!/usr/bin/env python3
"""
Songclash command-line interface.

Drives parties stored in the SQLite party store:
- create: host a new party from a library export
- join:   join (or update your entry in) an existing party
- show:   print matches and the curated playlist, optionally export JSON
- watch:  follow a party and reprint matches on every change
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import Config, ConfigError
from .db import SqlitePartyStore
from .library import JsonLibrarySource, LibraryFetcher
from .match.curator import CurationSettings, curate, estimated_minutes, write_playlist_json
from .match.engine import compute
from .models import MatchResult, Party, Track, TrackSet
from .party.codes import share_link
from .party.session import PartySession
from .party.store import PartyNotFoundError

logger = logging.getLogger(__name__)

EXIT_NOT_FOUND = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="songclash", description="Find the music your group shares")
    parser.add_argument("--config", help="Path to songclash.toml")
    parser.add_argument("--db", help="Override store.db_path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Host a new party")
    create.add_argument("--library", required=True, help="Library export JSON")
    create.add_argument("--name", required=True, help="Your display name")
    create.add_argument("--member-id", help="Stable member id (generated if omitted)")

    join = sub.add_parser("join", help="Join a party by code or share link")
    join.add_argument("code")
    join.add_argument("--library", required=True, help="Library export JSON")
    join.add_argument("--name", required=True, help="Your display name")
    join.add_argument("--member-id", help="Stable member id (generated if omitted)")

    show = sub.add_parser("show", help="Print matches and playlist")
    show.add_argument("code")
    show.add_argument("--library", help="Your library export, used to resolve playlist tracks")
    show.add_argument("--output", help="Write the playlist to this JSON file")

    watch = sub.add_parser("watch", help="Follow a party until it ends")
    watch.add_argument("code")
    watch.add_argument("--library", help="Your library export, used to resolve playlist tracks")

    return parser


def print_report(party: Party, matches: Optional[MatchResult], playlist: List[Track], avg_track_minutes: float) -> None:
    print(f"\n🎵 Songclash {party.code} ({len(party.members)} members)")
    for member in party.members:
        host = " (host)" if member.member_id == party.host_member_id else ""
        print(f"   {member.display_name}{host}: {len(member.track_ids)} songs")

    print("\nMatch analysis:")
    if matches and matches.pairwise:
        for pair in matches.pairwise:
            print(
                f"   {' & '.join(pair.member_names)}: {pair.common_count} songs in common "
                f"({pair.percentage}% match)"
            )
    else:
        print("   Waiting for more members to join...")

    minutes = estimated_minutes(playlist, avg_track_minutes)
    print(f"\nPlaylist ({len(playlist)} songs, ~{minutes} minutes):")
    if not playlist:
        print("   No shared songs yet. Invite more friends!")
    for idx, track in enumerate(playlist, 1):
        support = matches.support(track.id) if matches else 0
        print(f"   {idx:2d}. {track.name} - {track.artists} ({support} members)")


async def _load_tracks(library: Optional[str], fetcher: LibraryFetcher) -> TrackSet:
    if not library:
        return TrackSet()
    return await fetcher.fetch_all(JsonLibrarySource(library))


async def _host_or_join(args: argparse.Namespace, config: Config, store: SqlitePartyStore) -> int:
    session = PartySession(store, config)
    session.authenticate(args.member_id, args.name)
    source = JsonLibrarySource(args.library)

    try:
        if args.command == "create":
            party = await session.create_party(source)
        else:
            session.remember_join_link(args.code)
            party = await session.join_party(session.party_code, source)

        if party is None:
            print(session.notice or "Party unavailable")
            return EXIT_NOT_FOUND

        print(f"Member id: {session.member_id}")
        print(f"Share: {session.share_link}")
        print_report(session.snapshot, session.matches, session.playlist, session.curation.avg_track_minutes)
        return 0
    finally:
        session.leave_party()


async def _show(args: argparse.Namespace, config: Config, store: SqlitePartyStore) -> int:
    settings = CurationSettings(config["playlist"])
    party = await store.get(args.code)
    tracks = await _load_tracks(args.library, LibraryFetcher.from_config(config["fetch"]))

    matches = compute(party)
    playlist = curate(matches, tracks.get, settings)
    print(f"Share: {share_link(config['share']['base_url'], party.code)}")
    print_report(party, matches, playlist, settings.avg_track_minutes)

    if args.output and not write_playlist_json(
        playlist, matches, party.code, Path(args.output), settings.avg_track_minutes
    ):
        return 1
    return 0


async def _watch(args: argparse.Namespace, config: Config, store: SqlitePartyStore) -> int:
    settings = CurationSettings(config["playlist"])
    tracks = await _load_tracks(args.library, LibraryFetcher.from_config(config["fetch"]))
    ended = asyncio.Event()

    if store.poll_interval <= 0:
        logger.warning("store.poll_interval_seconds is 0; changes from other processes will not show")

    def on_change(party: Party) -> None:
        matches = compute(party)
        print_report(party, matches, curate(matches, tracks.get, settings), settings.avg_track_minutes)

    def on_removed() -> None:
        print("Songclash ended or does not exist.")
        ended.set()

    subscription = await store.subscribe(args.code, on_change, on_removed)
    try:
        await ended.wait()
    finally:
        subscription.unsubscribe()
    return EXIT_NOT_FOUND if not subscription.delivered else 0


async def _run(args: argparse.Namespace, config: Config) -> int:
    store = SqlitePartyStore.from_config(config["store"])
    store.connect()
    try:
        if args.command in ("create", "join"):
            return await _host_or_join(args, config, store)
        if args.command == "show":
            return await _show(args, config, store)
        return await _watch(args, config, store)
    except PartyNotFoundError as e:
        print(f"Songclash not found: {e.code}")
        return EXIT_NOT_FOUND
    finally:
        await store.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
    )

    try:
        config = Config.load(args.config)
        if args.db:
            config["store"]["db_path"] = args.db
        return asyncio.run(_run(args, config))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except Exception as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
