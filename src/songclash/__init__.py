# Songclash: find the music a group has in common
# Package: songclash

__version__ = "1.0.0-dev"
__author__ = "Songclash Contributors"
__description__ = "Party matching and shared playlist curation"

# Module structure:
#   - songclash.models  : Track, TrackSet, Member, Party, MatchResult
#   - songclash.party   : Codes, store contract, client session
#   - songclash.match   : Overlap engine & playlist curation
#   - songclash.library : Paginated library fetching
#   - songclash.db      : SQLite party store
#   - songclash.config  : Configuration management
#   - songclash.cli     : Command-line interface
