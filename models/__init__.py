# models/__init__.py
from models.artist import Artist
from models.venue import Venue
from models.show import Show
from models.setlist import Setlist, SetlistSong
from models.vote import Vote
from models.anonymous_voter import AnonymousVoter
from models.sync_task import SyncTask
from models.sync_state import SyncState
from models.database import Base, engine, AsyncSessionLocal, get_session, utc_now

__all__ = [
    "Artist",
    "Venue",
    "Show",
    "Setlist",
    "SetlistSong",
    "Vote",
    "AnonymousVoter",
    "SyncTask",
    "SyncState",
    "Base",
    "engine",
    "AsyncSessionLocal",
    "get_session",
    "utc_now",
]
