import pytest
from sqlalchemy import func, select

from models import Artist, Setlist, SetlistSong, Show, Venue
from services.errors import SyncFailure
from sync.reconciler import Reconciler, event_to_show_data, unwrap
from sync.requests import EntityType


async def count(session, model):
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


ARTIST = {"ticketmaster_id": "K8vZ917G", "name": "Radiohead", "image_url": "https://img/rh.jpg", "genres": ["rock"]}

SHOW = {
    "ticketmaster_id": "G5vYZ9",
    "name": "Radiohead Live",
    "date": "2026-11-01T20:00:00Z",
    "artist": ARTIST,
    "venue": {"ticketmaster_id": "KovZpZA", "name": "Madison Square Garden", "city": "New York", "country": "US"},
}


class TestArtistUpsert:
    """Lookup-then-write by natural key."""

    async def test_creates_then_updates_same_row(self, session):
        reconciler = Reconciler(session)

        first, created, _ = await reconciler.reconcile(EntityType.ARTIST, ARTIST)
        assert created

        second, created, _ = await reconciler.reconcile(EntityType.ARTIST, {**ARTIST, "name": "Radiohead (UK)"})
        assert not created
        assert second.id == first.id
        assert second.name == "Radiohead (UK)"
        assert await count(session, Artist) == 1

    async def test_matches_by_spotify_id(self, session):
        reconciler = Reconciler(session)
        first, _, _ = await reconciler.reconcile(EntityType.ARTIST, {"spotify_id": "sp1", "name": "Björk"})
        second, created, _ = await reconciler.reconcile(
            EntityType.ARTIST, {"spotify_id": "sp1", "ticketmaster_id": "K1", "name": "Björk"}
        )
        assert not created
        assert second.id == first.id
        assert second.ticketmaster_id == "K1"

    async def test_known_id_fallback_keeps_natural_keys(self, session):
        reconciler = Reconciler(session)
        first, _, _ = await reconciler.reconcile(EntityType.ARTIST, ARTIST)
        row, created, _ = await reconciler.reconcile(EntityType.ARTIST, {"name": "Radiohead"}, known_id=str(first.id))
        assert not created
        assert row.ticketmaster_id == "K8vZ917G"
        assert row.image_url == "https://img/rh.jpg"

    async def test_wrapped_payload_with_shows(self, session):
        reconciler = Reconciler(session)
        data = {
            "artist": ARTIST,
            "shows": [
                {"ticketmaster_id": "S1", "name": "Night 1", "date": "2026-11-01T20:00:00Z"},
                {"ticketmaster_id": "S2", "name": "Night 2", "date": "2026-11-02T20:00:00Z"},
            ],
        }
        row, _, related = await reconciler.reconcile(EntityType.ARTIST, data)
        assert related == {"shows": 2}
        shows = (await session.execute(select(Show).where(Show.artist_id == row.id))).scalars().all()
        assert sorted(s.ticketmaster_id for s in shows) == ["S1", "S2"]

    async def test_skip_dependencies(self, session):
        reconciler = Reconciler(session)
        data = {**ARTIST, "shows": [{"ticketmaster_id": "S1", "name": "Night 1"}]}
        _, _, related = await reconciler.reconcile(EntityType.ARTIST, data, skip_dependencies=True)
        assert related == {}
        assert await count(session, Show) == 0

    async def test_malformed_data(self, session):
        with pytest.raises(SyncFailure) as exc:
            await Reconciler(session).reconcile(EntityType.ARTIST, {"ticketmaster_id": "K1"})
        assert exc.value.message.startswith("Malformed artist data")
        assert await count(session, Artist) == 0


class TestShowUpsert:
    async def test_nested_artist_and_venue(self, session):
        reconciler = Reconciler(session)
        show, created, _ = await reconciler.reconcile(EntityType.SHOW, SHOW)
        assert created
        assert await count(session, Artist) == 1
        assert await count(session, Venue) == 1

        again, created, _ = await reconciler.reconcile(EntityType.SHOW, {**SHOW, "name": "Radiohead - Night 1"})
        assert not created
        assert again.id == show.id
        assert again.name == "Radiohead - Night 1"
        assert await count(session, Show) == 1
        assert await count(session, Venue) == 1

    async def test_show_without_artist(self, session):
        data = {
            "ticketmaster_id": "G1",
            "name": "Mystery",
            "venue": {"ticketmaster_id": "V9", "name": "Somewhere"},
        }
        with pytest.raises(SyncFailure):
            await Reconciler(session).reconcile(EntityType.SHOW, data)
        assert await count(session, Show) == 0

    async def test_failure_in_dependency_rolls_back_whole_chain(self, session):
        data = {**SHOW, "setlist": {"setlist_fm_id": "fm1", "songs": [{"position": 1}]}}
        with pytest.raises(SyncFailure):
            await Reconciler(session).reconcile(EntityType.SHOW, data)
        # Artist, venue and show were flushed before the setlist failed
        assert await count(session, Artist) == 0
        assert await count(session, Venue) == 0
        assert await count(session, Show) == 0

    async def test_show_with_setlist(self, session):
        data = {**SHOW, "setlist": {"setlist_fm_id": "fm1", "songs": ["Airbag", "Paranoid Android"]}}
        show, _, related = await Reconciler(session).reconcile(EntityType.SHOW, data)
        assert related == {"setlists": 1}
        setlist = (await session.execute(select(Setlist).where(Setlist.show_id == show.id))).scalar_one()
        assert setlist.setlist_fm_id == "fm1"
        assert await count(session, SetlistSong) == 2


class TestSetlistUpsert:
    async def test_resync_keeps_vote_counts(self, session):
        reconciler = Reconciler(session)
        show, _, _ = await reconciler.reconcile(EntityType.SHOW, SHOW)
        setlist_data = {"setlist_fm_id": "fm1", "show_id": str(show.id), "songs": ["Airbag", "Karma Police"]}
        setlist, _, _ = await reconciler.reconcile(EntityType.SETLIST, setlist_data)

        karma = (await session.execute(select(SetlistSong).where(SetlistSong.name == "Karma Police"))).scalar_one()
        karma.vote_count = 7
        await session.commit()

        again, created, related = await reconciler.reconcile(
            EntityType.SETLIST,
            {**setlist_data, "songs": ["Karma Police", "Airbag", "Airbag", "Creep"]},
        )
        assert not created
        assert again.id == setlist.id
        assert related == {"songs": 4}

        songs = (await session.execute(
            select(SetlistSong).where(SetlistSong.setlist_id == setlist.id).order_by(SetlistSong.position)
        )).scalars().all()
        assert [(s.name, s.position) for s in songs] == [("Karma Police", 1), ("Airbag", 2), ("Creep", 4)]
        assert songs[0].vote_count == 7

    async def test_setlist_without_show(self, session):
        with pytest.raises(SyncFailure):
            await Reconciler(session).reconcile(EntityType.SETLIST, {"setlist_fm_id": "fm9", "songs": []})


class TestSongUpsert:
    async def test_merges_into_stored_songs(self, session):
        reconciler = Reconciler(session)
        artist, _, _ = await reconciler.reconcile(EntityType.ARTIST, ARTIST)

        await reconciler.reconcile(EntityType.SONG, {"spotify_id": "t1", "name": "Creep"}, known_id=str(artist.id))
        row, created, _ = await reconciler.reconcile(
            EntityType.SONG, {"spotify_id": "t1", "name": "Creep (Acoustic)", "popularity": 80}, known_id=str(artist.id)
        )
        assert not created
        assert row.id == artist.id
        assert row.stored_songs == [
            {"spotify_id": "t1", "name": "Creep (Acoustic)", "duration_ms": None, "popularity": 80}
        ]


class TestTicketmasterEvent:
    def test_event_to_show_data(self):
        event = {
            "id": "G5vYZ9",
            "name": "Radiohead",
            "url": "https://tm/e/G5vYZ9",
            "dates": {"start": {"localDate": "2026-11-01", "localTime": "19:30:00"}},
            "classifications": [{"genre": {"id": "KnvZfZ7vAeA", "name": "Rock"}}],
            "_embedded": {
                "venues": [{"id": "KovZpZA", "name": "MSG", "city": {"name": "New York"}, "country": {"countryCode": "US"}}],
                "attractions": [{"id": "K8vZ917G", "name": "Radiohead", "images": [{"url": "https://img"}]}],
            },
        }
        data = event_to_show_data(event)
        assert data["ticketmaster_id"] == "G5vYZ9"
        assert data["date"] == "2026-11-01T19:30:00"
        assert data["genre_ids"] == ["KnvZfZ7vAeA"]
        assert data["venue"]["city"] == "New York"
        assert data["venue"]["country"] == "US"
        assert data["artist"]["ticketmaster_id"] == "K8vZ917G"
        assert data["artist"]["image_url"] == "https://img"

    def test_unwrap(self):
        assert unwrap(EntityType.ARTIST, {"artist": {"name": "A"}, "shows": []}) == {"name": "A", "shows": []}
        assert unwrap(EntityType.ARTIST, {"name": "A"}) == {"name": "A"}
