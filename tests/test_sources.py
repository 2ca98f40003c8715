"""Source adapters against stubbed HTTP transports."""

import httpx
import pytest

from app.adapters.sources.artist import ArtistSearchSourceAdapter
from app.adapters.sources.chart import LOOKUP_BATCH_SIZE, AppleChartSourceAdapter
from app.adapters.sources.itunes import high_quality_artwork, track_from_search_result
from app.adapters.sources.lastfm import LastFmClient
from app.adapters.sources.mock import MockSourceAdapter
from app.domain.errors import SourceError, SourceThrottledError, SourceTimeoutError


def chart_entry(track_id, name="Song", artist="Artist"):
    return {
        "id": str(track_id),
        "name": name,
        "artistName": artist,
        "artworkUrl100": f"https://img.example/{track_id}/100x100bb.jpg",
        "url": f"https://music.example/{track_id}",
        "genres": [{"name": "J-Pop"}],
        "releaseDate": "2024-01-01",
    }


def search_result(track_id, preview=True, artist="Aimer"):
    result = {
        "trackId": track_id,
        "trackName": f"Song {track_id}",
        "artistName": artist,
        "collectionName": "Album",
        "artworkUrl100": "https://img.example/100x100bb.jpg",
        "primaryGenreName": "J-Pop",
    }
    if preview:
        result["previewUrl"] = f"https://audio.example/{track_id}.m4a"
    return result


def test_high_quality_artwork():
    assert high_quality_artwork("https://a/100x100bb.jpg") == "https://a/1000x1000bb.jpg"
    assert high_quality_artwork(None) is None


def test_search_result_without_preview_is_dropped():
    assert track_from_search_result(search_result(1, preview=False), "artist", "now") is None
    track = track_from_search_result(search_result(1), "artist", "now")
    assert track.track_id == "1"
    assert track.artwork_url.endswith("1000x1000bb.jpg")
    assert track.metadata == {"source": "itunes_search", "fetched_from": "artist", "refilled_at": "now"}


# ── Chart ──────────────────────────────────────


@pytest.mark.asyncio
async def test_chart_resolves_previews_and_counts_skips():
    lookups = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "rss.applemarketingtools.com":
            assert request.url.path == "/api/v2/jp/music/most-played/100/songs.json"
            return httpx.Response(200, json={"feed": {"results": [
                chart_entry(1), chart_entry(2), chart_entry("bad-id"),
            ]}})
        lookups.append(request.url.params["id"])
        return httpx.Response(200, json={"results": [
            {"trackId": 1, "previewUrl": "https://audio.example/1.m4a"},
            {"trackId": 2},
        ]})

    adapter = AppleChartSourceAdapter(transport=httpx.MockTransport(handler))
    batch = await adapter.fetch_tracks()

    assert lookups == ["1,2"]
    assert batch.scanned == 3
    assert batch.failures == 1
    assert batch.skipped_no_preview == 1
    assert [t.track_id for t in batch.tracks] == ["1"]
    track = batch.tracks[0]
    assert track.genre == "J-Pop"
    assert track.preview_url == "https://audio.example/1.m4a"
    assert track.metadata["source"] == "apple_rss"


@pytest.mark.asyncio
async def test_chart_lookup_is_batched_and_fail_open():
    entries = [chart_entry(n) for n in range(1, LOOKUP_BATCH_SIZE + 6)]
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        if request.url.host == "rss.applemarketingtools.com":
            return httpx.Response(200, json={"feed": {"results": entries}})
        calls += 1
        if calls == 1:
            return httpx.Response(500)
        ids = request.url.params["id"].split(",")
        return httpx.Response(200, json={"results": [
            {"trackId": int(i), "previewUrl": f"https://audio.example/{i}.m4a"} for i in ids
        ]})

    batch = await AppleChartSourceAdapter(transport=httpx.MockTransport(handler)).fetch_tracks()

    assert calls == 2
    assert len(batch.tracks) == 5
    assert batch.skipped_no_preview == LOOKUP_BATCH_SIZE


@pytest.mark.asyncio
async def test_chart_empty_feed():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"feed": {"results": []}}))
    batch = await AppleChartSourceAdapter(transport=transport).fetch_tracks()
    assert batch.tracks == []
    assert batch.scanned == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, error",
    [
        (httpx.Response(429), SourceThrottledError),
        (httpx.Response(503), SourceError),
        (httpx.Response(200, text="<html>"), SourceError),
    ],
)
async def test_chart_feed_errors(response, error):
    transport = httpx.MockTransport(lambda request: response)
    with pytest.raises(error):
        await AppleChartSourceAdapter(transport=transport).fetch_tracks()


@pytest.mark.asyncio
async def test_timeout_maps_to_source_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(SourceTimeoutError):
        await AppleChartSourceAdapter(transport=httpx.MockTransport(handler)).fetch_tracks()


# ── Artist search ──────────────────────────────


@pytest.mark.asyncio
async def test_artist_search_tolerates_partial_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/search"
        term = request.url.params["term"]
        if term == "Broken":
            return httpx.Response(500)
        return httpx.Response(200, json={"results": [
            search_result(1, artist=term),
            search_result(99_999, preview=False, artist=term),
        ]})

    adapter = ArtistSearchSourceAdapter(
        ["Aimer", " Aimer ", "Broken", ""], transport=httpx.MockTransport(handler)
    )
    assert adapter.artists == ["Aimer", "Broken"]

    batch = await adapter.fetch_tracks()
    assert batch.failures == 1
    assert batch.scanned == 2
    assert batch.skipped_no_preview == 1
    assert len(batch.tracks) == 1
    assert batch.tracks[0].metadata["fetched_from"] == "artist"


@pytest.mark.asyncio
async def test_artist_search_all_failed_raises():
    transport = httpx.MockTransport(lambda request: httpx.Response(429))
    adapter = ArtistSearchSourceAdapter(["A", "B"], transport=transport)
    with pytest.raises(SourceError, match="all 2 artist searches failed"):
        await adapter.fetch_tracks()


@pytest.mark.asyncio
async def test_artist_search_without_artists():
    batch = await ArtistSearchSourceAdapter([]).fetch_tracks()
    assert batch.tracks == []


# ── Mock ───────────────────────────────────────


@pytest.mark.asyncio
async def test_mock_source_is_deterministic():
    batch = await MockSourceAdapter().fetch_tracks()
    assert batch.scanned == 20
    assert batch.skipped_no_preview == 2
    assert len(batch.tracks) == 18
    assert batch.tracks[0].track_id == "1000001"


# ── Last.fm ────────────────────────────────────


@pytest.mark.asyncio
async def test_lastfm_listeners():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["method"] == "artist.getinfo"
        return httpx.Response(200, json={"artist": {"stats": {"listeners": "12345"}}})

    client = LastFmClient("key", transport=httpx.MockTransport(handler))
    assert client.enabled
    assert await client.get_listeners("Aimer") == 12345


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500),
        httpx.Response(200, json={"error": 6, "message": "The artist you supplied could not be found"}),
        httpx.Response(200, json={"artist": {"stats": {}}}),
        httpx.Response(200, text="not json"),
    ],
)
async def test_lastfm_fails_open(response):
    client = LastFmClient("key", transport=httpx.MockTransport(lambda request: response))
    assert await client.get_listeners("Nobody") is None


@pytest.mark.asyncio
async def test_lastfm_without_key():
    client = LastFmClient(None)
    assert not client.enabled
    assert await client.get_listeners("Aimer") is None
