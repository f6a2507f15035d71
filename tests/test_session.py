from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from loopradio.models import SyncResponse, Track
from loopradio.player import PlaybackEngine
from loopradio.session import ListenerSession, SessionState


class _FakeEngine(PlaybackEngine):
    def __init__(self) -> None:
        self.track: Optional[Track] = None
        self.volume = 80
        self.calls: list[tuple] = []
        self.offset = 0.0
        self.playing = False
        self.loading = False
        self.callbacks: dict[str, object] = {}

    def load(self, track, offset=0.0, autoplay=True, on_load=None, on_end=None, on_error=None):
        self.calls.append(("load", track.id, offset, autoplay))
        self.track = track
        self.offset = offset
        self.playing = autoplay
        self.callbacks = {"load": on_load, "end": on_end, "error": on_error}

    def play(self):
        self.calls.append(("play",))
        self.playing = True

    def pause(self):
        self.calls.append(("pause",))
        self.playing = False

    def seek(self, position):
        self.calls.append(("seek", position))
        self.offset = position

    def unload(self):
        self.calls.append(("unload",))
        self.track = None
        self.playing = False

    def is_playing(self):
        return self.playing

    def is_loading(self):
        return self.loading

    @property
    def position(self):
        return self.offset

    # test helpers
    def loads(self):
        return [c for c in self.calls if c[0] == "load"]

    def seeks(self):
        return [c for c in self.calls if c[0] == "seek"]


class _FakeStation:
    def __init__(self, sync: Optional[SyncResponse], playlist: list[Track]) -> None:
        self.sync = sync
        self.playlist = playlist
        self.fail = False
        self.sync_calls = 0
        self.duration_updates: list[tuple[str, float]] = []

    async def fetch_sync(self):
        self.sync_calls += 1
        return None if self.fail else self.sync

    async def fetch_playlist(self):
        return None if self.fail else list(self.playlist)

    async def update_duration(self, track_id, duration):
        self.duration_updates.append((track_id, duration))
        return True


def _on_air(track: Track, position: float) -> SyncResponse:
    return SyncResponse(track=track, position=position, timestamp=0.0)


@pytest.fixture
def track_c() -> Track:
    return Track(id="c", title="Ploaie Digitală", duration=195, audio_url="http://audio/c.mp3")


@pytest.fixture
def station(track_a, track_b, track_c) -> _FakeStation:
    return _FakeStation(_on_air(track_a, 10.0), [track_a, track_b, track_c])


@pytest.fixture
def engine() -> _FakeEngine:
    return _FakeEngine()


@pytest.fixture
def session(station, engine, session_clock) -> ListenerSession:
    return ListenerSession(station, engine, drift_tolerance=3.5, duration_tolerance=2.0, clock=session_clock)


def test_start_tunes_in_at_reported_offset(session, engine, station) -> None:
    asyncio.run(session.start())

    assert session.state is SessionState.LIVE_PLAYING
    assert engine.loads() == [("load", "a", 10.0, True)]
    assert [t.id for t in session.playlist] == ["a", "b", "c"]


def test_start_without_autoplay_stays_idle(station, engine) -> None:
    session = ListenerSession(station, engine, autoplay=False)

    asyncio.run(session.start())

    assert session.state is SessionState.IDLE
    assert session.track.id == "a"
    assert engine.loads() == []


def test_idle_session_does_not_poll(station, engine) -> None:
    session = ListenerSession(station, engine, autoplay=False)

    async def scenario():
        await session.start()
        calls = station.sync_calls
        await session.tick()
        return calls

    before = asyncio.run(scenario())

    assert station.sync_calls == before


def test_drift_within_tolerance_is_left_alone(session, engine, station, track_a) -> None:
    async def scenario():
        await session.start()
        station.sync = _on_air(track_a, 13.4)
        await session.tick()

    asyncio.run(scenario())

    assert engine.seeks() == []
    assert len(engine.loads()) == 1


def test_drift_beyond_tolerance_seeks_without_reload(session, engine, station, track_a) -> None:
    async def scenario():
        await session.start()
        station.sync = _on_air(track_a, 14.0)
        await session.tick()

    asyncio.run(scenario())

    assert engine.seeks() == [("seek", 14.0)]
    assert len(engine.loads()) == 1


def test_no_drift_correction_while_loading(session, engine, station, track_a) -> None:
    async def scenario():
        await session.start()
        engine.loading = True
        station.sync = _on_air(track_a, 60.0)
        await session.tick()

    asyncio.run(scenario())

    assert engine.seeks() == []


def test_new_track_on_air_forces_transition(session, engine, station, track_b) -> None:
    async def scenario():
        await session.start()
        # Same offset as local playback: drift alone would never act
        station.sync = _on_air(track_b, 10.0)
        await session.tick()

    asyncio.run(scenario())

    assert engine.loads()[-1] == ("load", "b", 10.0, True)
    assert session.track.id == "b"


def test_failed_poll_changes_nothing(session, engine, station) -> None:
    async def scenario():
        await session.start()
        station.fail = True
        await session.tick()

    asyncio.run(scenario())

    assert session.state is SessionState.LIVE_PLAYING
    assert session.track.id == "a"
    assert engine.calls == [("load", "a", 10.0, True)]


def test_watchdog_resumes_stalled_engine(session, engine, station, track_a) -> None:
    async def scenario():
        await session.start()
        engine.playing = False
        station.sync = _on_air(track_a, 11.0)
        await session.tick()

    asyncio.run(scenario())

    assert ("play",) in engine.calls


def test_live_track_end_waits_for_station(session, engine, station, track_a, track_b) -> None:
    async def scenario():
        await session.start()
        station.sync = _on_air(track_a, 179.0)
        engine.offset = 180.0
        engine.playing = False
        polls = station.sync_calls
        engine.callbacks["end"]()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert station.sync_calls == polls + 1
        # Still A on air: no local advance, no replay
        assert len(engine.loads()) == 1
        assert ("play",) not in engine.calls

        station.sync = _on_air(track_b, 1.0)
        await session.tick()

    asyncio.run(scenario())

    assert engine.loads()[-1] == ("load", "b", 1.0, True)


def test_live_track_cut_short_rejoins(session, engine, station, track_a) -> None:
    async def scenario():
        await session.start()
        engine.callbacks["end"]()
        station.sync = _on_air(track_a, 40.0)
        await session.tick()

    asyncio.run(scenario())

    assert ("seek", 40.0) in engine.calls
    assert engine.calls[-1] == ("play",)


def test_pause_is_local_and_resume_resyncs(session, engine, station, track_a, session_clock) -> None:
    async def scenario():
        await session.start()
        polls = station.sync_calls
        playing = await session.toggle_play()
        assert playing is False
        assert session.state is SessionState.LIVE_PAUSED
        assert station.sync_calls == polls

        session_clock.advance(60)
        station.sync = _on_air(track_a, 70.0)
        playing = await session.toggle_play()
        assert playing is True

    asyncio.run(scenario())

    assert session.state is SessionState.LIVE_PLAYING
    assert engine.calls[-2:] == [("seek", 70.0), ("play",)]
    assert len(engine.loads()) == 1


def test_resume_after_track_changed_loads_new_track(session, engine, station, track_c) -> None:
    async def scenario():
        await session.start()
        await session.toggle_play()
        station.sync = _on_air(track_c, 5.0)
        await session.toggle_play()

    asyncio.run(scenario())

    assert engine.loads()[-1] == ("load", "c", 5.0, True)


def test_paused_live_session_tracks_changes_silently(session, engine, station, track_b) -> None:
    async def scenario():
        await session.start()
        await session.toggle_play()
        station.sync = _on_air(track_b, 3.0)
        await session.tick()

    asyncio.run(scenario())

    assert session.state is SessionState.LIVE_PAUSED
    assert engine.loads()[-1] == ("load", "b", 3.0, False)


def test_preview_is_isolated_from_station(session, engine, station, track_c) -> None:
    async def scenario():
        await session.start()
        session.play_track(track_c)
        polls = station.sync_calls
        await session.tick()
        return polls

    polls = asyncio.run(scenario())

    assert session.state is SessionState.PREVIEW_PLAYING
    assert engine.loads()[-1] == ("load", "c", 0.0, True)
    assert station.sync_calls == polls


def test_preview_end_advances_locally_and_wraps(session, engine, track_c) -> None:
    async def scenario():
        await session.start()
        session.play_track(track_c)
        engine.callbacks["end"]()

    asyncio.run(scenario())

    assert engine.loads()[-1] == ("load", "a", 0.0, True)


def test_preview_pause_resume_does_not_poll(session, engine, station, track_b) -> None:
    async def scenario():
        await session.start()
        session.play_track(track_b)
        polls = station.sync_calls
        await session.toggle_play()
        assert session.state is SessionState.PREVIEW_PAUSED
        await session.toggle_play()
        return polls

    polls = asyncio.run(scenario())

    assert session.state is SessionState.PREVIEW_PLAYING
    assert station.sync_calls == polls
    assert engine.calls[-2:] == [("pause",), ("play",)]


def test_go_live_loads_authoritative_track(session, engine, station, track_b, track_c) -> None:
    async def scenario():
        await session.start()
        session.play_track(track_c)
        station.sync = _on_air(track_b, 42.0)
        await session.go_live()

    asyncio.run(scenario())

    assert session.state is SessionState.LIVE_PLAYING
    assert engine.loads()[-1] == ("load", "b", 42.0, True)


def test_go_live_when_station_unreachable_recovers_next_tick(session, engine, station, track_b, track_c) -> None:
    async def scenario():
        await session.start()
        session.play_track(track_c)
        station.fail = True
        assert await session.go_live() is False
        assert session.track is None
        station.fail = False
        station.sync = _on_air(track_b, 8.0)
        await session.tick()

    asyncio.run(scenario())

    assert session.state is SessionState.LIVE_PLAYING
    assert engine.loads()[-1] == ("load", "b", 8.0, True)


def test_stale_callbacks_are_ignored(session, engine, station, track_c) -> None:
    async def scenario():
        await session.start()
        live_callbacks = dict(engine.callbacks)
        session.play_track(track_c)
        polls = station.sync_calls
        live_callbacks["end"]()
        live_callbacks["load"](999.0)
        live_callbacks["error"]("boom")
        await asyncio.sleep(0)
        return polls

    polls = asyncio.run(scenario())

    assert station.sync_calls == polls
    assert station.duration_updates == []
    assert session.state is SessionState.PREVIEW_PLAYING
    assert session.track.id == "c"


def test_duration_mismatch_is_corrected_and_reported(session, engine, station) -> None:
    async def scenario():
        await session.start()
        engine.callbacks["load"](187.5)
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert session.track.duration == 187.5
    assert session.playlist[0].duration == 187.5
    assert station.duration_updates == [("a", 187.5)]


def test_small_duration_difference_is_ignored(session, engine, station) -> None:
    async def scenario():
        await session.start()
        engine.callbacks["load"](181.5)
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert session.track.duration == 180
    assert station.duration_updates == []


def test_live_load_error_reloads_on_next_tick(session, engine, station) -> None:
    async def scenario():
        await session.start()
        engine.callbacks["error"]("404 from CDN")
        await session.tick()

    asyncio.run(scenario())

    assert [c[1] for c in engine.loads()] == ["a", "a"]


def test_current_time_interpolates_between_polls(session, session_clock) -> None:
    async def scenario():
        await session.start()
        session_clock.advance(2.5)
        assert session.current_time() == pytest.approx(12.5)
        await session.toggle_play()
        session_clock.advance(30)
        assert session.current_time() == pytest.approx(12.5)

    asyncio.run(scenario())


def test_stop_releases_engine(session, engine) -> None:
    async def scenario():
        await session.start()
        await session.stop()

    asyncio.run(scenario())

    assert session.state is SessionState.IDLE
    assert engine.calls[-1] == ("unload",)
