from __future__ import annotations

from typing import Iterator

import pytest

from loopradio import errors
from loopradio.models import Track
from loopradio.playlist import Playlist
from loopradio.store import ScheduleStore


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_error_log(tmp_path, monkeypatch) -> Iterator[None]:
    monkeypatch.setattr(errors, "ERRORS_LOG", tmp_path / "errors.log")
    yield


@pytest.fixture
def track_a() -> Track:
    return Track(id="a", title="Orizont Neon", duration=180, audio_url="http://audio/a.mp3")


@pytest.fixture
def track_b() -> Track:
    return Track(id="b", title="Vise Cibernetice", duration=215, audio_url="http://audio/b.mp3")


@pytest.fixture
def playlist(tmp_path, track_a, track_b) -> Playlist:
    pl = Playlist(tmp_path / "songs.json", seed=False)
    pl._save([track_a, track_b])
    return pl


@pytest.fixture
def store(tmp_path) -> ScheduleStore:
    return ScheduleStore(tmp_path / "radio_state.json")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_000.0)


@pytest.fixture
def session_clock() -> FakeClock:
    return FakeClock(500.0)
