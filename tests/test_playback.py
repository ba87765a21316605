from __future__ import annotations

import asyncio
import logging

import pytest

from eartuner.config import PlaybackTiming
from eartuner.playback import PlaybackScheduler

FAST = PlaybackTiming(
    chord_gap=0.01,
    chord_duration=0.01,
    note_delay=0.01,
    note_duration=0.01,
    release_tail=0.01,
    scale_note_duration=0.01,
)


class RecordingInstrument:
    """Stands in for a loaded piano and records what it was asked to play."""

    chord_velocity = 0.25
    note_velocity = 0.45

    def __init__(self, *, loaded: bool = True) -> None:
        self.is_loaded = loaded
        self.calls: list[tuple[str, object, float | None]] = []

    def play_chord(self, pitches, duration: float) -> None:
        self.calls.append(("chord", tuple(pitches), duration))

    def play_note(self, pitch: str, duration: float) -> None:
        self.calls.append(("note", pitch, duration))

    def stop(self) -> None:
        self.calls.append(("stop", None, None))


def _scheduler(instrument: RecordingInstrument | None = None, timing=None) -> PlaybackScheduler:
    scheduler = PlaybackScheduler(timing=timing)
    if instrument is not None:
        scheduler.attach(instrument)  # type: ignore[arg-type]
    return scheduler


def test_default_timing_pattern() -> None:
    timing = PlaybackTiming()
    assert [timing.chord_offset(index) for index in range(3)] == pytest.approx([0.0, 0.6, 1.2])
    assert timing.note_offset(3) == pytest.approx(2.1)
    assert timing.idle_offset(3) == pytest.approx(4.1)


@pytest.mark.asyncio
async def test_cadence_and_note_schedules_five_events() -> None:
    instrument = RecordingInstrument()
    scheduler = _scheduler(instrument)

    assert scheduler.play_cadence_and_note(0, "C", "major")

    assert scheduler.is_playing.value
    assert scheduler.current_key.value == "C"
    assert scheduler.current_mode.value == "major"
    assert scheduler.pending_count == 5
    # Anything still ringing is silenced before the new sequence starts.
    assert instrument.calls == [("stop", None, None)]
    scheduler.stop_playback()


@pytest.mark.asyncio
async def test_second_request_while_playing_is_ignored() -> None:
    instrument = RecordingInstrument()
    scheduler = _scheduler(instrument)
    scheduler.play_cadence_and_note(0, "C", "major")
    session = scheduler.session

    assert not scheduler.play_cadence_and_note(4, "A", "minor")
    assert not scheduler.play_note_only(2, "A", "minor")

    assert scheduler.session is session
    assert scheduler.pending_count == 5
    assert scheduler.current_key.value == "C"
    scheduler.stop_playback()


@pytest.mark.asyncio
async def test_stop_cancels_everything_and_goes_idle() -> None:
    instrument = RecordingInstrument()
    scheduler = _scheduler(instrument, FAST)
    scheduler.play_cadence_and_note(3, "D", "minor")

    scheduler.stop_playback()

    assert scheduler.pending_count == 0
    assert scheduler.session is None
    assert not scheduler.is_playing.value
    await asyncio.sleep(0.1)
    assert [call[0] for call in instrument.calls] == ["stop", "stop"]


@pytest.mark.asyncio
async def test_sequence_plays_in_order_then_returns_to_idle() -> None:
    instrument = RecordingInstrument()
    scheduler = _scheduler(instrument, FAST)

    scheduler.play_cadence_and_note(1, "C", "major")
    await asyncio.wait_for(scheduler.wait_until_idle(), timeout=2.0)

    assert not scheduler.is_playing.value
    assert scheduler.pending_count == 0
    assert instrument.calls == [
        ("stop", None, None),
        ("chord", ("C4", "E4", "G4"), 0.01),
        ("chord", ("B3", "D4", "G4"), 0.01),
        ("chord", ("C4", "E4", "G4"), 0.01),
        ("note", "D4", 0.01),
    ]
    # Finished sessions accept the next question.
    assert scheduler.play_cadence_and_note(0, "C", "major")
    scheduler.stop_playback()


@pytest.mark.asyncio
async def test_mystery_note_is_logged_at_debug(caplog) -> None:
    scheduler = _scheduler(RecordingInstrument())
    with caplog.at_level(logging.DEBUG, logger="eartuner.playback"):
        scheduler.play_cadence_and_note(4, "A", "minor")
    scheduler.stop_playback()
    assert "Key: A minor | Note: E5 (Mi)" in caplog.text


@pytest.mark.asyncio
async def test_nothing_plays_without_loaded_instrument() -> None:
    scheduler = _scheduler()
    assert not scheduler.play_cadence_and_note(0, "C", "major")

    scheduler.attach(RecordingInstrument(loaded=False))  # type: ignore[arg-type]
    assert not scheduler.play_cadence_and_note(0, "C", "major")
    assert not scheduler.play_note_only(0, "C", "major")
    assert not scheduler.play_scale_note(0, "C", "major")
    assert scheduler.pending_count == 0
    assert not scheduler.is_playing.value
    await scheduler.play_cadence_only("C", "major")


@pytest.mark.asyncio
async def test_note_only_claims_playing_until_release() -> None:
    instrument = RecordingInstrument()
    scheduler = _scheduler(instrument, FAST)

    assert scheduler.play_note_only(7, "G", "major")
    assert scheduler.is_playing.value
    assert scheduler.pending_count == 2

    await asyncio.wait_for(scheduler.wait_until_idle(), timeout=2.0)
    assert instrument.calls == [("note", "G5", 0.01)]
    assert not scheduler.is_playing.value


@pytest.mark.asyncio
async def test_scale_note_preview_does_not_claim_playing() -> None:
    instrument = RecordingInstrument()
    scheduler = _scheduler(instrument)

    assert scheduler.play_scale_note(2, "E", "minor", octave=3)
    assert scheduler.play_scale_note(3, "E", "minor", octave=3, duration=0.8)

    assert instrument.calls == [("note", "G3", 0.4), ("note", "A3", 0.8)]
    assert not scheduler.is_playing.value
    assert scheduler.pending_count == 0


@pytest.mark.asyncio
async def test_cadence_only_resolves_after_last_chord() -> None:
    instrument = RecordingInstrument()
    scheduler = _scheduler(instrument, FAST)

    done = scheduler.play_cadence_only("F", "major")
    assert not scheduler.is_playing.value
    assert scheduler.pending_count == 4

    await asyncio.wait_for(done, timeout=2.0)
    assert [call[0] for call in instrument.calls] == ["chord", "chord", "chord"]
    assert scheduler.pending_count == 0


@pytest.mark.asyncio
async def test_stop_releases_cadence_waiters() -> None:
    scheduler = _scheduler(RecordingInstrument())
    done = scheduler.play_cadence_only("F", "major")

    scheduler.stop_playback()

    assert done.done()
    assert scheduler.pending_count == 0


@pytest.mark.asyncio
async def test_detach_stops_playback() -> None:
    instrument = RecordingInstrument()
    scheduler = _scheduler(instrument)
    scheduler.play_cadence_and_note(0, "C", "major")

    assert scheduler.detach() is instrument
    assert scheduler.instrument is None
    assert scheduler.pending_count == 0
    assert not scheduler.is_playing.value


@pytest.mark.asyncio
async def test_subscribers_see_state_changes() -> None:
    scheduler = _scheduler(RecordingInstrument())
    seen: list[bool] = []
    unsubscribe = scheduler.is_playing.subscribe(seen.append)

    scheduler.play_cadence_and_note(0, "C", "major")
    scheduler.stop_playback()
    unsubscribe()
    scheduler.play_cadence_and_note(0, "C", "major")
    scheduler.stop_playback()

    assert seen == [True, False]


@pytest.mark.asyncio
async def test_failing_trigger_does_not_break_the_sequence(caplog) -> None:
    class Broken(RecordingInstrument):
        def play_chord(self, pitches, duration: float) -> None:
            raise RuntimeError("voice allocation failed")

    instrument = Broken()
    scheduler = _scheduler(instrument, FAST)
    scheduler.play_cadence_and_note(0, "C", "major")
    await asyncio.wait_for(scheduler.wait_until_idle(), timeout=2.0)

    assert ("note", "C4", 0.01) in instrument.calls
    assert "Scheduled trigger failed" in caplog.text


@pytest.mark.parametrize("note_index", [-1, 8])
def test_note_index_out_of_range(note_index: int) -> None:
    scheduler = _scheduler(RecordingInstrument())
    with pytest.raises(ValueError):
        scheduler.play_cadence_and_note(note_index, "C", "major")


@pytest.mark.asyncio
async def test_new_question_cancels_pending_cadence_replay() -> None:
    instrument = RecordingInstrument()
    scheduler = _scheduler(instrument, FAST)
    replay = scheduler.play_cadence_only("F", "major")

    assert scheduler.play_cadence_and_note(0, "C", "major")
    assert replay.done()
    assert scheduler.pending_count == 5

    await asyncio.wait_for(scheduler.wait_until_idle(), timeout=2.0)
    await asyncio.sleep(0.05)
    chords = [call[1] for call in instrument.calls if call[0] == "chord"]
    assert chords == [("C4", "E4", "G4"), ("B3", "D4", "G4"), ("C4", "E4", "G4")]


@pytest.mark.asyncio
async def test_replay_supersedes_unfinished_replay() -> None:
    instrument = RecordingInstrument()
    scheduler = _scheduler(instrument, FAST)
    first = scheduler.play_cadence_only("F", "major")
    second = scheduler.play_cadence_only("C", "major")

    assert first.done()
    assert scheduler.pending_count == 4
    await asyncio.wait_for(second, timeout=2.0)

    chords = [call[1] for call in instrument.calls if call[0] == "chord"]
    assert chords == [("C4", "E4", "G4"), ("B3", "D4", "G4"), ("C4", "E4", "G4")]


@pytest.mark.asyncio
async def test_replay_is_ignored_during_a_question() -> None:
    scheduler = _scheduler(RecordingInstrument(), FAST)
    scheduler.play_cadence_and_note(0, "C", "major")

    replay = scheduler.play_cadence_only("F", "major")

    assert replay.done()
    assert scheduler.pending_count == 5
    scheduler.stop_playback()
