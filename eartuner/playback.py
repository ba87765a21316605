"""Timed playback of cadences and mystery notes.

Every event of a session is its own ``loop.call_later`` handle anchored at
the moment playback was requested. A session owns all of its handles, so
stopping cancels the whole set at once and nothing can fire afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from .config import PlaybackTiming
from .instruments.base import Instrument
from .observable import MutableObservable, Observable
from .theory import SCALE_LENGTH, SOLFEGE, Key, Mode, cadence, scale_notes

_LOGGER = logging.getLogger("eartuner.playback")


@dataclass(eq=False)
class PlaybackSession:
    note_index: int
    key: Key
    mode: Mode
    octave: int
    handles: set[asyncio.TimerHandle] = field(default_factory=set)
    completion: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> int:
        return len(self.handles) + (1 if self.completion is not None else 0)

    def cancel(self) -> None:
        for handle in self.handles:
            handle.cancel()
        self.handles.clear()
        if self.completion is not None:
            self.completion.cancel()
            self.completion = None


class PlaybackScheduler:
    """Idle/Playing state machine driving one loaded instrument."""

    def __init__(self, *, timing: PlaybackTiming | None = None) -> None:
        self._timing = timing or PlaybackTiming()
        self._instrument: Instrument | None = None
        self._session: PlaybackSession | None = None
        self._detached: set[asyncio.TimerHandle] = set()
        self._cadence_waiters: set[asyncio.Future[None]] = set()
        self._is_playing: MutableObservable[bool] = MutableObservable(False)
        self._current_key: MutableObservable[Key | None] = MutableObservable(None)
        self._current_mode: MutableObservable[Mode | None] = MutableObservable(None)
        self._idle = asyncio.Event()
        self._idle.set()

    # -----------------------------------------------------------------
    # State
    # -----------------------------------------------------------------
    @property
    def timing(self) -> PlaybackTiming:
        return self._timing

    @property
    def is_playing(self) -> Observable[bool]:
        return self._is_playing

    @property
    def current_key(self) -> Observable[Key | None]:
        return self._current_key

    @property
    def current_mode(self) -> Observable[Mode | None]:
        return self._current_mode

    @property
    def instrument(self) -> Instrument | None:
        return self._instrument

    @property
    def is_ready(self) -> bool:
        return self._instrument is not None and self._instrument.is_loaded

    @property
    def session(self) -> PlaybackSession | None:
        return self._session

    @property
    def pending_count(self) -> int:
        """Scheduled callbacks that have not fired yet, across all sequences."""
        session_pending = self._session.pending if self._session is not None else 0
        return session_pending + len(self._detached)

    def attach(self, instrument: Instrument) -> None:
        if self._instrument is not None and self._instrument is not instrument:
            self.detach()
        self._instrument = instrument

    def detach(self) -> Instrument | None:
        """Stop everything and release the instrument reference."""
        self.stop_playback()
        instrument, self._instrument = self._instrument, None
        return instrument

    async def wait_until_idle(self) -> None:
        await self._idle.wait()

    # -----------------------------------------------------------------
    # Playback
    # -----------------------------------------------------------------
    def play_cadence_and_note(
        self,
        note_index: int,
        key: Key,
        mode: Mode,
        octave: int = 4,
    ) -> bool:
        """Play I-V-I then the mystery note; ``False`` if rejected."""

        _check_index(note_index)
        instrument = self._claim("play_cadence_and_note")
        if instrument is None:
            return False

        chords = cadence(key, mode)
        notes = scale_notes(key, mode, octave)
        session = self._start_session(note_index, key, mode, octave)
        instrument.stop()

        timing = self._timing
        for index, chord in enumerate(chords):
            self._schedule(
                session,
                timing.chord_offset(index),
                instrument.play_chord,
                chord,
                timing.chord_duration,
            )

        mystery_note = notes[note_index]
        _LOGGER.debug(
            "Key: %s %s | Note: %s (%s)", key, mode, mystery_note, SOLFEGE[mode][note_index]
        )
        self._schedule(
            session,
            timing.note_offset(len(chords)),
            instrument.play_note,
            mystery_note,
            timing.note_duration,
        )
        self._schedule_completion(session, timing.idle_offset(len(chords)))
        return True

    def play_note_only(
        self,
        note_index: int,
        key: Key,
        mode: Mode,
        octave: int = 4,
    ) -> bool:
        _check_index(note_index)
        instrument = self._claim("play_note_only")
        if instrument is None:
            return False

        note = scale_notes(key, mode, octave)[note_index]
        session = self._start_session(note_index, key, mode, octave)
        timing = self._timing
        self._schedule(session, 0.0, instrument.play_note, note, timing.note_duration)
        self._schedule_completion(session, timing.note_duration + timing.release_tail)
        return True

    def play_scale_note(
        self,
        note_index: int,
        key: Key,
        mode: Mode,
        octave: int = 4,
        duration: float | None = None,
    ) -> bool:
        """Preview one scale note right away without claiming the Playing state."""

        _check_index(note_index)
        instrument = self._instrument
        if instrument is None or not instrument.is_loaded:
            _LOGGER.debug("play_scale_note ignored: instrument not loaded")
            return False
        note = scale_notes(key, mode, octave)[note_index]
        instrument.play_note(note, duration or self._timing.scale_note_duration)
        return True

    def play_cadence_only(self, key: Key, mode: Mode) -> asyncio.Future[None]:
        """Replay the cadence; the future resolves once the last chord is due.

        The Playing flag is left alone so the replay never blocks a new
        question. While a question is playing the replay is ignored and the
        future is already resolved.
        """

        loop = asyncio.get_running_loop()
        done: asyncio.Future[None] = loop.create_future()
        instrument = self._instrument
        if instrument is None or not instrument.is_loaded:
            _LOGGER.debug("play_cadence_only ignored: instrument not loaded")
            done.set_result(None)
            return done
        if self._session is not None:
            _LOGGER.debug("play_cadence_only ignored: question in progress")
            done.set_result(None)
            return done
        # A newer replay supersedes one that has not finished yet.
        self._cancel_replays()

        chords = cadence(key, mode)
        timing = self._timing
        for index, chord in enumerate(chords):
            self._schedule_detached(
                timing.chord_offset(index),
                instrument.play_chord,
                chord,
                timing.chord_duration,
            )

        self._cadence_waiters.add(done)
        self._schedule_detached(timing.chord_offset(len(chords)), _resolve, done)
        done.add_done_callback(self._cadence_waiters.discard)
        return done

    def stop_playback(self) -> None:
        """Cancel every pending trigger, silence the instrument and go idle."""

        if self._session is not None:
            self._session.cancel()
            self._session = None
        self._cancel_replays()

        if self._instrument is not None and self._instrument.is_loaded:
            self._instrument.stop()
        self._set_idle()

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------
    def _claim(self, operation: str) -> Instrument | None:
        instrument = self._instrument
        if instrument is None or not instrument.is_loaded:
            _LOGGER.debug("%s ignored: instrument not loaded", operation)
            return None
        if self._is_playing.value:
            _LOGGER.debug("%s ignored: already playing", operation)
            return None
        return instrument

    def _start_session(self, note_index: int, key: Key, mode: Mode, octave: int) -> PlaybackSession:
        self._cancel_replays()
        session = PlaybackSession(note_index=note_index, key=key, mode=mode, octave=octave)
        self._session = session
        self._idle.clear()
        self._is_playing.set(True)
        self._current_key.set(key)
        self._current_mode.set(mode)
        return session

    def _cancel_replays(self) -> None:
        for handle in self._detached:
            handle.cancel()
        self._detached.clear()
        for waiter in list(self._cadence_waiters):
            _resolve(waiter)
        self._cadence_waiters.clear()

    def _schedule(
        self,
        session: PlaybackSession,
        delay: float,
        callback: Callable[..., Any],
        *args: Any,
    ) -> None:
        loop = asyncio.get_running_loop()

        def _fire() -> None:
            session.handles.discard(handle)
            self._trigger(callback, *args)

        handle = loop.call_later(delay, _fire)
        session.handles.add(handle)

    def _schedule_detached(self, delay: float, callback: Callable[..., Any], *args: Any) -> None:
        loop = asyncio.get_running_loop()

        def _fire() -> None:
            self._detached.discard(handle)
            self._trigger(callback, *args)

        handle = loop.call_later(delay, _fire)
        self._detached.add(handle)

    def _schedule_completion(self, session: PlaybackSession, delay: float) -> None:
        loop = asyncio.get_running_loop()
        session.completion = loop.call_later(delay, self._complete, session)

    def _trigger(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as exc:
            _LOGGER.warning("Scheduled trigger failed: %s", exc, exc_info=True)

    def _complete(self, session: PlaybackSession) -> None:
        session.completion = None
        if self._session is not session:
            return
        session.cancel()
        self._session = None
        self._set_idle()

    def _set_idle(self) -> None:
        self._is_playing.set(False)
        self._idle.set()


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


def _check_index(note_index: int) -> None:
    if not 0 <= note_index < SCALE_LENGTH:
        raise ValueError(f"note_index must be in [0, {SCALE_LENGTH - 1}], got {note_index}")

