from __future__ import annotations

import asyncio
import logging

from .audio_context import AudioContextManager
from .config import EarTunerConfig
from .errors import AudioContextError
from .instruments.base import Instrument
from .instruments.registry import InstrumentConfig, InstrumentInfo, InstrumentRegistry
from .observable import MutableObservable, Observable
from .playback import PlaybackScheduler
from .preferences import JsonFileStore, KeyValueStore
from .samples import SampleLoader
from .theory import Key, Mode

_LOGGER = logging.getLogger("eartuner.tuner")


class EarTuner:
    """Everything a front end needs: context, current instrument, playback."""

    def __init__(
        self,
        config: EarTunerConfig | None = None,
        *,
        store: KeyValueStore | None = None,
        context_manager: AudioContextManager | None = None,
        loader: SampleLoader | None = None,
        registry: InstrumentRegistry | None = None,
    ) -> None:
        self.config = config or EarTunerConfig()
        self.context_manager = context_manager or AudioContextManager(
            sample_rate=self.config.sample_rate,
            block_size=self.config.block_size,
            resume_timeout=self.config.resume_timeout,
        )
        self.registry = registry or InstrumentRegistry(
            store if store is not None else JsonFileStore(self.config.preferences_path),
            default_id=self.config.default_instrument,
        )
        self.scheduler = PlaybackScheduler(timing=self.config.timing)
        self._loader = loader or SampleLoader(
            cache_dir=self.config.sample_cache_dir,
            sample_rate=self.config.sample_rate,
        )
        self._instrument: Instrument | None = None
        self._switch_lock = asyncio.Lock()
        self._is_loaded: MutableObservable[bool] = MutableObservable(False)
        self._current_instrument_id: MutableObservable[str] = MutableObservable(
            self.registry.get_selected_id()
        )

    # -----------------------------------------------------------------
    # Observable state
    # -----------------------------------------------------------------
    @property
    def is_loaded(self) -> Observable[bool]:
        return self._is_loaded

    @property
    def is_playing(self) -> Observable[bool]:
        return self.scheduler.is_playing

    @property
    def current_key(self) -> Observable[Key | None]:
        return self.scheduler.current_key

    @property
    def current_mode(self) -> Observable[Mode | None]:
        return self.scheduler.current_mode

    @property
    def current_instrument_id(self) -> Observable[str]:
        return self._current_instrument_id

    @property
    def instrument(self) -> Instrument | None:
        return self._instrument

    def list_instruments(self) -> list[InstrumentInfo]:
        return self.registry.list()

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------
    async def start_audio_context(self) -> bool:
        """Unlock audio output and load the selected instrument once.

        Returns ``False`` when output cannot be started yet; call again on
        the next user action. Sample load failures propagate.
        """

        if not await self.context_manager.unlock():
            return False
        async with self._switch_lock:
            if self._instrument is None:
                await self._load(self.registry.get_selected_id())
        return True

    async def switch_instrument(self, instrument_id: str) -> None:
        async with self._switch_lock:
            if self._instrument is not None:
                if self._instrument.instrument_id == self.registry.resolve(instrument_id):
                    return
                self._unload()
            if self.context_manager.context is None:
                # Not unlocked yet: remember the choice for the first load.
                resolved = self.registry.resolve(instrument_id)
                self.registry.set_selected_id(resolved)
                self._current_instrument_id.set(resolved)
                return
            await self._load(instrument_id)

    def handle_visibility_change(self, visible: bool) -> None:
        self.context_manager.handle_visibility_change(visible)

    async def close(self) -> None:
        async with self._switch_lock:
            self._unload()

    async def _load(self, instrument_id: str) -> None:
        context = self.context_manager.context
        if context is None:
            raise AudioContextError("Audio context is not unlocked")
        instrument = self.registry.create_instrument(
            InstrumentConfig(
                audio_context=context,
                destination=context.destination,
                loader=self._loader,
                base_urls=self._base_urls(),
            ),
            instrument_id,
        )
        try:
            await instrument.load()
        except BaseException:
            instrument.dispose()
            # Nothing is loaded now; report the variant that was attempted.
            self._current_instrument_id.set(instrument.instrument_id)
            raise
        self._instrument = instrument
        self.scheduler.attach(instrument)
        self.registry.set_selected_id(instrument.instrument_id)
        self._current_instrument_id.set(instrument.instrument_id)
        self._is_loaded.set(True)

    def _unload(self) -> None:
        self.scheduler.detach()
        instrument, self._instrument = self._instrument, None
        self._is_loaded.set(False)
        if instrument is not None:
            instrument.dispose()

    def _base_urls(self) -> dict[str, str]:
        urls: dict[str, str] = {}
        if self.config.musyng_base_url:
            urls["musyng"] = self.config.musyng_base_url
        if self.config.salamander_base_url:
            urls["salamander"] = self.config.salamander_base_url
        return urls

    # -----------------------------------------------------------------
    # Playback
    # -----------------------------------------------------------------
    def play_cadence_and_note(
        self, note_index: int, key: Key, mode: Mode, octave: int = 4
    ) -> bool:
        return self.scheduler.play_cadence_and_note(note_index, key, mode, octave)

    def play_note_only(self, note_index: int, key: Key, mode: Mode, octave: int = 4) -> bool:
        return self.scheduler.play_note_only(note_index, key, mode, octave)

    def play_scale_note(
        self,
        note_index: int,
        key: Key,
        mode: Mode,
        octave: int = 4,
        duration: float | None = None,
    ) -> bool:
        return self.scheduler.play_scale_note(note_index, key, mode, octave, duration)

    def play_cadence_only(self, key: Key, mode: Mode) -> asyncio.Future[None]:
        return self.scheduler.play_cadence_only(key, mode)

    def stop_playback(self) -> None:
        self.scheduler.stop_playback()

    async def wait_until_idle(self) -> None:
        await self.scheduler.wait_until_idle()
