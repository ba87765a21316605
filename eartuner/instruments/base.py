from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from typing import ClassVar

from pedalboard import Pedalboard  # type: ignore[import]

from ..audio import Destination
from ..audio_context import AudioContext
from ..errors import InstrumentStateError
from ..samples import SampleLoader, SampleManifest
from .sampler import EffectChain, Sampler

_LOGGER = logging.getLogger("eartuner.instruments")


class InstrumentStage(str, Enum):
    CREATED = "created"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"
    DISPOSED = "disposed"


class Instrument(ABC):
    """A sample-playback backend behind one trigger/stop/dispose contract.

    Subclasses declare their id, display name, loudness units and the two
    calibrated velocities; they build their own sample manifest and effect
    chain. Everything the chain owns exists only between a successful
    :meth:`load` and :meth:`dispose`.
    """

    instrument_id: ClassVar[str]
    display_name: ClassVar[str]
    full_scale: ClassVar[float]
    chord_velocity: ClassVar[float]
    note_velocity: ClassVar[float]
    default_base_url: ClassVar[str]

    def __init__(
        self,
        audio_context: AudioContext,
        destination: Destination | None = None,
        *,
        loader: SampleLoader | None = None,
        base_url: str | None = None,
    ) -> None:
        self.audio_context = audio_context
        self.destination = destination
        self.base_url = base_url or self.default_base_url
        self._loader = loader or SampleLoader(sample_rate=audio_context.sample_rate)
        self._stage = InstrumentStage.CREATED
        self._sampler: Sampler | None = None
        self._chain: EffectChain | None = None
        self._output: Destination | None = None

    @property
    def stage(self) -> InstrumentStage:
        return self._stage

    @property
    def is_loaded(self) -> bool:
        return self._stage is InstrumentStage.LOADED

    @abstractmethod
    def manifest(self) -> SampleManifest:
        """Samples this backend needs, under ``self.base_url``."""

    @abstractmethod
    def build_board(self) -> Pedalboard:
        """Gain stage feeding a limiter (optionally through a compressor)."""

    @abstractmethod
    def output_node(self) -> Destination:
        """Where the effect chain is connected."""

    async def load(self) -> None:
        if self._stage is InstrumentStage.LOADED:
            return
        if self._stage is InstrumentStage.DISPOSED:
            raise InstrumentStateError(f"{self.display_name} was disposed")
        if self._stage is InstrumentStage.LOADING:
            raise InstrumentStateError(f"{self.display_name} is already loading")
        self._stage = InstrumentStage.LOADING
        try:
            layers = await self._loader.load(self.manifest())
        except BaseException:
            self._stage = InstrumentStage.FAILED
            raise
        if self._stage is not InstrumentStage.LOADING:
            # Disposed while the samples were in flight.
            return
        sample_rate = self.audio_context.sample_rate
        self._sampler = Sampler(layers, sample_rate=sample_rate, full_scale=self.full_scale)
        self._chain = EffectChain(self._sampler, self.build_board(), sample_rate=sample_rate)
        self._output = self.output_node()
        self._output.connect(self._chain)
        self._stage = InstrumentStage.LOADED
        _LOGGER.info("%s loaded", self.display_name)

    def _require_sampler(self) -> Sampler:
        if self._stage is not InstrumentStage.LOADED or self._sampler is None:
            raise InstrumentStateError(
                f"{self.display_name} is {self._stage.value}, not loaded"
            )
        return self._sampler

    def play_note(self, pitch: str, duration: float) -> None:
        self._require_sampler().trigger(pitch, duration, self.note_velocity)

    def play_chord(self, pitches: Sequence[str], duration: float) -> None:
        sampler = self._require_sampler()
        for pitch in pitches:
            sampler.trigger(pitch, duration, self.chord_velocity)

    def stop(self) -> None:
        if self._sampler is not None:
            self._sampler.release_all()

    def dispose(self) -> None:
        if self._stage is InstrumentStage.DISPOSED:
            return
        if self._sampler is not None:
            self._sampler.clear()
        if self._output is not None and self._chain is not None:
            self._output.disconnect(self._chain)
        self._sampler = None
        self._chain = None
        self._output = None
        self._stage = InstrumentStage.DISPOSED
        _LOGGER.debug("%s disposed", self.display_name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(stage={self._stage.value})"
