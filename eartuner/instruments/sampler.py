from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from pedalboard import Pedalboard  # type: ignore[import]

from ..audio import AudioNode, FloatArray, resample, silence
from ..samples import SampleLayer
from ..theory import pitch_to_midi

_LOGGER = logging.getLogger("eartuner.instruments.sampler")

DEFAULT_RELEASE_SECONDS = 1.0
DAMPEN_SECONDS = 0.05


@dataclass(slots=True)
class _Voice:
    buffer: FloatArray
    # (sustain_frames, release_frames), replaced as a whole so the render
    # thread never sees half of an update.
    envelope: tuple[int, int]
    position: int = 0

    @property
    def end_frame(self) -> int:
        sustain, release = self.envelope
        return min(self.buffer.size, sustain + release)

    @property
    def finished(self) -> bool:
        return self.position >= self.end_frame

    def render(self, frames: int) -> FloatArray:
        sustain, release = self.envelope
        out = silence(frames)
        start = self.position
        stop = min(start + frames, self.buffer.size, sustain + release)
        if stop > start:
            index = np.arange(start, stop)
            envelope = np.ones(stop - start, dtype=np.float32)
            released = index >= sustain
            if np.any(released):
                elapsed = (index[released] - sustain).astype(np.float32)
                envelope[released] = np.maximum(0.0, 1.0 - elapsed / max(release, 1))
            out[: stop - start] = self.buffer[start:stop] * envelope
        self.position += frames
        return out

    def dampen(self, frames: int) -> None:
        sustain, release = self.envelope
        if self.position < sustain:
            self.envelope = (self.position, frames)
        elif sustain + release - self.position > frames:
            # Already releasing: shorten what is left of the tail.
            self.envelope = (self.position, frames)


class Sampler:
    """Polyphonic sample player.

    A pitch is played from the nearest recorded sample of the velocity
    layer that covers the requested velocity, repitched to the target.
    ``full_scale`` is the velocity that maps to unity gain (1.0 for
    normalized units, 127 for MIDI units).
    """

    def __init__(
        self,
        layers: Sequence[SampleLayer],
        *,
        sample_rate: int,
        full_scale: float,
        release: float = DEFAULT_RELEASE_SECONDS,
    ) -> None:
        if not layers or not any(layer.buffers for layer in layers):
            raise ValueError("Sampler needs at least one decoded sample")
        self._layers = sorted(layers, key=lambda layer: layer.low)
        self._sample_rate = sample_rate
        self._full_scale = full_scale
        self._release_frames = int(release * sample_rate)
        self._voices: list[_Voice] = []
        self._lock = threading.Lock()

    @property
    def active_voices(self) -> int:
        with self._lock:
            return len(self._voices)

    def layer_for(self, velocity: float) -> SampleLayer:
        for layer in self._layers:
            if layer.low <= velocity <= layer.high and layer.buffers:
                return layer
        candidates = [layer for layer in self._layers if layer.buffers]
        return min(
            candidates,
            key=lambda layer: min(abs(velocity - layer.low), abs(velocity - layer.high)),
        )

    def trigger(self, pitch: str, duration: float, velocity: float) -> None:
        midi = pitch_to_midi(pitch)
        layer = self.layer_for(velocity)
        source = min(layer.buffers, key=lambda sampled: (abs(sampled - midi), sampled))
        ratio = float(2.0 ** ((midi - source) / 12.0))
        sustain_frames = max(int(duration * self._sample_rate), 0)
        # Only the audible part gets repitched.
        needed = int((sustain_frames + self._release_frames) * ratio) + 2
        raw = layer.buffers[source][:needed]
        gain = float(np.clip(velocity / self._full_scale, 0.0, 1.0))
        buffer = (resample(raw, ratio) * gain).astype(np.float32)
        voice = _Voice(buffer=buffer, envelope=(sustain_frames, self._release_frames))
        with self._lock:
            self._voices.append(voice)

    def release_all(self) -> None:
        frames = int(DAMPEN_SECONDS * self._sample_rate)
        with self._lock:
            for voice in self._voices:
                voice.dampen(frames)

    def clear(self) -> None:
        with self._lock:
            self._voices.clear()

    def render(self, frames: int) -> FloatArray:
        with self._lock:
            voices = list(self._voices)
        block = silence(frames)
        for voice in voices:
            block += voice.render(frames)
        with self._lock:
            self._voices = [voice for voice in self._voices if not voice.finished]
        return block


class EffectChain:
    """Runs a source node through a pedalboard chain, one block at a time."""

    def __init__(self, source: AudioNode, board: Pedalboard, *, sample_rate: int) -> None:
        self._source = source
        self._board = board
        self._sample_rate = sample_rate

    @property
    def board(self) -> Pedalboard:
        return self._board

    def render(self, frames: int) -> FloatArray:
        dry = self._source.render(frames)
        wet = self._board(dry.reshape(1, -1), self._sample_rate, reset=False)
        out = np.asarray(wet, dtype=np.float32).reshape(-1)
        if out.size != frames:
            _LOGGER.debug("Effect chain returned %d frames for %d", out.size, frames)
            out = np.resize(out, frames) if out.size else silence(frames)
        return out
