from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray

FloatArray = NDArray[np.float32]
AudioNumbers = NDArray[np.floating[Any]] | Sequence[float] | FloatArray

SAMPLE_RATE = 44_100


class AudioNode(Protocol):
    def render(self, frames: int) -> FloatArray: ...


def ensure_audio_contract(audio: AudioNumbers, *, check_peak: bool = True) -> FloatArray:
    """Normalize dtype/range/shape to the audio contract (mono float32, |x| <= 1)."""

    mono: FloatArray = np.asarray(audio, dtype=np.float32).reshape(-1)
    if mono.size == 0 or not check_peak:
        return mono
    peak = float(np.max(np.abs(mono)))
    if peak > 1.0:
        mono = mono / peak
    return mono


def silence(frames: int) -> FloatArray:
    return np.zeros(max(frames, 0), dtype=np.float32)


def resample(audio: FloatArray, ratio: float) -> FloatArray:
    """Read ``audio`` at ``ratio`` times its speed with linear interpolation."""

    if audio.size == 0 or ratio <= 0:
        return audio
    if ratio == 1.0:
        return audio
    length = int(audio.size / ratio)
    if length <= 0:
        return np.zeros(0, dtype=np.float32)
    positions = np.arange(length, dtype=np.float64) * ratio
    source = np.arange(audio.size, dtype=np.float64)
    return np.interp(positions, source, audio).astype(np.float32)


class Destination:
    """Mixing bus: sums every connected node into one block."""

    def __init__(self) -> None:
        self._inputs: list[AudioNode] = []
        self._lock = threading.Lock()

    def connect(self, node: AudioNode) -> None:
        with self._lock:
            if node not in self._inputs:
                self._inputs.append(node)

    def disconnect(self, node: AudioNode) -> None:
        with self._lock:
            if node in self._inputs:
                self._inputs.remove(node)

    @property
    def input_count(self) -> int:
        with self._lock:
            return len(self._inputs)

    def render(self, frames: int) -> FloatArray:
        with self._lock:
            inputs = list(self._inputs)
        block = silence(frames)
        for node in inputs:
            block += node.render(frames)
        return np.clip(block, -1.0, 1.0)
