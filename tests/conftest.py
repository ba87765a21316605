from __future__ import annotations

import io
import threading

import numpy as np
import pytest
import soundfile as sf

from eartuner.audio_context import AudioContext
from eartuner.samples import SampleLoader

TEST_SAMPLE_RATE = 8_000


class FakeStream:
    def __init__(self, *, fail_start: bool = False, block: threading.Event | None = None) -> None:
        self.fail_start = fail_start
        self.block = block
        self.started = 0
        self.stopped = 0
        self.closed = False

    def start(self) -> None:
        if self.block is not None:
            self.block.wait(timeout=2.0)
        if self.fail_start:
            from eartuner.errors import AudioContextError

            raise AudioContextError("device busy")
        self.started += 1

    def stop(self) -> None:
        self.stopped += 1

    def close(self) -> None:
        self.closed = True


def make_context(stream: FakeStream | None = None) -> AudioContext:
    fake = stream or FakeStream()
    return AudioContext(
        sample_rate=TEST_SAMPLE_RATE,
        block_size=256,
        stream_factory=lambda sample_rate, block_size, callback: fake,
    )


def wav_bytes(seconds: float = 0.3, *, sample_rate: int = TEST_SAMPLE_RATE) -> bytes:
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    tone = (0.5 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)
    buffer = io.BytesIO()
    sf.write(buffer, tone, sample_rate, format="WAV")
    return buffer.getvalue()


class FakeFetch:
    def __init__(self, *, fail_on: str | None = None, payload: bytes | None = None) -> None:
        self.fail_on = fail_on
        self.payload = payload if payload is not None else wav_bytes()
        self.urls: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, url: str) -> bytes:
        with self._lock:
            self.urls.append(url)
        if self.fail_on is not None and self.fail_on in url:
            raise OSError(f"404 for {url}")
        return self.payload


@pytest.fixture
def context() -> AudioContext:
    return make_context()


@pytest.fixture
def fake_fetch() -> FakeFetch:
    return FakeFetch()


@pytest.fixture
def loader(fake_fetch: FakeFetch) -> SampleLoader:
    return SampleLoader(sample_rate=TEST_SAMPLE_RATE, fetch=fake_fetch)
