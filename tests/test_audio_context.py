from __future__ import annotations

import asyncio
import threading

import numpy as np
import pytest
from conftest import FakeStream, make_context

from eartuner.audio_context import AudioContextManager
from eartuner.errors import AudioContextError


class ConstantNode:
    def render(self, frames: int) -> np.ndarray:
        return np.full(frames, 0.25, dtype=np.float32)


def _manager(stream: FakeStream, *, timeout: float = 0.5) -> AudioContextManager:
    return AudioContextManager(
        resume_timeout=timeout,
        context_factory=lambda: make_context(stream),
    )


@pytest.mark.asyncio
async def test_unlock_creates_context_lazily() -> None:
    stream = FakeStream()
    manager = _manager(stream)
    assert manager.context is None

    assert await manager.unlock()
    context = manager.context
    assert context is not None
    assert manager.is_running

    assert await manager.unlock()
    assert manager.context is context
    assert stream.started == 1


@pytest.mark.asyncio
async def test_unlock_reports_missing_device() -> None:
    def _no_device():
        raise AudioContextError("no output device")

    manager = AudioContextManager(context_factory=_no_device)
    assert not await manager.unlock()
    assert manager.context is None


@pytest.mark.asyncio
async def test_resume_refused_returns_false() -> None:
    manager = _manager(FakeStream(fail_start=True))
    assert not await manager.unlock()
    assert manager.context is not None
    assert not manager.is_running


@pytest.mark.asyncio
async def test_resume_times_out() -> None:
    gate = threading.Event()
    manager = _manager(FakeStream(block=gate), timeout=0.05)
    try:
        assert not await manager.unlock()
    finally:
        gate.set()


@pytest.mark.asyncio
async def test_resume_without_context() -> None:
    assert not await _manager(FakeStream()).resume()


@pytest.mark.asyncio
async def test_visibility_change_resumes_suspended_context() -> None:
    stream = FakeStream(fail_start=True)
    manager = _manager(stream)
    await manager.unlock()

    stream.fail_start = False
    manager.handle_visibility_change(False)
    assert await manager.wait_for_pending_resume() is None

    manager.handle_visibility_change(True)
    assert await manager.wait_for_pending_resume() is True
    assert manager.is_running


@pytest.mark.asyncio
async def test_visibility_change_before_unlock_is_ignored() -> None:
    manager = _manager(FakeStream())
    manager.handle_visibility_change(True)
    assert await manager.wait_for_pending_resume() is None
    await asyncio.sleep(0)
    assert manager.context is None


def test_render_mixes_inputs_and_advances_clock() -> None:
    context = make_context()
    node = ConstantNode()
    context.destination.connect(node)
    context.destination.connect(node)
    assert context.destination.input_count == 1

    block = context.render(800)

    assert block.shape == (800,)
    assert np.allclose(block, 0.25)
    assert context.current_time == pytest.approx(0.1)


def test_callback_fills_output_buffer() -> None:
    context = make_context()
    context.destination.connect(ConstantNode())
    outdata = np.ones((256, 1), dtype=np.float32)

    context._callback(outdata, 256, None, None)

    assert np.allclose(outdata[:, 0], 0.25)


def test_callback_outputs_silence_when_render_fails() -> None:
    class Exploding:
        def render(self, frames: int) -> np.ndarray:
            raise RuntimeError("bad voice")

    context = make_context()
    context.destination.connect(Exploding())
    outdata = np.ones((256, 1), dtype=np.float32)

    context._callback(outdata, 256, None, None)

    assert not np.any(outdata)


def test_closed_context_cannot_resume() -> None:
    stream = FakeStream()
    context = make_context(stream)
    context.resume()
    context.suspend()
    context.close()

    assert stream.stopped == 1
    assert stream.closed
    with pytest.raises(AudioContextError):
        context.resume()
