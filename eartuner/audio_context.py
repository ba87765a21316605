"""Audio output context and its lifecycle.

The context is created lazily on the first unlock request and lives for the
rest of the process. Resuming is bounded by a timeout and reported as a
boolean: a device that refuses to start is an expected outcome, not an error.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Literal, Protocol

from .audio import SAMPLE_RATE, Destination, FloatArray
from .errors import AudioContextError

_LOGGER = logging.getLogger("eartuner.audio_context")

ContextState = Literal["suspended", "running", "closed"]
StreamCallback = Callable[[Any, int, Any, Any], None]

DEFAULT_BLOCK_SIZE = 512
DEFAULT_RESUME_TIMEOUT = 0.5


class OutputStream(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


StreamFactory = Callable[[int, int, StreamCallback], OutputStream]


class _SoundDeviceStream:
    def __init__(self, stream: Any, error_type: type[BaseException]) -> None:
        self._stream = stream
        self._error_type = error_type

    def start(self) -> None:
        try:
            self._stream.start()
        except self._error_type as exc:
            raise AudioContextError(f"Output stream refused to start: {exc}") from exc

    def stop(self) -> None:
        try:
            self._stream.stop()
        except self._error_type as exc:
            raise AudioContextError(f"Output stream refused to stop: {exc}") from exc

    def close(self) -> None:
        try:
            self._stream.close()
        except self._error_type as exc:
            raise AudioContextError(f"Output stream refused to close: {exc}") from exc


def open_sounddevice_stream(
    sample_rate: int,
    block_size: int,
    callback: StreamCallback,
) -> OutputStream:
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except (ImportError, OSError) as exc:
        _LOGGER.info("sounddevice not available: %s", exc, exc_info=True)
        raise AudioContextError("Audio output requires sounddevice (and PortAudio).") from exc
    sd: Any = sd_module
    try:
        stream = sd.OutputStream(
            samplerate=sample_rate,
            blocksize=block_size,
            channels=1,
            dtype="float32",
            callback=callback,
        )
    except sd.PortAudioError as exc:
        raise AudioContextError(f"Cannot open output device: {exc}") from exc
    return _SoundDeviceStream(stream, sd.PortAudioError)


class AudioContext:
    """One output stream feeding from a mixing :class:`Destination`."""

    def __init__(
        self,
        *,
        sample_rate: int = SAMPLE_RATE,
        block_size: int = DEFAULT_BLOCK_SIZE,
        stream_factory: StreamFactory | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.destination = Destination()
        self._frames = 0
        self._state: ContextState = "suspended"
        self._lock = threading.Lock()
        factory = stream_factory or open_sounddevice_stream
        self._stream = factory(sample_rate, block_size, self._callback)

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def current_time(self) -> float:
        """Seconds of audio rendered since the context was created."""
        return self._frames / self.sample_rate

    def resume(self) -> None:
        with self._lock:
            if self._state == "closed":
                raise AudioContextError("Audio context is closed")
            if self._state == "running":
                return
            self._stream.start()
            self._state = "running"
        _LOGGER.debug("Audio context running at %s Hz", self.sample_rate)

    def suspend(self) -> None:
        with self._lock:
            if self._state != "running":
                return
            self._stream.stop()
            self._state = "suspended"
        _LOGGER.debug("Audio context suspended")

    def close(self) -> None:
        with self._lock:
            if self._state == "closed":
                return
            self._stream.close()
            self._state = "closed"

    def render(self, frames: int) -> FloatArray:
        block = self.destination.render(frames)
        self._frames += frames
        return block

    def _callback(self, outdata: Any, frames: int, time_info: Any, status: Any) -> None:
        _ = time_info
        if status:
            _LOGGER.debug("Output stream status: %s", status)
        try:
            outdata[:, 0] = self.render(frames)
        except Exception as exc:
            # On error, output silence rather than killing the stream.
            outdata.fill(0)
            _LOGGER.warning("Audio render failed: %s", exc, exc_info=True)


ContextFactory = Callable[[], AudioContext]


class AudioContextManager:
    """Owns the process-wide :class:`AudioContext`."""

    def __init__(
        self,
        *,
        sample_rate: int = SAMPLE_RATE,
        block_size: int = DEFAULT_BLOCK_SIZE,
        resume_timeout: float = DEFAULT_RESUME_TIMEOUT,
        context_factory: ContextFactory | None = None,
    ) -> None:
        self._resume_timeout = resume_timeout
        self._context_factory = context_factory or (
            lambda: AudioContext(sample_rate=sample_rate, block_size=block_size)
        )
        self._context: AudioContext | None = None
        self._resume_task: asyncio.Task[bool] | None = None

    @property
    def context(self) -> AudioContext | None:
        return self._context

    @property
    def is_running(self) -> bool:
        return self._context is not None and self._context.state == "running"

    async def unlock(self) -> bool:
        """Create the context on first use, then try to get it running."""

        if self._context is None:
            try:
                self._context = self._context_factory()
            except AudioContextError as exc:
                _LOGGER.warning("Audio output unavailable: %s", exc)
                return False
            _LOGGER.info("Audio context created")
        return await self.resume()

    async def resume(self) -> bool:
        context = self._context
        if context is None:
            return False
        if context.state == "running":
            return True
        try:
            await asyncio.wait_for(asyncio.to_thread(context.resume), self._resume_timeout)
        except asyncio.TimeoutError:
            _LOGGER.warning(
                "Audio context did not resume within %.0f ms", self._resume_timeout * 1000
            )
            return False
        except AudioContextError as exc:
            _LOGGER.warning("Audio context could not resume: %s", exc)
            return False
        return context.state == "running"

    def handle_visibility_change(self, visible: bool) -> None:
        """Re-resume after the process comes back to the foreground."""

        if not visible or self._context is None or self.is_running:
            return
        if self._resume_task is not None and not self._resume_task.done():
            return
        loop = asyncio.get_running_loop()
        self._resume_task = loop.create_task(self.resume())
        _LOGGER.debug("Visible again; resuming audio context")

    async def wait_for_pending_resume(self) -> bool | None:
        task = self._resume_task
        if task is None:
            return None
        return await task
