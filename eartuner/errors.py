from __future__ import annotations


class EarTunerError(Exception):
    """Base error for the eartuner library."""


class InvalidConfigError(EarTunerError):
    """Raised when a config cannot be parsed or validated."""


class SampleLoadError(EarTunerError):
    """Raised when an instrument sample cannot be fetched or decoded."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class InstrumentStateError(EarTunerError):
    """Raised when an instrument is triggered outside its loaded stage."""


class AudioContextError(EarTunerError):
    """Raised when the audio output device cannot be opened or started."""
