from __future__ import annotations

from .audio import SAMPLE_RATE
from .audio_context import AudioContext, AudioContextManager
from .config import EarTunerConfig, PlaybackTiming, load_config
from .errors import (
    AudioContextError,
    EarTunerError,
    InstrumentStateError,
    InvalidConfigError,
    SampleLoadError,
)
from .instruments import (
    Instrument,
    InstrumentConfig,
    InstrumentInfo,
    InstrumentRegistry,
    InstrumentStage,
    MusyngKitePiano,
    SalamanderPiano,
)
from .logging_utils import configure_logging as _configure_logging
from .observable import Observable
from .playback import PlaybackScheduler, PlaybackSession
from .preferences import JsonFileStore, KeyValueStore, MemoryStore
from .samples import SampleLoader, SampleManifest, VelocityLayer
from .theory import (
    ALL_KEYS,
    OCTAVE_MAP,
    Key,
    Mode,
    OctaveName,
    cadence,
    format_key_display,
    random_degree_index,
    random_key,
    random_octave,
    scale_notes,
    solfege_labels,
    transpose,
)
from .tuner import EarTuner

__all__ = [
    "ALL_KEYS",
    "OCTAVE_MAP",
    "SAMPLE_RATE",
    "AudioContext",
    "AudioContextError",
    "AudioContextManager",
    "EarTuner",
    "EarTunerConfig",
    "EarTunerError",
    "Instrument",
    "InstrumentConfig",
    "InstrumentInfo",
    "InstrumentRegistry",
    "InstrumentStage",
    "InstrumentStateError",
    "InvalidConfigError",
    "JsonFileStore",
    "Key",
    "KeyValueStore",
    "MemoryStore",
    "Mode",
    "MusyngKitePiano",
    "Observable",
    "OctaveName",
    "PlaybackScheduler",
    "PlaybackSession",
    "PlaybackTiming",
    "SalamanderPiano",
    "SampleLoadError",
    "SampleLoader",
    "SampleManifest",
    "VelocityLayer",
    "cadence",
    "format_key_display",
    "load_config",
    "random_degree_index",
    "random_key",
    "random_octave",
    "scale_notes",
    "solfege_labels",
    "transpose",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
