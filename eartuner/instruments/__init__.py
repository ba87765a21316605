"""Sample-based instrument backends and their registry."""

from .base import Instrument, InstrumentStage
from .musyng import MusyngKitePiano
from .registry import (
    DEFAULT_INSTRUMENT_ID,
    INSTRUMENT_TYPES,
    InstrumentConfig,
    InstrumentInfo,
    InstrumentRegistry,
)
from .salamander import SalamanderPiano
from .sampler import EffectChain, Sampler

__all__ = [
    "DEFAULT_INSTRUMENT_ID",
    "EffectChain",
    "INSTRUMENT_TYPES",
    "Instrument",
    "InstrumentConfig",
    "InstrumentInfo",
    "InstrumentRegistry",
    "InstrumentStage",
    "MusyngKitePiano",
    "SalamanderPiano",
    "Sampler",
]
