from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict

from ..audio import Destination
from ..audio_context import AudioContext
from ..preferences import KeyValueStore
from ..samples import SampleLoader
from .base import Instrument
from .musyng import MusyngKitePiano
from .salamander import SalamanderPiano

_LOGGER = logging.getLogger("eartuner.instruments.registry")

STORAGE_KEY = "selected-instrument"
DEFAULT_INSTRUMENT_ID = MusyngKitePiano.instrument_id

INSTRUMENT_TYPES: Mapping[str, type[Instrument]] = MappingProxyType(
    {
        MusyngKitePiano.instrument_id: MusyngKitePiano,
        SalamanderPiano.instrument_id: SalamanderPiano,
    }
)


class InstrumentInfo(BaseModel):
    id: str
    display_name: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class InstrumentConfig(BaseModel):
    """Uniform construction arguments for every instrument variant."""

    audio_context: AudioContext
    destination: Destination | None = None
    loader: SampleLoader | None = None
    base_urls: Mapping[str, str] = MappingProxyType({})

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


class InstrumentRegistry:
    """Id → variant lookup plus the persisted selection."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        types: Mapping[str, type[Instrument]] = INSTRUMENT_TYPES,
        default_id: str = DEFAULT_INSTRUMENT_ID,
    ) -> None:
        if default_id not in types:
            _LOGGER.warning(
                "Unknown default instrument %r, using %r", default_id, DEFAULT_INSTRUMENT_ID
            )
            default_id = DEFAULT_INSTRUMENT_ID
        self._store = store
        self._types = types
        self.default_id = default_id

    def list(self) -> list[InstrumentInfo]:
        return [
            InstrumentInfo(id=instrument_id, display_name=instrument_type.display_name)
            for instrument_id, instrument_type in self._types.items()
        ]

    def is_known(self, instrument_id: str) -> bool:
        return instrument_id in self._types

    def get_selected_id(self) -> str:
        if self._store is None:
            return self.default_id
        try:
            saved = self._store.get(STORAGE_KEY)
        except Exception as exc:
            _LOGGER.debug("Preference store unavailable: %s", exc, exc_info=True)
            return self.default_id
        if not saved:
            return self.default_id
        if saved not in self._types:
            _LOGGER.warning(
                "Unknown instrument type: %s, falling back to %s", saved, self.default_id
            )
            return self.default_id
        return saved

    def set_selected_id(self, instrument_id: str) -> None:
        if instrument_id not in self._types:
            _LOGGER.warning("Not saving unknown instrument %r", instrument_id)
            return
        if self._store is None:
            return
        try:
            self._store.set(STORAGE_KEY, instrument_id)
        except Exception as exc:
            _LOGGER.debug("Preference store unavailable: %s", exc, exc_info=True)

    def resolve(self, instrument_id: str | None = None) -> str:
        selected = instrument_id or self.get_selected_id()
        if selected not in self._types:
            _LOGGER.warning(
                "Unknown instrument type: %s, falling back to %s", selected, self.default_id
            )
            return self.default_id
        return selected

    def create_instrument(
        self,
        config: InstrumentConfig,
        instrument_id: str | None = None,
    ) -> Instrument:
        resolved = self.resolve(instrument_id)
        instrument_type = self._types[resolved]
        return instrument_type(
            config.audio_context,
            config.destination,
            loader=config.loader,
            base_url=config.base_urls.get(resolved),
        )
