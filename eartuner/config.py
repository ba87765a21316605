from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidConfigError

_LOGGER = logging.getLogger("eartuner.config")

CACHE_DIR_ENV = "EARTUNER_CACHE_DIR"
CONFIG_DIR_ENV = "EARTUNER_CONFIG_DIR"

_ENV_FIELDS: Mapping[str, str] = {
    "EARTUNER_SAMPLE_RATE": "sample_rate",
    "EARTUNER_BLOCK_SIZE": "block_size",
    "EARTUNER_RESUME_TIMEOUT": "resume_timeout",
    "EARTUNER_INSTRUMENT": "default_instrument",
    "EARTUNER_SAMPLE_CACHE": "sample_cache_dir",
    "EARTUNER_MUSYNG_URL": "musyng_base_url",
    "EARTUNER_SALAMANDER_URL": "salamander_base_url",
}


def get_cache_dir() -> Path:
    configured = os.environ.get(CACHE_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "eartuner"


def get_config_dir() -> Path:
    configured = os.environ.get(CONFIG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".config" / "eartuner"


class PlaybackTiming(BaseModel):
    """Offsets and sustains (seconds) of the cadence + mystery note pattern."""

    chord_gap: float = Field(default=0.6, gt=0.0)
    chord_duration: float = Field(default=0.5, gt=0.0)
    note_delay: float = Field(default=0.3, ge=0.0)
    note_duration: float = Field(default=1.0, gt=0.0)
    release_tail: float = Field(default=1.0, ge=0.0)
    scale_note_duration: float = Field(default=0.4, gt=0.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def chord_offset(self, index: int) -> float:
        return index * self.chord_gap

    def note_offset(self, chord_count: int) -> float:
        return chord_count * self.chord_gap + self.note_delay

    def idle_offset(self, chord_count: int) -> float:
        return self.note_offset(chord_count) + self.note_duration + self.release_tail


class EarTunerConfig(BaseModel):
    timing: PlaybackTiming = Field(default_factory=PlaybackTiming)
    sample_rate: int = Field(default=44_100, ge=8_000, le=192_000)
    block_size: int = Field(default=512, ge=32, le=8_192)
    resume_timeout: float = Field(default=0.5, gt=0.0)
    default_instrument: str = "musyng"
    sample_cache_dir: Path = Field(default_factory=lambda: get_cache_dir() / "samples")
    preferences_path: Path = Field(default_factory=lambda: get_config_dir() / "preferences.json")
    musyng_base_url: str | None = None
    salamander_base_url: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("musyng_base_url", "salamander_base_url")
    @classmethod
    def _trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        return value if value.endswith("/") else f"{value}/"


def load_config(env: Mapping[str, str] | None = None) -> EarTunerConfig:
    """Build a config from ``EARTUNER_*`` environment variables."""

    source = os.environ if env is None else env
    values: dict[str, str] = {}
    for env_name, field_name in _ENV_FIELDS.items():
        raw = source.get(env_name)
        if raw is None or not raw.strip():
            continue
        values[field_name] = raw.strip()
    try:
        config = EarTunerConfig.model_validate(values)
    except ValidationError as exc:
        raise InvalidConfigError(f"Invalid eartuner environment: {exc}") from exc
    _LOGGER.debug("Loaded config overrides: %s", sorted(values))
    return config
