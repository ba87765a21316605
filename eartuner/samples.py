from __future__ import annotations

import asyncio
import io
import logging
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import numpy as np
import soundfile as sf  # type: ignore[import]
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .audio import SAMPLE_RATE, FloatArray, ensure_audio_contract, resample
from .errors import SampleLoadError
from .theory import pitch_to_midi

_LOGGER = logging.getLogger("eartuner.samples")
_USER_AGENT = "Mozilla/5.0 (eartuner sample loader)"
_FETCH_TIMEOUT = 30.0

Fetcher = Callable[[str], bytes]


class VelocityLayer(BaseModel):
    """Samples recorded at one dynamic, used for velocities in ``[low, high]``."""

    low: float = Field(ge=0.0)
    high: float = Field(ge=0.0)
    samples: Mapping[str, str]

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_range(self) -> "VelocityLayer":
        if self.high < self.low:
            raise ValueError("velocity layer high must be >= low")
        if not self.samples:
            raise ValueError("velocity layer needs at least one sample")
        return self


class SampleManifest(BaseModel):
    """Note name → file name pairs under a base URL."""

    name: str
    base_url: str
    layers: tuple[VelocityLayer, ...]

    model_config = ConfigDict(frozen=True, extra="forbid")

    def url_for(self, filename: str) -> str:
        return self.base_url + urllib.parse.quote(filename)

    def urls(self) -> list[str]:
        return [
            self.url_for(filename) for layer in self.layers for filename in layer.samples.values()
        ]


@dataclass(frozen=True, slots=True)
class SampleLayer:
    """Decoded counterpart of :class:`VelocityLayer`, keyed by MIDI number."""

    low: float
    high: float
    buffers: Mapping[int, FloatArray]


def fetch_url(url: str) -> bytes:
    request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    with urllib.request.urlopen(request, timeout=_FETCH_TIMEOUT) as response:
        return response.read()


def decode_sample(data: bytes, *, sample_rate: int = SAMPLE_RATE) -> FloatArray:
    """Decode any libsndfile-readable bytes to mono float32 at ``sample_rate``."""

    audio, source_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    mono: FloatArray = np.asarray(audio, dtype=np.float32).mean(axis=1)
    if int(source_rate) != sample_rate:
        mono = resample(mono, float(source_rate) / float(sample_rate))
    return ensure_audio_contract(mono)


class SampleLoader:
    """Fetches and decodes every sample of a manifest.

    Downloads are cached on disk under ``cache_dir/<manifest name>/``.
    """

    def __init__(
        self,
        *,
        cache_dir: str | Path | None = None,
        sample_rate: int = SAMPLE_RATE,
        fetch: Fetcher | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir) if cache_dir is not None else None
        self.sample_rate = sample_rate
        self._fetch = fetch or fetch_url

    async def load(self, manifest: SampleManifest) -> list[SampleLayer]:
        layers = await asyncio.gather(
            *(self._load_layer(manifest, layer) for layer in manifest.layers)
        )
        _LOGGER.info("Loaded %d samples for %s", len(manifest.urls()), manifest.name)
        return list(layers)

    async def _load_layer(self, manifest: SampleManifest, layer: VelocityLayer) -> SampleLayer:
        notes = list(layer.samples)
        buffers = await asyncio.gather(
            *(self._load_one(manifest, layer.samples[note]) for note in notes)
        )
        return SampleLayer(
            low=layer.low,
            high=layer.high,
            buffers={pitch_to_midi(note): buffer for note, buffer in zip(notes, buffers)},
        )

    async def _load_one(self, manifest: SampleManifest, filename: str) -> FloatArray:
        url = manifest.url_for(filename)
        data = await asyncio.to_thread(self._read_bytes, manifest.name, url, filename)
        try:
            return await asyncio.to_thread(decode_sample, data, sample_rate=self.sample_rate)
        except (sf.LibsndfileError, RuntimeError, ValueError) as exc:
            cached = self._cache_path(manifest.name, filename)
            if cached is not None:
                cached.unlink(missing_ok=True)
            raise SampleLoadError(url, f"cannot decode: {exc}") from exc

    def _cache_path(self, manifest_name: str, filename: str) -> Path | None:
        if self.cache_dir is None:
            return None
        return self.cache_dir / manifest_name / filename

    def _read_bytes(self, manifest_name: str, url: str, filename: str) -> bytes:
        cached = self._cache_path(manifest_name, filename)
        if cached is not None and cached.exists():
            return cached.read_bytes()
        try:
            data = self._fetch(url)
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise SampleLoadError(url, f"cannot fetch: {exc}") from exc
        if cached is not None:
            try:
                cached.parent.mkdir(parents=True, exist_ok=True)
                cached.write_bytes(data)
            except OSError as exc:
                _LOGGER.debug("Could not cache %s: %s", url, exc, exc_info=True)
        return data
