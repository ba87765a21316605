from __future__ import annotations

import math

from pedalboard import Compressor, Gain, Limiter, Pedalboard  # type: ignore[import]

from ..audio import Destination
from ..samples import SampleManifest, VelocityLayer
from .base import Instrument

# Soft chords, medium-soft single notes (0-127 MIDI range).
CHORD_VELOCITY = 22
NOTE_VELOCITY = 35
VOLUME = 80  # 0-127
COMPRESSOR_THRESHOLD_DB = -20.0
COMPRESSOR_RATIO = 4.0
LIMITER_DB = -6.0

SAMPLE_BASE_URL = (
    "https://raw.githubusercontent.com/sfzinstruments/SalamanderGrandPiano/master/Samples/"
)
# Recorded every minor third from A0 to C8.
SAMPLE_NOTES = ("A0",) + tuple(
    f"{name}{octave}" for octave in range(1, 8) for name in ("C", "D#", "F#", "A")
) + ("C8",)
# Five of the sixteen recorded dynamics: (low, high) MIDI velocity → take.
VELOCITY_LAYERS: tuple[tuple[int, int, int], ...] = (
    (1, 26, 1),
    (27, 49, 4),
    (50, 79, 8),
    (80, 103, 12),
    (104, 127, 16),
)


def volume_to_db(volume: float) -> float:
    """Map a 0-127 volume to decibels of gain (127 is 0 dB)."""
    if volume <= 0:
        return -100.0
    return 20.0 * math.log10(min(volume, 127) / 127.0)


def layer_files(take: int) -> dict[str, str]:
    return {note: f"{note}v{take}.flac" for note in SAMPLE_NOTES}


class SalamanderPiano(Instrument):
    instrument_id = "salamander"
    display_name = "Salamander Grand"
    full_scale = 127.0
    chord_velocity = CHORD_VELOCITY
    note_velocity = NOTE_VELOCITY
    default_base_url = SAMPLE_BASE_URL

    def manifest(self) -> SampleManifest:
        return SampleManifest(
            name=self.instrument_id,
            base_url=self.base_url,
            layers=tuple(
                VelocityLayer(low=low, high=high, samples=layer_files(take))
                for low, high, take in VELOCITY_LAYERS
            ),
        )

    def build_board(self) -> Pedalboard:
        return Pedalboard(
            [
                Gain(gain_db=volume_to_db(VOLUME)),
                Compressor(threshold_db=COMPRESSOR_THRESHOLD_DB, ratio=COMPRESSOR_RATIO),
                Limiter(threshold_db=LIMITER_DB),
            ]
        )

    def output_node(self) -> Destination:
        if self.destination is not None:
            return self.destination
        return self.audio_context.destination
