from __future__ import annotations

from pedalboard import Gain, Limiter, Pedalboard  # type: ignore[import]

from ..audio import Destination
from ..samples import SampleManifest, VelocityLayer
from .base import Instrument

# Single-velocity samples: velocity only scales volume (0-1 units).
CHORD_VELOCITY = 0.25
NOTE_VELOCITY = 0.45
# Boost to match the Salamander levels.
GAIN_DB = 12.0
LIMITER_DB = -1.0

SAMPLE_BASE_URL = "https://gleitz.github.io/midi-js-soundfonts/MusyngKite/acoustic_grand_piano-mp3/"
SAMPLE_NOTES = (
    "A0",
    "C1", "Eb1", "Gb1", "A1",
    "C2", "Eb2", "Gb2", "A2",
    "C3", "Eb3", "Gb3", "A3",
    "C4", "Eb4", "Gb4", "A4",
    "C5", "Eb5", "Gb5", "A5",
)  # fmt: skip


class MusyngKitePiano(Instrument):
    instrument_id = "musyng"
    display_name = "MusyngKite"
    full_scale = 1.0
    chord_velocity = CHORD_VELOCITY
    note_velocity = NOTE_VELOCITY
    default_base_url = SAMPLE_BASE_URL

    def manifest(self) -> SampleManifest:
        return SampleManifest(
            name=self.instrument_id,
            base_url=self.base_url,
            layers=(
                VelocityLayer(
                    low=0.0,
                    high=self.full_scale,
                    samples={note: f"{note}.mp3" for note in SAMPLE_NOTES},
                ),
            ),
        )

    def build_board(self) -> Pedalboard:
        return Pedalboard([Gain(gain_db=GAIN_DB), Limiter(threshold_db=LIMITER_DB)])

    def output_node(self) -> Destination:
        # Always plays through the context's own output; a supplied
        # destination is ignored.
        return self.audio_context.destination
