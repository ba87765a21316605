"""Scale, cadence and solfège helpers.

Pitches are spelled strings such as ``"C4"``, ``"F#3"`` or ``"Bbb4"``
(scientific octave numbering, octave belongs to the letter). Everything
here is pure; randomness comes from an optional ``numpy`` generator.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal, Mapping, get_args

import numpy as np

Key = Literal["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]
Mode = Literal["major", "minor"]
OctaveName = Literal["low", "middle", "high"]
Chord = tuple[str, str, str]

ALL_KEYS: tuple[Key, ...] = get_args(Key)
MODES: tuple[Mode, ...] = get_args(Mode)

OCTAVE_MAP: Mapping[OctaveName, int] = MappingProxyType(
    {
        "low": 3,
        "middle": 4,
        "high": 5,
    }
)

SCALE_INTERVALS: Mapping[Mode, tuple[str, ...]] = MappingProxyType(
    {
        "major": ("1P", "2M", "3M", "4P", "5P", "6M", "7M"),
        "minor": ("1P", "2M", "3m", "4P", "5P", "6m", "7m"),
    }
)

SOLFEGE: Mapping[Mode, tuple[str, ...]] = MappingProxyType(
    {
        "major": ("Do", "Re", "Mi", "Fa", "Sol", "La", "Ti", "Do"),
        # La-based minor
        "minor": ("La", "Ti", "Do", "Re", "Mi", "Fa", "Sol", "La"),
    }
)

SCALE_LENGTH = 8
DEGREE_COUNT = 7
CADENCE_OCTAVE = 4

_LETTERS = "CDEFGAB"
_NATURAL_SEMITONES = (0, 2, 4, 5, 7, 9, 11)
_PERFECT_NUMBERS = frozenset({1, 4, 5})
_SIMPLE_SEMITONES = {1: 0, 2: 2, 3: 4, 4: 5, 5: 7, 6: 9, 7: 11}
_PITCH_RE = re.compile(r"^([A-Ga-g])(#*|b*)(-?\d+)$")
_INTERVAL_RE = re.compile(r"^(-?)(\d+)([dmMPA])$")


@dataclass(frozen=True, slots=True)
class Pitch:
    letter: str
    alter: int
    octave: int

    @classmethod
    def parse(cls, text: str) -> "Pitch":
        match = _PITCH_RE.match(text.strip())
        if match is None:
            raise ValueError(f"Not a pitch name: {text!r}")
        letter, accidentals, octave = match.groups()
        alter = accidentals.count("#") - accidentals.count("b")
        return cls(letter=letter.upper(), alter=alter, octave=int(octave))

    @property
    def midi(self) -> int:
        natural = _NATURAL_SEMITONES[_LETTERS.index(self.letter)]
        return (self.octave + 1) * 12 + natural + self.alter

    def __str__(self) -> str:
        accidentals = "#" * self.alter if self.alter > 0 else "b" * -self.alter
        return f"{self.letter}{accidentals}{self.octave}"


@dataclass(frozen=True, slots=True)
class Interval:
    steps: int
    semitones: int

    @classmethod
    def parse(cls, text: str) -> "Interval":
        match = _INTERVAL_RE.match(text.strip())
        if match is None:
            raise ValueError(f"Not an interval name: {text!r}")
        sign, number_text, quality = match.groups()
        number = int(number_text)
        if number < 1:
            raise ValueError(f"Not an interval name: {text!r}")
        simple = (number - 1) % 7 + 1
        octaves = (number - 1) // 7
        perfect = simple in _PERFECT_NUMBERS
        if perfect and quality in "mM":
            raise ValueError(f"{text!r}: {simple} takes P/A/d, not {quality}")
        if not perfect and quality == "P":
            raise ValueError(f"{text!r}: {simple} takes M/m/A/d, not P")
        offset = {"P": 0, "M": 0, "m": -1, "A": 1, "d": -1 if perfect else -2}[quality]
        semitones = _SIMPLE_SEMITONES[simple] + 12 * octaves + offset
        direction = -1 if sign else 1
        return cls(steps=direction * (number - 1), semitones=direction * semitones)


def pitch_to_midi(pitch: str) -> int:
    return Pitch.parse(pitch).midi


def transpose(pitch: str, interval: str) -> str:
    """Move ``pitch`` by a named interval, keeping letter-name spelling.

    The target letter is counted in staff steps and the accidental is what
    is left over, so ``transpose("G4", "3M")`` is ``"B4"`` and
    ``transpose("Gb4", "3m")`` is ``"Bbb4"``.
    """

    start = Pitch.parse(pitch)
    move = Interval.parse(interval)
    step_total = _LETTERS.index(start.letter) + move.steps
    letter = _LETTERS[step_total % 7]
    octave = start.octave + step_total // 7
    natural = Pitch(letter=letter, alter=0, octave=octave).midi
    return str(Pitch(letter=letter, alter=start.midi + move.semitones - natural, octave=octave))


def scale_notes(key: Key, mode: Mode, octave: int = 4) -> list[str]:
    """Return the 8 scale pitches from ``key`` in ``octave`` up to its octave."""

    tonic = f"{key}{octave}"
    notes = [transpose(tonic, interval) for interval in SCALE_INTERVALS[mode]]
    notes.append(transpose(tonic, "8P"))
    return notes


def cadence(key: Key, mode: Mode) -> list[Chord]:
    """Return the I-V-I (i-V-i in minor) cadence voiced around octave 4.

    The dominant is a major triad in both modes (raised leading tone in
    minor). Its third and fifth are dropped an octave so the chord sits in
    first inversion under the tonic.
    """

    root = f"{key}{CADENCE_OCTAVE}"
    tonic: Chord = (
        root,
        transpose(root, "3M" if mode == "major" else "3m"),
        transpose(root, "5P"),
    )

    dominant_root = transpose(root, "5P")
    leading_tone = transpose(transpose(dominant_root, "3M"), "-8P")
    dominant_fifth = transpose(transpose(dominant_root, "5P"), "-8P")
    dominant: Chord = (leading_tone, dominant_fifth, dominant_root)

    return [tonic, dominant, tonic]


def random_degree_index(rng: np.random.Generator | None = None) -> int:
    """Pick an index into :func:`scale_notes` with every degree at 1/7.

    Index 0 and 7 are both the tonic, so the tonic bucket is split between
    them with a coin flip instead of drawing uniformly over 8 indices.
    """

    generator = rng or np.random.default_rng()
    bucket = int(generator.integers(0, DEGREE_COUNT))
    if bucket == 0:
        return 0 if generator.random() < 0.5 else SCALE_LENGTH - 1
    return bucket


def solfege_labels(mode: Mode) -> list[str]:
    return list(SOLFEGE[mode])


def random_key(rng: np.random.Generator | None = None) -> Key:
    generator = rng or np.random.default_rng()
    return ALL_KEYS[int(generator.integers(0, len(ALL_KEYS)))]


def random_octave(
    octave_names: Sequence[OctaveName],
    rng: np.random.Generator | None = None,
) -> int:
    if not octave_names:
        raise ValueError("octave_names must not be empty")
    generator = rng or np.random.default_rng()
    name = octave_names[int(generator.integers(0, len(octave_names)))]
    return OCTAVE_MAP[name]


def format_key_display(key: Key, mode: Mode) -> str:
    return f"{key} {'Major' if mode == 'major' else 'Minor'}"
