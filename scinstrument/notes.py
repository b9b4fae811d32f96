from __future__ import annotations

import math
import re
from types import MappingProxyType
from typing import Mapping

import numpy as np

from .errors import FrequencyRangeError, UnknownNoteError

REFERENCE_OCTAVE = 4
NOTE_PATTERN = re.compile(r"[a-hA-H][#bB]?")

_FLOAT32_MAX = float(np.finfo(np.float32).max)

# Octave 4, single precision. Spellings that share a pitch class share the
# exact same value, whichever octave they nominally fall in.
NOTE_TABLE: Mapping[str, np.float32] = MappingProxyType(
    {
        "b#": np.float32(261.626),
        "h#": np.float32(261.626),
        "c": np.float32(261.626),
        "c#": np.float32(277.183),
        "db": np.float32(277.183),
        "d": np.float32(293.665),
        "d#": np.float32(311.127),
        "eb": np.float32(311.127),
        "e": np.float32(329.628),
        "fb": np.float32(329.628),
        "e#": np.float32(349.228),
        "f": np.float32(349.228),
        "f#": np.float32(369.994),
        "gb": np.float32(369.994),
        "g": np.float32(391.995),
        "g#": np.float32(415.305),
        "ab": np.float32(415.305),
        "a": np.float32(440.0),
        "a#": np.float32(466.164),
        "bb": np.float32(466.164),
        "hb": np.float32(466.164),
        "b": np.float32(493.883),
        "h": np.float32(493.883),
        "cb": np.float32(493.883),
    }
)


def is_note_token(value: str) -> bool:
    return NOTE_PATTERN.fullmatch(value) is not None


def normalize_token(value: str) -> str:
    return value.strip().lower()


def base_frequency(token: str) -> float:
    """Octave-4 frequency for a note token, in Hertz."""

    try:
        return float(NOTE_TABLE[normalize_token(token)])
    except KeyError:
        raise UnknownNoteError(f"unknown note {token!r}") from None


def frequency(token: str, octave: int) -> float:
    """Frequency of ``token`` in ``octave``, rounded to single precision.

    Scaling by a power of two is exact, so octave doubling holds bit-for-bit
    for every value that stays inside the float32 range.
    """

    base = base_frequency(token)
    try:
        hertz = math.ldexp(base, octave - REFERENCE_OCTAVE)
    except OverflowError:
        raise FrequencyRangeError(f"{token}{octave} is out of range") from None
    if not 0.0 < hertz <= _FLOAT32_MAX:
        raise FrequencyRangeError(f"{token}{octave} is out of range")
    rounded = float(np.float32(hertz))
    if rounded <= 0.0:
        raise FrequencyRangeError(f"{token}{octave} is out of range")
    return rounded


def to_float32(value: float) -> float:
    """Round a Python float to the precision OSC transmits."""

    if math.isfinite(value) and abs(value) > _FLOAT32_MAX:
        return math.copysign(math.inf, value)
    return float(np.float32(value))
