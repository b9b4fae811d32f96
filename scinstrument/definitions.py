"""Synth definitions for every source and the reverb effect, built with supriya.

Each instrument exposes the controls the composer sets: ``freq``, ``duration``
(seconds), ``mul``, ``effectBus`` and the envelope controls ``attack``,
``decay``, ``sustain``, ``release`` and ``reverb`` (wet fraction). The dry
signal goes to the hardware outputs and the wet share to ``effectBus``, where
the instrument's reverb node reads it through ``inBus``.
"""

from __future__ import annotations

import functools
import logging
from types import MappingProxyType
from typing import Callable, Mapping

from supriya import SynthDef, SynthDefBuilder
from supriya.ugens import (
    EnvGen,
    Envelope,
    FreeVerb,
    In,
    LFTri,
    Line,
    Out,
    Pan2,
    Pulse,
    Saw,
    SinOsc,
    WhiteNoise,
)

from .config import EFFECTS, SOURCES, SourceName
from .errors import AssetDeliveryError

_LOGGER = logging.getLogger("scinstrument.definitions")

# Frees the synth once its envelope has finished.
DONE_FREE_SELF = 2
HARDWARE_OUT_BUS = 0

Oscillator = Callable[[object], object]

_OSCILLATORS: Mapping[SourceName, Oscillator] = MappingProxyType(
    {
        "sine": lambda freq: SinOsc.ar(frequency=freq),
        "saw": lambda freq: Saw.ar(frequency=freq),
        "triangle": lambda freq: LFTri.ar(frequency=freq),
        "pulse": lambda freq: Pulse.ar(frequency=freq, width=0.5),
        "noise": lambda freq: WhiteNoise.ar(),
    }
)

_INSTRUMENT_CONTROLS = {
    "freq": 440.0,
    "duration": 0.5,
    "mul": 0.5,
    "effectBus": 4.0,
    "attack": 0.01,
    "decay": 0.1,
    "sustain": 0.8,
    "release": 0.2,
    "reverb": 0.3,
}


def _instrument(name: str, oscillator: Oscillator) -> SynthDef:
    with SynthDefBuilder(**_INSTRUMENT_CONTROLS) as builder:
        envelope = Envelope.adsr(
            attack_time=builder["attack"],
            decay_time=builder["decay"],
            sustain=builder["sustain"],
            release_time=builder["release"],
        )
        # The gate stays open for the note's duration, then the release runs.
        gate = Line.kr(start=1, stop=0, duration=builder["duration"])
        amplitude = EnvGen.kr(envelope=envelope, gate=gate, done_action=DONE_FREE_SELF)
        signal = oscillator(builder["freq"]) * amplitude * builder["mul"]
        Out.ar(bus=HARDWARE_OUT_BUS, source=Pan2.ar(source=signal * (1 - builder["reverb"])))
        Out.ar(bus=builder["effectBus"], source=signal * builder["reverb"])
    return builder.build(name=name)


def _reverb(name: str) -> SynthDef:
    with SynthDefBuilder(inBus=4.0, room=0.8, damp=0.5) as builder:
        wet = In.ar(bus=builder["inBus"], channel_count=1)
        verb = FreeVerb.ar(source=wet, mix=1.0, room_size=builder["room"], damping=builder["damp"])
        Out.ar(bus=HARDWARE_OUT_BUS, source=Pan2.ar(source=verb))
    return builder.build(name=name)


@functools.lru_cache(maxsize=None)
def build_synthdef(name: str) -> SynthDef:
    for source, synthdef_name in SOURCES.items():
        if synthdef_name == name:
            return _instrument(name, _OSCILLATORS[source])
    if name in EFFECTS:
        return _reverb(name)
    raise AssetDeliveryError(f"No synth definition named {name!r}")


def compile_synthdef(name: str) -> bytes:
    """Binary ``.scsyndef`` contents for ``name``."""

    data = build_synthdef(name).compile()
    _LOGGER.debug("Compiled synthdef %s (%d bytes)", name, len(data))
    return data
