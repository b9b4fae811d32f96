from __future__ import annotations

import math
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_EFFECT_VALUE = -1.0
PERCENTAGE_MAX = 100.0
REVERB_MAX = PERCENTAGE_MAX

EnvelopeField = Literal["attack", "decay", "sustain", "release", "reverb"]
ENVELOPE_FIELDS: tuple[EnvelopeField, ...] = ("attack", "decay", "sustain", "release", "reverb")


def is_engine_default(value: float) -> bool:
    return value == DEFAULT_EFFECT_VALUE


def sanitize(value: float) -> float:
    """Floor a property value at zero, letting the engine-default sentinel through."""

    if is_engine_default(value):
        return DEFAULT_EFFECT_VALUE
    if math.isnan(value):
        return 0.0
    return max(float(value), 0.0)


def sanitize_bounded(value: float, maximum: float) -> float:
    """Like :func:`sanitize`, additionally capped at ``maximum``."""

    if is_engine_default(value):
        return DEFAULT_EFFECT_VALUE
    return min(sanitize(value), float(maximum))


class EnvelopeParams(BaseModel):
    """Envelope and effect overrides for one instrument.

    Attack, decay, sustain and release are milliseconds, reverb is a percentage. ``-1`` defers to
    the synth definition's built-in default.
    """

    attack: float = DEFAULT_EFFECT_VALUE
    decay: float = DEFAULT_EFFECT_VALUE
    sustain: float = DEFAULT_EFFECT_VALUE
    release: float = DEFAULT_EFFECT_VALUE
    reverb: float = DEFAULT_EFFECT_VALUE

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("attack", "decay", "sustain", "release")
    @classmethod
    def _sanitize_time(cls, value: float) -> float:
        return sanitize(value)

    @field_validator("reverb")
    @classmethod
    def _sanitize_reverb(cls, value: float) -> float:
        return sanitize_bounded(value, REVERB_MAX)

    def overrides(self) -> dict[EnvelopeField, float]:
        """Fields that carry an explicit value, in message order."""

        return {
            name: getattr(self, name)
            for name in ENVELOPE_FIELDS
            if not is_engine_default(getattr(self, name))
        }

    def replace(self, name: EnvelopeField, value: float) -> EnvelopeParams:
        data = self.model_dump()
        data[name] = value
        return EnvelopeParams.model_validate(data)
