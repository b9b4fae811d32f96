"""OSC control messages for scsynth.

Parameters are set with separate ``/n_set`` messages after the ``/s_new``
create message; arguments passed inline with ``/s_new`` were not applied
reliably by the server, so the composer never relies on them.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from .interpreter import PlayRequest
from .notes import to_float32
from .params import PERCENTAGE_MAX, EnvelopeField

_LOGGER = logging.getLogger("scinstrument.messages")

OscArg = int | float | str

MILLISECS_IN_SEC = 1000.0
ACTION_ADD_TO_HEAD = 0
ACTION_ADD_BEFORE = 2
DEFAULT_SYNTH_GROUP = 1
EFFECT_SYNTHDEF = "reverb"
STATUS_REPLY = "/status.reply"
SYNCED_REPLY = "/synced"

_ENVELOPE_DIVISORS: dict[EnvelopeField, float] = {
    "attack": MILLISECS_IN_SEC,
    "decay": MILLISECS_IN_SEC,
    "sustain": MILLISECS_IN_SEC,
    "release": MILLISECS_IN_SEC,
    "reverb": PERCENTAGE_MAX,
}


class ControlMessage(BaseModel):
    address: str
    args: tuple[OscArg, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __str__(self) -> str:
        rendered = " ".join(str(arg) for arg in self.args)
        return f"{self.address} {rendered}".rstrip()


class ComposeTarget(Protocol):
    """What the composer needs to know about the playing instrument."""

    @property
    def synthdef(self) -> str: ...

    @property
    def effect_bus(self) -> int: ...

    @property
    def effect_node_id(self) -> int: ...


def set_control(node_id: int, name: str, value: OscArg) -> ControlMessage:
    if isinstance(value, float):
        value = to_float32(value)
    return ControlMessage(address="/n_set", args=(node_id, name, value))


def compose(request: PlayRequest, note_id: int, session: ComposeTarget) -> tuple[ControlMessage, ...]:
    """Build the ordered batch that plays one note.

    The create message comes first; every parameter message targets the node
    it created. Envelope fields still at the engine default are omitted.
    """

    batch = [
        ControlMessage(
            address="/s_new",
            args=(session.synthdef, note_id, ACTION_ADD_BEFORE, session.effect_node_id),
        ),
        set_control(note_id, "freq", request.frequency_hz),
        set_control(note_id, "duration", request.duration_ms / MILLISECS_IN_SEC),
        set_control(note_id, "mul", request.volume_percent / PERCENTAGE_MAX),
        set_control(note_id, "effectBus", session.effect_bus),
    ]
    for name, value in request.envelope.overrides().items():
        batch.append(set_control(note_id, name, value / _ENVELOPE_DIVISORS[name]))
    _LOGGER.debug(
        "Composed note %s: synthdef=%s freq=%s dur=%sms vol=%s%% messages=%d",
        note_id,
        session.synthdef,
        request.frequency_hz,
        request.duration_ms,
        request.volume_percent,
        len(batch),
    )
    return tuple(batch)


def compose_effect_setup(effect_node_id: int, effect_bus: int) -> tuple[ControlMessage, ...]:
    """Create the instrument's reverb node and point it at its input bus."""

    return (
        ControlMessage(
            address="/s_new",
            args=(EFFECT_SYNTHDEF, effect_node_id, ACTION_ADD_TO_HEAD, DEFAULT_SYNTH_GROUP),
        ),
        set_control(effect_node_id, "inBus", effect_bus),
    )


def quit_message() -> ControlMessage:
    return ControlMessage(address="/quit")


def load_directory_message(path: str) -> ControlMessage:
    return ControlMessage(address="/d_loadDir", args=(path,))


def status_message() -> ControlMessage:
    return ControlMessage(address="/status")


def sync_message(sync_id: int) -> ControlMessage:
    """Ask the server to answer ``/synced <sync_id>`` once earlier async commands finish."""

    return ControlMessage(address="/sync", args=(sync_id,))
