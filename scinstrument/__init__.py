from __future__ import annotations

from .config import EFFECTS, SOURCES, EngineSettings, InstrumentConfig
from .context import EngineContext
from .diagnostics import Diagnostic, DiagnosticSink
from .errors import (
    AssetDeliveryError,
    FrequencyRangeError,
    InstrumentError,
    InvalidSettingsError,
    ServerStartError,
    UnknownNoteError,
)
from .interpreter import Frequency, NoteName, ParseFailure, PlayRequest, interpret
from .logging_utils import configure_logging as _configure_logging
from .messages import ControlMessage, compose
from .notes import NOTE_TABLE, frequency
from .params import DEFAULT_EFFECT_VALUE, EnvelopeParams, sanitize, sanitize_bounded
from .resources import ResourceAllocator
from .session import InstrumentSession
from .transport import MessageLog, Transport, osc_udp_transport

__all__ = [
    "DEFAULT_EFFECT_VALUE",
    "EFFECTS",
    "NOTE_TABLE",
    "SOURCES",
    "AssetDeliveryError",
    "ControlMessage",
    "Diagnostic",
    "DiagnosticSink",
    "EngineContext",
    "EngineSettings",
    "EnvelopeParams",
    "Frequency",
    "FrequencyRangeError",
    "InstrumentConfig",
    "InstrumentError",
    "InstrumentSession",
    "InvalidSettingsError",
    "MessageLog",
    "NoteName",
    "ParseFailure",
    "PlayRequest",
    "ResourceAllocator",
    "ServerStartError",
    "Transport",
    "UnknownNoteError",
    "compose",
    "frequency",
    "interpret",
    "osc_udp_transport",
    "sanitize",
    "sanitize_bounded",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
