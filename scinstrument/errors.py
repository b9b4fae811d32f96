from __future__ import annotations


class InstrumentError(Exception):
    """Base error for the scinstrument library."""


class InvalidSettingsError(InstrumentError):
    """Raised when engine settings cannot be parsed or validated."""


class NoteLookupError(InstrumentError):
    """Raised when a note cannot be turned into a frequency."""


class UnknownNoteError(NoteLookupError):
    """Raised when a note token is absent from the note table."""


class FrequencyRangeError(NoteLookupError):
    """Raised when a frequency falls outside the single-precision range."""


class ServerStartError(InstrumentError):
    """Raised when the synthesis server cannot be started."""


class AssetDeliveryError(InstrumentError):
    """Raised when a synth definition cannot be copied to storage."""
