"""Turn an untyped play argument list into a resolved :class:`PlayRequest`.

Two list shapes are accepted::

    [note, octave, duration_ms?, volume_percent?]   e.g. ["C#", 5, 250, 80]
    [frequency_hz, duration_ms?, volume_percent?]   e.g. [440, 1000]

Text elements are parsed as numbers. Optional fields that fail to parse stop
the parse: the failing field and every later one take their defaults, and the
note still plays. Missing required fields and values of the wrong type discard
the whole request.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from numbers import Integral, Real
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .diagnostics import DiagnosticSink
from .errors import FrequencyRangeError, UnknownNoteError
from .notes import REFERENCE_OCTAVE, frequency, is_note_token, normalize_token, to_float32
from .params import EnvelopeParams

_LOGGER = logging.getLogger("scinstrument.interpreter")

DEFAULT_DURATION_MS = 500.0
DEFAULT_VOLUME_PERCENT = 50.0
DEFAULT_OCTAVE = REFERENCE_OCTAVE
NOTE_FORM_MAX_ARGS = 4
FREQUENCY_FORM_MAX_ARGS = 3

ArgumentForm = Literal["note", "frequency"]
Accidental = Literal["sharp", "flat"]

_ACCIDENTALS: dict[str, Accidental] = {"#": "sharp", "b": "flat"}


class NoteName(BaseModel):
    letter: str = Field(pattern=r"^[a-h]$")
    accidental: Accidental | None = None
    octave: int

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def token(self) -> str:
        suffix = {"sharp": "#", "flat": "b", None: ""}[self.accidental]
        return f"{self.letter}{suffix}"

    @classmethod
    def from_token(cls, token: str, octave: int) -> NoteName:
        normalized = normalize_token(token)
        return cls(
            letter=normalized[0],
            accidental=_ACCIDENTALS.get(normalized[1:]) if len(normalized) > 1 else None,
            octave=octave,
        )


class Frequency(BaseModel):
    hertz: float = Field(gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


NoteSpecifier = NoteName | Frequency


class PlayRequest(BaseModel):
    specifier: NoteSpecifier
    frequency_hz: float = Field(gt=0)
    duration_ms: float = Field(ge=0)
    volume_percent: float
    envelope: EnvelopeParams = Field(default_factory=EnvelopeParams)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ParseFailure(BaseModel):
    code: str
    message: str
    index: int | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


# Per-element conversion outcomes. ``Unparsed`` is recoverable, ``WrongType``
# aborts the request.


@dataclass(frozen=True, slots=True)
class Parsed:
    value: float


@dataclass(frozen=True, slots=True)
class Unparsed:
    raw: Any
    reason: str


@dataclass(frozen=True, slots=True)
class WrongType:
    raw: Any


Conversion = Parsed | Unparsed | WrongType


def _is_number(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def convert_float(value: object) -> Conversion:
    match value:
        case bool():
            return WrongType(value)
        case str():
            try:
                number = float(value)
            except ValueError:
                return Unparsed(value, f"{value!r} is not a number")
            return _finite(value, number)
        case _ if _is_number(value):
            try:
                number = float(value)  # type: ignore[arg-type]
            except OverflowError:
                return Unparsed(value, f"{value!r} is too large")
            return _finite(value, number)
        case _:
            return WrongType(value)


def convert_int(value: object) -> Conversion:
    """Like :func:`convert_float` but truncating toward zero. ``Parsed.value`` is an ``int``."""

    match value:
        case bool():
            return WrongType(value)
        case str():
            try:
                return Parsed(int(value))
            except ValueError:
                return Unparsed(value, f"{value!r} is not an integer")
        case Integral():
            return Parsed(int(value))
        case _ if _is_number(value):
            number = float(value)  # type: ignore[arg-type]
            if not math.isfinite(number):
                return Unparsed(value, f"{value!r} is not finite")
            return Parsed(math.trunc(number))
        case _:
            return WrongType(value)


def _finite(raw: object, number: float) -> Conversion:
    if not math.isfinite(number):
        return Unparsed(raw, f"{raw!r} is not finite")
    return Parsed(number)


def classify(raw_args: Sequence[object]) -> ArgumentForm:
    """Note-name form when the first element is a note token, else frequency form."""

    first = raw_args[0] if raw_args else None
    if isinstance(first, str) and is_note_token(first):
        return "note"
    return "frequency"


@dataclass(slots=True)
class _Resolution:
    duration_ms: float = DEFAULT_DURATION_MS
    volume_percent: float = DEFAULT_VOLUME_PERCENT


class _Interpreter:
    def __init__(self, raw_args: Sequence[object], sink: DiagnosticSink | None) -> None:
        self._args = tuple(raw_args)
        self._sink = sink

    def _fail(self, code: str, message: str, index: int | None = None) -> ParseFailure:
        failure = ParseFailure(code=code, message=f"Canceling play operation: {message}", index=index)
        if self._sink is not None:
            self._sink.emit("error", code, failure.message, index=index, arguments=_describe(self._args))
        else:
            _LOGGER.error("%s: %s", code, failure.message)
        return failure

    def _notice(self, code: str, message: str, **context: Any) -> None:
        if self._sink is not None:
            self._sink.emit("warning", code, message, **context)
        else:
            _LOGGER.warning("%s: %s", code, message)

    def _wrong_type(self, index: int, raw: object) -> ParseFailure:
        return self._fail(
            "play.wrong_type",
            f"element {index} has unexpected type {type(raw).__name__}",
            index,
        )

    def _recover(self, index: int, reason: str) -> None:
        self._notice(
            "play.number_format",
            f"Skipped remaining list elements: {reason}",
            index=index,
        )

    def _check_excess(self, maximum: int) -> None:
        if len(self._args) > maximum:
            self._notice(
                "play.excess_arguments",
                f"Expected at most {maximum} elements but received {len(self._args)}. "
                "Extra elements will be ignored.",
                expected=maximum,
                received=len(self._args),
            )

    def _optional_fields(self, start: int) -> _Resolution | ParseFailure:
        """Resolve duration then volume, starting at ``start``."""

        resolved = _Resolution()
        for offset, field in enumerate(("duration_ms", "volume_percent")):
            index = start + offset
            if index >= len(self._args):
                break
            raw = self._args[index]
            match convert_float(raw):
                case WrongType():
                    return self._wrong_type(index, raw)
                case Unparsed(reason=reason):
                    self._recover(index, reason)
                    break
                case Parsed(value=value) if field == "duration_ms" and value < 0:
                    self._recover(index, f"duration {value} is negative")
                    break
                case Parsed(value=value):
                    setattr(resolved, field, value)
        return resolved

    def run(self, envelope: EnvelopeParams) -> PlayRequest | ParseFailure:
        if not self._args:
            return self._fail("play.empty_arguments", "no arguments supplied")
        if classify(self._args) == "note":
            _LOGGER.debug("Received play instruction in note-letter format.")
            return self._note_form(envelope)
        _LOGGER.debug("Received play instruction in frequency format.")
        return self._frequency_form(envelope)

    def _note_form(self, envelope: EnvelopeParams) -> PlayRequest | ParseFailure:
        token = normalize_token(str(self._args[0]))
        if len(self._args) < 2:
            return self._fail("play.missing_octave", "no octave supplied", 1)

        octave = DEFAULT_OCTAVE
        resolved: _Resolution | ParseFailure = _Resolution()
        match convert_int(self._args[1]):
            case WrongType(raw=raw):
                return self._wrong_type(1, raw)
            case Unparsed(reason=reason):
                self._recover(1, reason)
            case Parsed(value=value):
                octave = int(value)
                resolved = self._optional_fields(2)
        if isinstance(resolved, ParseFailure):
            return resolved
        self._check_excess(NOTE_FORM_MAX_ARGS)

        try:
            hertz = frequency(token, octave)
        except UnknownNoteError:
            return self._fail("play.unknown_note", f"note {token!r} is not in the note table", 0)
        except FrequencyRangeError as exc:
            return self._fail("play.frequency_out_of_range", str(exc), 1)
        return PlayRequest(
            specifier=NoteName.from_token(token, octave),
            frequency_hz=hertz,
            duration_ms=resolved.duration_ms,
            volume_percent=resolved.volume_percent,
            envelope=envelope,
        )

    def _frequency_form(self, envelope: EnvelopeParams) -> PlayRequest | ParseFailure:
        raw = self._args[0]
        match convert_float(raw):
            case WrongType():
                return self._wrong_type(0, raw)
            case Unparsed(reason=reason):
                return self._fail("play.invalid_frequency", reason, 0)
            case Parsed(value=value):
                hertz = to_float32(value)
        if not (math.isfinite(hertz) and hertz > 0):
            return self._fail("play.frequency_out_of_range", f"frequency {raw!r} must be positive", 0)

        resolved = self._optional_fields(1)
        if isinstance(resolved, ParseFailure):
            return resolved
        self._check_excess(FREQUENCY_FORM_MAX_ARGS)
        return PlayRequest(
            specifier=Frequency(hertz=hertz),
            frequency_hz=hertz,
            duration_ms=resolved.duration_ms,
            volume_percent=resolved.volume_percent,
            envelope=envelope,
        )


def _describe(args: Sequence[object]) -> list[str]:
    return [repr(arg) for arg in args]


def interpret(
    raw_args: Sequence[object],
    *,
    envelope: EnvelopeParams | None = None,
    diagnostics: DiagnosticSink | None = None,
) -> PlayRequest | ParseFailure:
    """Resolve a play argument list. ``raw_args`` is never modified."""

    return _Interpreter(raw_args, diagnostics).run(envelope or EnvelopeParams())
