from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import Callable, Literal

from rich.console import Console

from .config import DEFAULT_SOURCE, SOURCES, InstrumentConfig, SourceName, source_names
from .context import EngineContext
from .interpreter import ParseFailure, Parsed, convert_float, interpret
from .messages import compose, compose_effect_setup
from .params import EnvelopeField, EnvelopeParams

_LOGGER = logging.getLogger("scinstrument.session")

SessionState = Literal["uninitialized", "active", "terminated"]
LifecycleEvent = Literal["resume", "stop", "destroy", "delete"]
Notifier = Callable[[str], None]

ILLEGAL_VALUE_MSG = "An illegal value was entered for {field}. The previous value will be used."
ILLEGAL_SOURCE_MSG = ILLEGAL_VALUE_MSG.format(field="Source")

_STDERR = Console(stderr=True)


def _print_notice(message: str) -> None:
    _STDERR.print(f"[yellow]{message}[/yellow]")


class InstrumentSession:
    """One playable instrument bound to the shared synthesis server.

    Construction starts the server if nothing else has, then creates this
    instrument's reverb node on a bus of its own. Every :meth:`play` call turns
    its argument list into one ordered message batch.
    """

    def __init__(
        self,
        context: EngineContext,
        *,
        config: InstrumentConfig | None = None,
        notify: Notifier | None = None,
    ) -> None:
        self._context = context
        self._notify = notify or _print_notice
        self._lock = threading.Lock()
        self._source: SourceName = DEFAULT_SOURCE
        self._envelope = EnvelopeParams()
        self._state: SessionState = "uninitialized"
        self.effect_bus = -1
        self.effect_node_id = -1
        if config is not None:
            self.configure(config)
        self._setup()

    def _setup(self) -> None:
        self._context.ensure_server()
        self.effect_bus = self._context.allocator.next_bus_id()
        self.effect_node_id = self._context.allocator.next_note_id()
        _LOGGER.debug("Setting up bus %s as effect bus.", self.effect_bus)
        self._context.send(compose_effect_setup(self.effect_node_id, self.effect_bus))
        self._state = "active"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def synthdef(self) -> str:
        return SOURCES[self._source]

    # Properties

    @property
    def source(self) -> SourceName:
        return self._source

    @source.setter
    def source(self, value: str) -> None:
        if not isinstance(value, str) or value not in SOURCES:
            self._context.diagnostics.emit(
                "warning",
                "config.invalid_source",
                ILLEGAL_SOURCE_MSG,
                value=repr(value),
                allowed=list(source_names()),
                kept=self._source,
            )
            self._notify(ILLEGAL_SOURCE_MSG)
            return
        self._source = value  # type: ignore[assignment]

    @property
    def envelope(self) -> EnvelopeParams:
        return self._envelope

    @property
    def attack(self) -> float:
        """Milliseconds to reach peak volume; -1 uses the synthdef default."""
        return self._envelope.attack

    @attack.setter
    def attack(self, value: float) -> None:
        self._set_envelope("attack", value)

    @property
    def decay(self) -> float:
        """Milliseconds to fall from peak volume; -1 uses the synthdef default."""
        return self._envelope.decay

    @decay.setter
    def decay(self, value: float) -> None:
        self._set_envelope("decay", value)

    @property
    def sustain(self) -> float:
        return self._envelope.sustain

    @sustain.setter
    def sustain(self, value: float) -> None:
        self._set_envelope("sustain", value)

    @property
    def release(self) -> float:
        return self._envelope.release

    @release.setter
    def release(self, value: float) -> None:
        self._set_envelope("release", value)

    @property
    def reverb(self) -> float:
        """Reverb wetness in percent, 0 (dry) to 100 (only reverb)."""
        return self._envelope.reverb

    @reverb.setter
    def reverb(self, value: float) -> None:
        self._set_envelope("reverb", value)

    def _set_envelope(self, name: EnvelopeField, value: object) -> None:
        conversion = convert_float(value)
        if not isinstance(conversion, Parsed):
            message = ILLEGAL_VALUE_MSG.format(field=name.capitalize())
            self._context.diagnostics.emit(
                "warning",
                "config.invalid_value",
                message,
                field=name,
                value=repr(value),
                kept=getattr(self._envelope, name),
            )
            self._notify(message)
            return
        requested = conversion.value
        with self._lock:
            self._envelope = self._envelope.replace(name, requested)
            stored = getattr(self._envelope, name)
        if stored != requested:
            self._context.diagnostics.emit(
                "info",
                "config.value_adjusted",
                f"{name} {requested} is out of range; using {stored}",
                field=name,
                requested=requested,
                stored=stored,
            )

    def configure(self, config: InstrumentConfig) -> None:
        self.source = config.source
        self.attack = config.attack
        self.decay = config.decay
        self.sustain = config.sustain
        self.release = config.release
        self.reverb = config.reverb

    # Playback

    def play(self, args: Sequence[object]) -> None:
        """Play one note. See :mod:`scinstrument.interpreter` for the list formats."""

        request = interpret(args, envelope=self._envelope, diagnostics=self._context.diagnostics)
        if isinstance(request, ParseFailure):
            return
        note_id = self._context.allocator.next_note_id()
        self._context.send(compose(request, note_id, self))

    # Lifecycle

    def handle(self, event: LifecycleEvent) -> None:
        match event:
            case "resume":
                self.on_resume()
            case "stop":
                self.on_stop()
            case "destroy":
                self.on_destroy()
            case "delete":
                self.on_delete()
            case _:
                raise ValueError(f"unknown lifecycle event {event!r}")

    def on_resume(self) -> None:
        if self._context.ensure_server():
            _LOGGER.info("Restarted synthesis server on resume.")

    def on_stop(self) -> None:
        self._terminate("stop")

    def on_destroy(self) -> None:
        self._terminate("destroy")

    def on_delete(self) -> None:
        self._terminate("delete")

    def _terminate(self, reason: str) -> None:
        _LOGGER.debug("Instrument on bus %s terminating (%s).", self.effect_bus, reason)
        self._context.send_quit()
        self._state = "terminated"
