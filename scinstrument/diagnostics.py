"""Structured diagnostic channel.

The core never raises for bad play arguments or rejected property values. It
records a :class:`Diagnostic` instead, so hosts and tests can inspect what
happened without parsing log text. Every record is also forwarded to the
``scinstrument`` logger at the matching level.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from types import MappingProxyType
from typing import Any, Callable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

_LOGGER = logging.getLogger("scinstrument.diagnostics")

Severity = Literal["debug", "info", "warning", "error"]
DiagnosticListener = Callable[["Diagnostic"], None]

_LOG_LEVELS: Mapping[Severity, int] = MappingProxyType(
    {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
)


class Diagnostic(BaseModel):
    severity: Severity
    code: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __str__(self) -> str:
        return f"[{self.severity}] {self.code}: {self.message}"


class DiagnosticSink:
    """Thread-safe, bounded collector of diagnostics."""

    def __init__(self, *, maxlen: int = 256, logger: logging.Logger | None = None) -> None:
        self._records: deque[Diagnostic] = deque(maxlen=maxlen)
        self._listeners: list[DiagnosticListener] = []
        self._lock = threading.Lock()
        self._logger = logger or _LOGGER

    def emit(self, severity: Severity, code: str, message: str, **context: Any) -> Diagnostic:
        record = Diagnostic(severity=severity, code=code, message=message, context=context)
        self.record(record)
        return record

    def record(self, diagnostic: Diagnostic) -> None:
        with self._lock:
            self._records.append(diagnostic)
            listeners = tuple(self._listeners)
        self._logger.log(
            _LOG_LEVELS[diagnostic.severity],
            "%s: %s %s",
            diagnostic.code,
            diagnostic.message,
            diagnostic.context or "",
        )
        for listener in listeners:
            listener(diagnostic)

    def subscribe(self, listener: DiagnosticListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    @property
    def records(self) -> tuple[Diagnostic, ...]:
        with self._lock:
            return tuple(self._records)

    def codes(self) -> list[str]:
        return [record.code for record in self.records]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
