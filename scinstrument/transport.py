from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from typing import Callable

from pydantic import BaseModel, ConfigDict
from pythonosc.osc_message import OscMessage
from pythonosc.osc_message_builder import OscMessageBuilder
from pythonosc.udp_client import UDPClient

from .messages import ControlMessage, OscArg, quit_message

_LOGGER = logging.getLogger("scinstrument.transport")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 57110

Reply = tuple[OscArg, ...]


class Transport(BaseModel):
    """Delivery channel to the synthesis server.

    ``send`` and ``send_quit`` are fire-and-forget and keep batch order.
    ``query`` sends one message and waits up to ``timeout`` seconds for a reply
    with the given address, returning its arguments or ``None``.
    """

    name: str
    send: Callable[[Sequence[ControlMessage]], None]
    send_quit: Callable[[], None]
    query: Callable[[ControlMessage, str, float], Reply | None]

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


def build_message(message: ControlMessage) -> OscMessage:
    """Pack a control message as an OSC message with explicit arg types."""

    builder = OscMessageBuilder(address=message.address)
    for arg in message.args:
        match arg:
            case bool():
                raise TypeError(f"boolean OSC argument in {message.address}")
            case int():
                builder.add_arg(arg, OscMessageBuilder.ARG_TYPE_INT)
            case float():
                builder.add_arg(arg, OscMessageBuilder.ARG_TYPE_FLOAT)
            case str():
                builder.add_arg(arg, OscMessageBuilder.ARG_TYPE_STRING)
            case _:
                raise TypeError(f"unsupported OSC argument {arg!r} in {message.address}")
    return builder.build()


def encode_message(message: ControlMessage) -> bytes:
    return build_message(message).dgram


def decode_reply(data: bytes) -> OscMessage | None:
    if not OscMessage.dgram_is_message(data):
        return None
    return OscMessage(data)


def osc_udp_transport(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> Transport:
    client = UDPClient(host, port)
    # Batches from different threads must not interleave on the socket, and a
    # query owns the socket until its reply arrives.
    lock = threading.Lock()

    def _send(batch: Sequence[ControlMessage]) -> None:
        packets = [build_message(message) for message in batch]
        with lock:
            for packet in packets:
                client.send(packet)
        _LOGGER.debug("Sent %d messages to %s:%s", len(packets), host, port)

    def _send_quit() -> None:
        packet = build_message(quit_message())
        with lock:
            client.send(packet)

    def _query(message: ControlMessage, reply_address: str, timeout: float) -> Reply | None:
        packet = build_message(message)
        deadline = time.monotonic() + timeout
        with lock:
            client.send(packet)
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                try:
                    data = client.receive(remaining)
                except OSError as exc:
                    # Nothing listening yet; the kernel reports it on receive.
                    _LOGGER.debug("No reply to %s from %s:%s: %s", message.address, host, port, exc)
                    return None
                if not data:
                    return None
                reply = decode_reply(data)
                if reply is not None and reply.address == reply_address:
                    return tuple(reply.params)

    return Transport(
        name=f"osc-udp://{host}:{port}",
        send=_send,
        send_quit=_send_quit,
        query=_query,
    )


class MessageLog:
    """In-memory transport target that keeps every delivered batch.

    Queries are recorded separately from batches. A responsive log answers
    each query by echoing the request's arguments; an unresponsive one never
    answers, like a server that has not bound its port.
    """

    def __init__(self, *, responsive: bool = True) -> None:
        self.responsive = responsive
        self._batches: list[tuple[ControlMessage, ...]] = []
        self._queries: list[ControlMessage] = []
        self._quit_count = 0
        self._lock = threading.Lock()

    def _send(self, batch: Sequence[ControlMessage]) -> None:
        with self._lock:
            self._batches.append(tuple(batch))

    def _send_quit(self) -> None:
        with self._lock:
            self._quit_count += 1
            self._batches.append((quit_message(),))

    def _query(self, message: ControlMessage, reply_address: str, timeout: float) -> Reply | None:
        with self._lock:
            self._queries.append(message)
        return message.args if self.responsive else None

    def transport(self) -> Transport:
        return Transport(name="memory", send=self._send, send_quit=self._send_quit, query=self._query)

    @property
    def batches(self) -> list[tuple[ControlMessage, ...]]:
        with self._lock:
            return list(self._batches)

    @property
    def messages(self) -> list[ControlMessage]:
        return [message for batch in self.batches for message in batch]

    @property
    def queries(self) -> list[ControlMessage]:
        with self._lock:
            return list(self._queries)

    @property
    def quit_count(self) -> int:
        with self._lock:
            return self._quit_count

    def clear(self) -> None:
        with self._lock:
            self._batches.clear()
            self._queries.clear()
            self._quit_count = 0
