from __future__ import annotations

import socket
import threading
import time
from pathlib import Path

from pythonosc.osc_message import OscMessage
from pythonosc.osc_message_builder import OscMessageBuilder

from scinstrument.assets import AssetDelivery, synthdef_filename
from scinstrument.config import EngineSettings, all_synthdefs
from scinstrument.context import EngineContext
from scinstrument.errors import ServerStartError
from scinstrument.messages import ControlMessage
from scinstrument.server import ExternalServer, ScsynthProcess
from scinstrument.session import InstrumentSession
from scinstrument.transport import MessageLog, Reply, Transport, osc_udp_transport


class FakeServer:
    def __init__(self, *, fail: bool = False, delay: float = 0.0) -> None:
        self.running = False
        self.starts = 0
        self.terminated = 0
        self._fail = fail
        self._delay = delay

    def start(self) -> None:
        if self._fail:
            raise ServerStartError("scsynth missing")
        time.sleep(self._delay)
        self.starts += 1
        self.running = True

    def is_running(self) -> bool:
        return self.running

    def terminate(self) -> None:
        self.terminated += 1
        self.running = False


def _assets(tmp_path: Path) -> AssetDelivery:
    return AssetDelivery(None, tmp_path / "store")


def _context(tmp_path: Path, server: FakeServer, log: MessageLog, **kwargs: float) -> EngineContext:
    return EngineContext(server=server, transport=log.transport(), assets=_assets(tmp_path), **kwargs)


def test_ensure_server_starts_delivers_and_loads(tmp_path: Path) -> None:
    server = FakeServer()
    log = MessageLog()
    context = _context(tmp_path, server, log)

    assert context.ensure_server() is True
    assert context.ensure_server() is False

    assert server.starts == 1
    assert context.start_count == 1
    for name in all_synthdefs():
        assert (tmp_path / "store" / synthdef_filename(name)).read_bytes()[:4] == b"SCgf"
    assert log.messages == [ControlMessage(address="/d_loadDir", args=(str(tmp_path / "store"),))]
    assert [str(message) for message in log.queries] == ["/status", "/sync 1"]
    assert len(context.diagnostics) == 0


def test_concurrent_callers_start_server_once(tmp_path: Path) -> None:
    server = FakeServer(delay=0.05)
    log = MessageLog()
    context = _context(tmp_path, server, log)
    results: list[bool] = []
    lock = threading.Lock()

    def _worker() -> None:
        started = context.ensure_server()
        with lock:
            results.append(started)

    threads = [threading.Thread(target=_worker) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert server.starts == 1
    assert results.count(True) == 1
    assert len(log.batches) == 1


def test_restart_reloads_without_redelivering(tmp_path: Path) -> None:
    server = FakeServer()
    log = MessageLog()
    context = _context(tmp_path, server, log)
    context.ensure_server()
    stored = tmp_path / "store" / "reverb.scsyndef"
    stored.unlink()

    server.running = False
    assert context.ensure_server() is True

    assert server.starts == 2
    assert not stored.exists()
    assert [message.address for message in log.messages] == ["/d_loadDir", "/d_loadDir"]
    assert [str(message) for message in log.queries if message.address == "/sync"] == ["/sync 1", "/sync 2"]


def test_nothing_is_sent_until_server_answers(tmp_path: Path) -> None:
    events: list[str] = []
    answer_after = 3

    def _send(batch: object) -> None:
        events.extend(f"send {message.address}" for message in batch)  # type: ignore[attr-defined]

    def _query(message: ControlMessage, reply_address: str, timeout: float) -> Reply | None:
        events.append(f"query {message.address}")
        if message.address == "/status" and events.count("query /status") < answer_after:
            return None
        return message.args

    transport = Transport(name="slow", send=_send, send_quit=lambda: None, query=_query)
    context = EngineContext(
        server=FakeServer(),
        transport=transport,
        assets=_assets(tmp_path),
        ready_interval=0.01,
    )

    assert context.ensure_server() is True
    assert events == [
        "query /status",
        "query /status",
        "query /status",
        "send /d_loadDir",
        "query /sync",
    ]


def test_unanswered_status_fails_startup(tmp_path: Path) -> None:
    server = FakeServer()
    log = MessageLog(responsive=False)
    context = _context(tmp_path, server, log, ready_timeout=0.1, ready_interval=0.02)

    assert context.ensure_server() is False

    assert context.diagnostics.codes() == ["server.start_failed"]
    assert "/status" in context.diagnostics.records[0].message
    assert server.terminated == 1
    assert context.start_count == 0
    assert log.batches == []
    assert len(log.queries) >= 2


def test_server_exiting_during_startup_fails_fast(tmp_path: Path) -> None:
    class _Crashing(FakeServer):
        def is_running(self) -> bool:
            return False

    log = MessageLog(responsive=False)
    context = EngineContext(
        server=_Crashing(),
        transport=log.transport(),
        assets=_assets(tmp_path),
        ready_timeout=5.0,
    )

    started = time.monotonic()
    assert context.ensure_server() is False
    assert time.monotonic() - started < 1.0
    assert "exited" in context.diagnostics.records[0].message


def test_zero_timeout_skips_readiness_wait(tmp_path: Path) -> None:
    log = MessageLog()
    context = _context(tmp_path, FakeServer(), log, ready_timeout=0.0)
    context.ensure_server()
    assert [message.address for message in log.queries] == ["/sync"]


def test_missed_sync_is_reported(tmp_path: Path) -> None:
    def _query(message: ControlMessage, reply_address: str, timeout: float) -> Reply | None:
        return () if message.address == "/status" else (999,)

    context = EngineContext(
        server=FakeServer(),
        transport=Transport(name="odd", send=lambda batch: None, send_quit=lambda: None, query=_query),
        assets=_assets(tmp_path),
    )

    assert context.ensure_server() is True
    assert context.diagnostics.codes() == ["server.sync_timeout"]


def test_start_failure_is_reported(tmp_path: Path) -> None:
    log = MessageLog()
    server = FakeServer(fail=True)
    context = _context(tmp_path, server, log)

    assert context.ensure_server() is False
    assert context.diagnostics.codes() == ["server.start_failed"]
    assert context.start_count == 0
    assert server.terminated == 1
    assert log.batches == []


def test_failed_delivery_is_reported(tmp_path: Path) -> None:
    store = tmp_path / "store"
    store.mkdir()
    (store / "saw-inst.scsyndef").mkdir()
    log = MessageLog()
    context = _context(tmp_path, FakeServer(), log)

    assert context.ensure_server() is True
    assert context.diagnostics.codes() == ["assets.delivery_failed"]
    assert "saw-inst" in context.diagnostics.records[0].message
    assert [message.address for message in log.messages] == ["/d_loadDir"]


def test_unavailable_storage_is_reported(tmp_path: Path) -> None:
    blocker = tmp_path / "occupied"
    blocker.write_text("")
    context = EngineContext(
        server=FakeServer(),
        transport=MessageLog().transport(),
        assets=AssetDelivery(None, blocker / "store"),
    )
    context.ensure_server()
    assert context.diagnostics.codes() == ["assets.storage_unavailable"]


def test_send_failure_becomes_diagnostic(tmp_path: Path) -> None:
    def _broken(batch: object) -> None:
        raise OSError("network unreachable")

    def _broken_quit() -> None:
        raise OSError("network unreachable")

    context = EngineContext(
        server=ExternalServer(),
        transport=Transport(
            name="broken",
            send=_broken,
            send_quit=_broken_quit,
            query=lambda message, address, timeout: None,
        ),
        assets=_assets(tmp_path),
    )

    context.send((ControlMessage(address="/quit"),))
    context.send_quit()

    records = context.diagnostics.records
    assert [record.code for record in records] == ["transport.send_failed"] * 2
    assert [record.severity for record in records] == ["error", "warning"]
    assert records[0].context == {"transport": "broken"}


def test_from_settings_selects_server(tmp_path: Path) -> None:
    managed = EngineContext.from_settings(
        EngineSettings(port=57123, synthdef_dir=tmp_path, server_ready_timeout=2.5)
    )
    external = EngineContext.from_settings(EngineSettings(manage_server=False, synthdef_dir=tmp_path))

    assert isinstance(managed.server, ScsynthProcess)
    assert managed.server.port == 57123
    assert managed.transport.name == "osc-udp://127.0.0.1:57123"
    assert managed.ready_timeout == 2.5
    assert isinstance(external.server, ExternalServer)
    assert external.assets.storage_dir == tmp_path


class _SlowBootingScsynth:
    """Binds its UDP port only ``boot_delay`` seconds after start(), like scsynth."""

    def __init__(self, boot_delay: float) -> None:
        reserved = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        reserved.bind(("127.0.0.1", 0))
        self.port = reserved.getsockname()[1]
        reserved.close()
        self.boot_delay = boot_delay
        self.received: list[str] = []
        self._started = False
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> None:
        self._started = True
        self._thread.start()

    def is_running(self) -> bool:
        return self._started

    def terminate(self) -> None:
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join()

    def _run(self) -> None:
        time.sleep(self.boot_delay)
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind(("127.0.0.1", self.port))
        sock.settimeout(0.05)
        with sock:
            while not self._stop.is_set():
                try:
                    data, peer = sock.recvfrom(4096)
                except TimeoutError:
                    continue
                message = OscMessage(data)
                self.received.append(message.address)
                if message.address == "/status":
                    sock.sendto(_reply("/status.reply", 1, 0, 0, 2, 1), peer)
                elif message.address == "/sync":
                    sock.sendto(_reply("/synced", *message.params), peer)


def _reply(address: str, *args: object) -> bytes:
    builder = OscMessageBuilder(address=address)
    for arg in args:
        builder.add_arg(arg)
    return builder.build().dgram


def _setup_and_notes(server: _SlowBootingScsynth) -> list[str]:
    return [address for address in server.received if address != "/status"]


def test_slow_booting_server_receives_setup_before_notes(tmp_path: Path) -> None:
    server = _SlowBootingScsynth(boot_delay=0.4)
    context = EngineContext(
        server=server,
        transport=osc_udp_transport("127.0.0.1", server.port),
        assets=_assets(tmp_path),
        ready_interval=0.05,
    )
    try:
        session = InstrumentSession(context, notify=lambda message: None)
        session.play(["a", 4])
        deadline = time.monotonic() + 2.0
        while len(_setup_and_notes(server)) < 9 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        server.terminate()

    received = _setup_and_notes(server)
    assert server.received[0] == "/status"
    assert received == [
        "/d_loadDir",
        "/sync",
        "/s_new",
        "/n_set",
        "/s_new",
        "/n_set",
        "/n_set",
        "/n_set",
        "/n_set",
    ]
    assert context.diagnostics.codes() == []
