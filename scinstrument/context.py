from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence

from .assets import AssetDelivery
from .config import DEFAULT_READY_INTERVAL, DEFAULT_READY_TIMEOUT, EngineSettings, all_synthdefs
from .diagnostics import DiagnosticSink
from .errors import ServerStartError
from .messages import (
    STATUS_REPLY,
    SYNCED_REPLY,
    ControlMessage,
    load_directory_message,
    status_message,
    sync_message,
)
from .resources import IdCounter, ResourceAllocator
from .server import ExternalServer, ScsynthProcess, SynthServer
from .transport import Reply, Transport, osc_udp_transport

_LOGGER = logging.getLogger("scinstrument.context")


class EngineContext:
    """State shared by every instrument in the process.

    Build one per process and hand it to each :class:`InstrumentSession`. It
    owns the synthesis server handle, the transport, node and bus id issuance
    and the diagnostic sink.
    """

    def __init__(
        self,
        *,
        server: SynthServer,
        transport: Transport,
        assets: AssetDelivery,
        allocator: ResourceAllocator | None = None,
        diagnostics: DiagnosticSink | None = None,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
        ready_interval: float = DEFAULT_READY_INTERVAL,
    ) -> None:
        self.server = server
        self.transport = transport
        self.assets = assets
        self.allocator = allocator or ResourceAllocator()
        self.diagnostics = diagnostics or DiagnosticSink()
        self.ready_timeout = ready_timeout
        self.ready_interval = ready_interval
        self._startup_lock = threading.Lock()
        self._sync_ids = IdCounter(1)
        self._assets_delivered = False
        self.start_count = 0

    @classmethod
    def from_settings(cls, settings: EngineSettings | None = None) -> EngineContext:
        settings = settings or EngineSettings.from_env()
        server: SynthServer
        if settings.manage_server:
            server = ScsynthProcess(port=settings.port, executable=settings.scsynth_path)
        else:
            server = ExternalServer()
        return cls(
            server=server,
            transport=osc_udp_transport(settings.host, settings.port),
            assets=AssetDelivery(settings.asset_dir, settings.synthdef_dir),
            ready_timeout=settings.server_ready_timeout,
            ready_interval=settings.server_ready_interval,
        )

    def ensure_server(self) -> bool:
        """Start the server unless it is already running.

        Safe to call from many threads at once: exactly one caller performs the
        startup, the rest wait for it. Returns ``True`` if this call started it.
        On return the server answers requests and has loaded every definition,
        so messages sent afterwards are not lost.
        """

        with self._startup_lock:
            if self.server.is_running():
                return False
            try:
                self.server.start()
                self._wait_for_server_ready()
            except ServerStartError as exc:
                self.server.terminate()
                self.diagnostics.emit("error", "server.start_failed", str(exc))
                return False
            self.start_count += 1
            if not self._assets_delivered:
                self._deliver_assets()
                self._assets_delivered = True
            self.send((load_directory_message(str(self.assets.storage_dir)),))
            self.sync()
            return True

    def _wait_for_server_ready(self) -> None:
        if self.ready_timeout <= 0:
            return
        deadline = time.monotonic() + self.ready_timeout
        while time.monotonic() < deadline:
            if not self.server.is_running():
                raise ServerStartError("Synthesis server exited during startup")
            if self._query(status_message(), STATUS_REPLY, self.ready_interval) is not None:
                _LOGGER.debug("Synthesis server answered /status.")
                return
            time.sleep(self.ready_interval)
        raise ServerStartError(f"Synthesis server did not answer /status within {self.ready_timeout}s")

    def sync(self) -> bool:
        """Wait until the server has finished every earlier asynchronous command."""

        sync_id = self._sync_ids.next()
        reply = self._query(sync_message(sync_id), SYNCED_REPLY, self.ready_timeout)
        if reply is None or tuple(reply[:1]) != (sync_id,):
            self.diagnostics.emit(
                "warning",
                "server.sync_timeout",
                f"No /synced {sync_id} within {self.ready_timeout}s",
                sync_id=sync_id,
            )
            return False
        return True

    def _query(self, message: ControlMessage, reply_address: str, timeout: float) -> Reply | None:
        try:
            return self.transport.query(message, reply_address, timeout)
        except OSError as exc:
            _LOGGER.debug("Query %s failed: %s", message.address, exc)
            return None

    def _deliver_assets(self) -> None:
        if not self.assets.prepare_storage():
            self.diagnostics.emit(
                "error",
                "assets.storage_unavailable",
                "Could not create the synthdef directory",
                path=str(self.assets.storage_dir),
            )
            return
        _LOGGER.debug("Delivering synthdefs to %s", self.assets.storage_dir)
        _, failures = self.assets.deliver_all(all_synthdefs())
        for failure in failures:
            self.diagnostics.emit("warning", "assets.delivery_failed", str(failure))

    def send(self, batch: Sequence[ControlMessage]) -> None:
        try:
            self.transport.send(batch)
        except OSError as exc:
            self.diagnostics.emit(
                "error",
                "transport.send_failed",
                f"Could not deliver {len(batch)} messages: {exc}",
                transport=self.transport.name,
            )

    def send_quit(self) -> None:
        try:
            self.transport.send_quit()
        except OSError as exc:
            self.diagnostics.emit(
                "warning",
                "transport.send_failed",
                f"Could not deliver quit: {exc}",
                transport=self.transport.name,
            )
