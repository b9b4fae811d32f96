from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

from .errors import ServerStartError

_LOGGER = logging.getLogger("scinstrument.server")

SCSYNTH_EXECUTABLE = "scsynth"


@runtime_checkable
class SynthServer(Protocol):
    def start(self) -> None: ...

    def is_running(self) -> bool: ...

    def terminate(self) -> None: ...


def find_scsynth(configured: str | None = None) -> Path | None:
    if configured:
        candidate = Path(configured).expanduser()
        return candidate if candidate.exists() else None
    found = shutil.which(SCSYNTH_EXECUTABLE)
    return Path(found) if found else None


class ScsynthProcess:
    """Runs a local ``scsynth`` listening for OSC over UDP.

    The process exits on its own when it receives ``/quit``; :meth:`is_running`
    then reports ``False`` and :meth:`start` may launch a fresh one.
    """

    def __init__(
        self,
        *,
        port: int,
        executable: str | None = None,
        extra_args: tuple[str, ...] = (),
    ) -> None:
        self.port = port
        self._executable = executable
        self._extra_args = extra_args
        self._process: subprocess.Popen[bytes] | None = None

    def command(self) -> list[str]:
        path = find_scsynth(self._executable)
        if path is None:
            raise ServerStartError(
                f"Could not find {self._executable or SCSYNTH_EXECUTABLE}; "
                "install SuperCollider or set SCINSTRUMENT_SCSYNTH."
            )
        return [str(path), "-u", str(self.port), *self._extra_args]

    def start(self) -> None:
        if self.is_running():
            return
        command = self.command()
        _LOGGER.info("Starting synthesis server: %s", " ".join(command))
        try:
            self._process = subprocess.Popen(
                command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise ServerStartError(f"Failed to launch {command[0]}: {exc}") from exc

    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def terminate(self, *, timeout: float = 2.0) -> None:
        if self._process is None:
            return
        if self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                _LOGGER.warning("Synthesis server ignored terminate; killing it.")
                self._process.kill()
                self._process.wait()
        self._process = None


class ExternalServer:
    """A server started and owned by someone else; assumed to be reachable."""

    def start(self) -> None:
        _LOGGER.debug("Using externally managed synthesis server.")

    def is_running(self) -> bool:
        return True

    def terminate(self) -> None:
        """Nothing to do; the owner stops it."""
