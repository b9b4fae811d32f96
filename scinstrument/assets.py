from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from .definitions import compile_synthdef
from .errors import AssetDeliveryError

_LOGGER = logging.getLogger("scinstrument.assets")

SYNTHDEF_EXTENSION = ".scsyndef"


def synthdef_filename(name: str) -> str:
    return f"{name}{SYNTHDEF_EXTENSION}"


class AssetDelivery:
    """Places synth definitions in the server's storage directory.

    A prebuilt ``<name>.scsyndef`` in ``source_dir`` is copied as is; otherwise
    the definition is compiled in-process and written.
    """

    def __init__(self, source_dir: Path | None, storage_dir: Path) -> None:
        self.source_dir = source_dir
        self.storage_dir = storage_dir

    def prebuilt(self, name: str) -> Path | None:
        if self.source_dir is None:
            return None
        candidate = self.source_dir / synthdef_filename(name)
        return candidate if candidate.is_file() else None

    def prepare_storage(self) -> bool:
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            _LOGGER.error(
                "Could not create directory %s; the synthesis server will not function correctly: %s",
                self.storage_dir,
                exc,
            )
            return False
        return self.storage_dir.is_dir()

    def deliver(self, name: str) -> Path:
        filename = synthdef_filename(name)
        target = self.storage_dir / filename
        source = self.prebuilt(name)
        try:
            if source is not None:
                shutil.copyfile(source, target)
            else:
                target.write_bytes(compile_synthdef(name))
        except OSError as exc:
            raise AssetDeliveryError(f"Failed to deliver synthdef {filename}: {exc}") from exc
        _LOGGER.info("Synthdef delivered to %s", target)
        return target

    def deliver_all(self, names: Iterable[str]) -> tuple[list[Path], list[AssetDeliveryError]]:
        """Deliver every definition; failures are logged and collected, never raised."""

        delivered: list[Path] = []
        failures: list[AssetDeliveryError] = []
        for name in names:
            try:
                delivered.append(self.deliver(name))
            except AssetDeliveryError as exc:
                _LOGGER.warning("%s", exc, exc_info=True)
                failures.append(exc)
        return delivered, failures
