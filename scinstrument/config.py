from __future__ import annotations

import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Literal, Mapping, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidSettingsError
from .params import DEFAULT_EFFECT_VALUE
from .transport import DEFAULT_HOST, DEFAULT_PORT

_LOGGER = logging.getLogger("scinstrument.config")

ENV_PREFIX = "SCINSTRUMENT"

SourceName = Literal["sine", "saw", "triangle", "pulse", "noise"]
DEFAULT_SOURCE: SourceName = "sine"

# Source names as exposed to users, mapped to the synthdefs that implement them.
SOURCES: Mapping[SourceName, str] = MappingProxyType(
    {
        "sine": "sine-inst",
        "saw": "saw-inst",
        "triangle": "triangle-inst",
        "pulse": "pulse-inst",
        "noise": "noise-inst",
    }
)
EFFECTS: tuple[str, ...] = ("reverb",)

DEFAULT_READY_TIMEOUT = 5.0
DEFAULT_READY_INTERVAL = 0.1


def source_names() -> tuple[SourceName, ...]:
    return get_args(SourceName)


def all_synthdefs() -> tuple[str, ...]:
    return (*SOURCES.values(), *EFFECTS)


def _default_synthdef_dir() -> Path:
    return Path.home() / ".cache" / "scinstrument" / "synthdefs"


class EngineSettings(BaseModel):
    """Where the synthesis server lives and where its definitions are stored.

    ``asset_dir`` optionally holds prebuilt ``.scsyndef`` files that take
    precedence over the definitions compiled in-process.
    """

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65_535)
    scsynth_path: str | None = None
    synthdef_dir: Path = Field(default_factory=_default_synthdef_dir)
    asset_dir: Path | None = None
    manage_server: bool = True
    server_ready_timeout: float = Field(default=DEFAULT_READY_TIMEOUT, ge=0)
    server_ready_interval: float = Field(default=DEFAULT_READY_INTERVAL, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> EngineSettings:
        source = os.environ if env is None else env
        fields = {
            "host": "HOST",
            "port": "PORT",
            "scsynth_path": "SCSYNTH",
            "synthdef_dir": "SYNTHDEF_DIR",
            "asset_dir": "ASSET_DIR",
            "manage_server": "MANAGE_SERVER",
            "server_ready_timeout": "READY_TIMEOUT",
        }
        data = {
            field: source[f"{ENV_PREFIX}_{suffix}"]
            for field, suffix in fields.items()
            if source.get(f"{ENV_PREFIX}_{suffix}")
        }
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            _LOGGER.warning("Invalid %s_* settings: %s", ENV_PREFIX, exc)
            raise InvalidSettingsError(str(exc)) from exc


class InstrumentConfig(BaseModel):
    """Initial property values for an instrument.

    Values go through the instrument's own setters, so out-of-range numbers are
    sanitized and unknown sources are rejected there rather than here.
    """

    source: str = DEFAULT_SOURCE
    attack: float = DEFAULT_EFFECT_VALUE
    decay: float = DEFAULT_EFFECT_VALUE
    sustain: float = DEFAULT_EFFECT_VALUE
    release: float = DEFAULT_EFFECT_VALUE
    reverb: float = DEFAULT_EFFECT_VALUE

    model_config = ConfigDict(frozen=True, extra="forbid")
