from __future__ import annotations

import argparse
import logging
import os
import time
from collections.abc import Sequence

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .assets import AssetDelivery, synthdef_filename
from .config import EngineSettings, InstrumentConfig, all_synthdefs, source_names
from .context import EngineContext
from .diagnostics import Diagnostic
from .errors import InstrumentError, InvalidSettingsError
from .interpreter import DEFAULT_DURATION_MS, PlayRequest, interpret
from .logging_utils import configure_logging, log_exception, setup_file_logger
from .messages import ControlMessage
from .params import DEFAULT_EFFECT_VALUE
from .server import ExternalServer, find_scsynth
from .session import InstrumentSession
from .transport import MessageLog

LOGGER_NAME = "scinstrument"
CLI_LOG_FILE = "scinstrument-cli.log"

_LOGGER = logging.getLogger("scinstrument.cli")
_CONSOLE = Console()
_STYLES = {"debug": "dim", "info": "cyan", "warning": "yellow", "error": "red"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scinstrument")
    sub = parser.add_subparsers(dest="command", required=True)

    play = sub.add_parser(
        "play",
        help="Play a note: NOTE OCTAVE [DURATION_MS] [VOLUME] or HZ [DURATION_MS] [VOLUME].",
    )
    play.add_argument("note", nargs="+", help="Play arguments, e.g. 'C# 5 250 80' or '440 1000'.")
    play.add_argument("--dry-run", action="store_true", help="Print the messages instead of sending.")
    play.add_argument("--host", type=str, default=None)
    play.add_argument("--port", type=int, default=None)
    play.add_argument("--external", action="store_true", help="Do not launch scsynth.")
    play.add_argument("--source", type=str, default="sine", help=f"One of {', '.join(source_names())}.")
    for name in ("attack", "decay", "sustain", "release", "reverb"):
        play.add_argument(f"--{name}", type=float, default=DEFAULT_EFFECT_VALUE)

    sub.add_parser("doctor", help="Check scsynth and synthdef availability.")
    return parser


def _settings(args: argparse.Namespace) -> EngineSettings:
    base = EngineSettings.from_env()
    overrides: dict[str, object] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.external:
        overrides["manage_server"] = False
    try:
        return EngineSettings.model_validate({**base.model_dump(), **overrides})
    except ValidationError as exc:
        raise InvalidSettingsError(str(exc)) from exc


def _print_diagnostic(diagnostic: Diagnostic) -> None:
    style = _STYLES[diagnostic.severity]
    _CONSOLE.print(f"[{style}]{escape(str(diagnostic))}[/{style}]")


def _print_messages(messages: Sequence[ControlMessage]) -> None:
    table = Table(title="Control messages")
    table.add_column("#", justify="right")
    table.add_column("Address")
    table.add_column("Arguments")
    for index, message in enumerate(messages):
        table.add_row(str(index), message.address, escape(" ".join(repr(arg) for arg in message.args)))
    _CONSOLE.print(table)


def _instrument_config(args: argparse.Namespace) -> InstrumentConfig:
    return InstrumentConfig(
        source=args.source,
        attack=args.attack,
        decay=args.decay,
        sustain=args.sustain,
        release=args.release,
        reverb=args.reverb,
    )


def _play(args: argparse.Namespace) -> int:
    settings = _settings(args)
    log: MessageLog | None = None
    if args.dry_run:
        log = MessageLog()
        context = EngineContext(
            server=ExternalServer(),
            transport=log.transport(),
            assets=AssetDelivery(settings.asset_dir, settings.synthdef_dir),
        )
    else:
        context = EngineContext.from_settings(settings)
    context.diagnostics.subscribe(_print_diagnostic)

    try:
        session = InstrumentSession(context, config=_instrument_config(args), notify=_CONSOLE.print)
        session.play(args.note)

        if log is not None:
            _print_messages(log.messages)
            return 0
        if context.start_count:
            # scsynth was launched by us; keep it alive until the note has sounded.
            request = interpret(args.note)
            duration_ms = request.duration_ms if isinstance(request, PlayRequest) else DEFAULT_DURATION_MS
            with _CONSOLE.status("Playing"):
                time.sleep(duration_ms / 1000.0 + 0.5)
            session.on_stop()
        return 0
    finally:
        context.server.terminate()


def _doctor() -> int:
    settings = EngineSettings.from_env()
    scsynth = find_scsynth(settings.scsynth_path)
    table = Table(title="scinstrument doctor")
    table.add_column("Check")
    table.add_column("Value")
    table.add_row("Server address", f"{settings.host}:{settings.port}")
    table.add_row("Manage server", str(settings.manage_server))
    table.add_row("scsynth", str(scsynth) if scsynth else "[red]not found[/red]")
    table.add_row("Prebuilt asset directory", str(settings.asset_dir) if settings.asset_dir else "none")
    table.add_row("Synthdef directory", str(settings.synthdef_dir))
    assets = AssetDelivery(settings.asset_dir, settings.synthdef_dir)
    for name in all_synthdefs():
        prebuilt = assets.prebuilt(name)
        table.add_row(f"  {synthdef_filename(name)}", str(prebuilt) if prebuilt else "compiled in-process")
    _CONSOLE.print(table)
    if scsynth is None and settings.manage_server:
        _CONSOLE.print("- Install SuperCollider or set SCINSTRUMENT_SCSYNTH to the scsynth binary.")
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    setup_file_logger(LOGGER_NAME, CLI_LOG_FILE)
    try:
        parser = build_parser()
        args = parser.parse_args(argv)

        if args.command == "play":
            return _play(args)
        if args.command == "doctor":
            return _doctor()

        parser.print_help()
        return 1
    except InstrumentError as exc:
        debug = bool(os.environ.get("SCINSTRUMENT_DEBUG"))
        _LOGGER.warning("scinstrument CLI failed: %s", exc, exc_info=debug)
        log_exception("scinstrument CLI", exc)
        _CONSOLE.print(f"[red]scinstrument: {escape(str(exc))}[/red]")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
