import logging

import pytest

from scinstrument.diagnostics import Diagnostic, DiagnosticSink


def test_emit_records_and_returns() -> None:
    sink = DiagnosticSink()
    record = sink.emit("warning", "play.number_format", "bad duration", index=2)

    assert record == Diagnostic(
        severity="warning", code="play.number_format", message="bad duration", context={"index": 2}
    )
    assert sink.records == (record,)
    assert str(record) == "[warning] play.number_format: bad duration"


def test_sink_is_bounded() -> None:
    sink = DiagnosticSink(maxlen=3)
    for index in range(5):
        sink.emit("info", f"code.{index}", "msg")
    assert sink.codes() == ["code.2", "code.3", "code.4"]
    assert len(sink) == 3
    sink.clear()
    assert len(sink) == 0


def test_subscribers_receive_records_until_unsubscribed() -> None:
    sink = DiagnosticSink()
    seen: list[str] = []
    unsubscribe = sink.subscribe(lambda record: seen.append(record.code))

    sink.emit("error", "first", "one")
    unsubscribe()
    unsubscribe()
    sink.emit("error", "second", "two")

    assert seen == ["first"]


def test_records_are_logged_at_matching_level(caplog: pytest.LogCaptureFixture) -> None:
    sink = DiagnosticSink(logger=logging.getLogger("scinstrument.test.diagnostics"))
    with caplog.at_level(logging.DEBUG, logger="scinstrument.test.diagnostics"):
        sink.emit("error", "transport.send_failed", "down")
        sink.emit("debug", "trace", "detail")
    assert [record.levelno for record in caplog.records] == [logging.ERROR, logging.DEBUG]
    assert "transport.send_failed" in caplog.records[0].getMessage()
