from __future__ import annotations

from pathlib import Path

import pytest

from scinstrument.assets import AssetDelivery, synthdef_filename
from scinstrument.config import all_synthdefs
from scinstrument.errors import AssetDeliveryError


def _prebuilt(tmp_path: Path, names: list[str]) -> Path:
    source = tmp_path / "prebuilt"
    source.mkdir()
    for name in names:
        (source / synthdef_filename(name)).write_bytes(b"SCgf" + name.encode())
    return source


def test_synthdef_filename() -> None:
    assert synthdef_filename("reverb") == "reverb.scsyndef"


def test_every_definition_is_delivered_compiled(tmp_path: Path) -> None:
    delivery = AssetDelivery(None, tmp_path / "store")
    assert delivery.prepare_storage()

    delivered, failures = delivery.deliver_all(all_synthdefs())

    assert failures == []
    assert [path.name for path in delivered] == [synthdef_filename(name) for name in all_synthdefs()]
    for path in delivered:
        data = path.read_bytes()
        assert data[:4] == b"SCgf"
        assert path.stem.encode() in data


def test_prebuilt_file_takes_precedence(tmp_path: Path) -> None:
    delivery = AssetDelivery(_prebuilt(tmp_path, ["sine-inst"]), tmp_path / "store")
    delivery.prepare_storage()

    target = delivery.deliver("sine-inst")

    assert target == tmp_path / "store" / "sine-inst.scsyndef"
    assert target.read_bytes() == b"SCgfsine-inst"
    assert delivery.prebuilt("reverb") is None
    assert delivery.deliver("reverb").read_bytes()[:4] == b"SCgf"


def test_unknown_definition_raises(tmp_path: Path) -> None:
    delivery = AssetDelivery(None, tmp_path / "store")
    delivery.prepare_storage()
    with pytest.raises(AssetDeliveryError, match="kazoo"):
        delivery.deliver("kazoo")


def test_deliver_all_continues_past_failures(tmp_path: Path) -> None:
    delivery = AssetDelivery(None, tmp_path / "store")
    delivery.prepare_storage()
    (tmp_path / "store" / "saw-inst.scsyndef").mkdir()

    delivered, failures = delivery.deliver_all(["sine-inst", "saw-inst", "reverb"])

    assert [path.name for path in delivered] == ["sine-inst.scsyndef", "reverb.scsyndef"]
    assert len(failures) == 1
    assert "saw-inst" in str(failures[0])


def test_prepare_storage_reports_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "occupied"
    blocker.write_text("not a directory")
    delivery = AssetDelivery(None, blocker / "store")
    assert delivery.prepare_storage() is False
