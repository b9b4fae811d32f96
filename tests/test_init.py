import scinstrument


def test_public_api_is_reexported() -> None:
    for name in scinstrument.__all__:
        assert hasattr(scinstrument, name), name


def test_version_is_set() -> None:
    assert scinstrument.__version__ == "0.1.0"
