from app.extractor import config
from app.extractor.config_validation import validate_runtime_config
import pytest


def test_defaults_are_valid() -> None:
    validate_runtime_config("tests")


def test_invalid_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "ARTIFACT_TIMEOUT_SECONDS", 0)
    with pytest.raises(ValueError):
        validate_runtime_config("cli")


def test_negative_settle_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "DOWNLOAD_SETTLE_SECONDS", -1.0)
    with pytest.raises(ValueError):
        validate_runtime_config("ui")


def test_empty_section_codes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "SECTION_CODES", ())
    with pytest.raises(ValueError, match="SECTION_CODES"):
        validate_runtime_config("seed")


def test_section_codes_from_environment() -> None:
    assert config._parse_section_codes(" 302 , 307,,") == ("302", "307")
    assert config._parse_section_codes(None) == ("281", "125(A)", "125(B)", "106")


def test_timeout_parsing_falls_back_and_clamps(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FIRX_TEST_TIMEOUT", "abc")
    assert config._parse_timeout_seconds("FIRX_TEST_TIMEOUT", 20) == 20

    monkeypatch.setenv("FIRX_TEST_TIMEOUT", "-5")
    assert config._parse_timeout_seconds("FIRX_TEST_TIMEOUT", 20) == 1
