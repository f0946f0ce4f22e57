# test_config.py
import json
from pathlib import Path

import pytest

from config import Settings, get_settings, validate_settings


def _settings():
    get_settings.cache_clear()
    return get_settings()


@pytest.fixture(autouse=True)
def _fresh_settings():
    yield
    get_settings.cache_clear()


def test_defaults_from_config(monkeypatch):
    monkeypatch.delenv("SELLER_STATE", raising=False)
    settings = _settings()
    data = json.loads(Path(__file__).resolve().parents[1].joinpath("config.json").read_text())
    assert settings.seller_name == data["seller_name"]
    assert settings.b2cl_threshold == data["b2cl_threshold"]


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("B2CL_THRESHOLD", "1000")
    monkeypatch.setenv("SELLER_NAME", "Override Traders")
    settings = _settings()
    assert settings.b2cl_threshold == 1000
    assert settings.seller_name == "Override Traders"


def test_valid_settings_pass():
    validate_settings(Settings(seller_state="33-Tamil Nadu"))


def test_invalid_settings_are_listed():
    with pytest.raises(RuntimeError) as excinfo:
        validate_settings(
            Settings(seller_state="Tamil Nadu", b2cl_threshold=0, invoice_number_retries=0)
        )
    message = str(excinfo.value)
    assert "SELLER_STATE" in message
    assert "B2CL_THRESHOLD" in message
    assert "INVOICE_NUMBER_RETRIES" in message
