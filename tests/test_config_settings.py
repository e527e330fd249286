from decimal import Decimal

import pytest
from pydantic import ValidationError

from guardx.config import Settings


def test_bridge_api_key_alias(monkeypatch):
    """Bridge API key should load from the short alias when present."""

    monkeypatch.delenv("DEBRIDGE_API_KEY", raising=False)
    monkeypatch.setenv("BRIDGE_API_KEY", "alias-key")

    settings = Settings()

    assert settings.debridge_api_key == "alias-key"


def test_bridge_api_key_direct_env(monkeypatch):
    """Environment-provided deBridge key remains the primary source."""

    monkeypatch.setenv("DEBRIDGE_API_KEY", "primary-key")
    monkeypatch.delenv("BRIDGE_API_KEY", raising=False)

    settings = Settings()

    assert settings.debridge_api_key == "primary-key"


def test_rpc_urls_from_json(monkeypatch):
    monkeypatch.setenv("RPC_URLS", '{"1": "https://eth.test", "10": "https://op.test"}')

    settings = Settings()

    assert settings.rpc_urls == {1: "https://eth.test", 10: "https://op.test"}
    assert settings.supported_rpc_chains == [1, 10]


def test_poll_backoff_choices(monkeypatch):
    monkeypatch.setenv("BRIDGE_POLL_BACKOFF", "exponential")
    assert Settings().bridge_poll_backoff == "exponential"

    monkeypatch.setenv("BRIDGE_POLL_BACKOFF", "linear")
    with pytest.raises(ValidationError):
        Settings()


def test_min_deposit_overrides(monkeypatch):
    monkeypatch.setenv("MIN_DEPOSIT_OVERRIDES", '{"USDC": "5", "WETH": "0.001"}')

    settings = Settings()

    assert settings.min_deposit_overrides == {"USDC": Decimal("5"), "WETH": Decimal("0.001")}


def test_delegate(monkeypatch):
    monkeypatch.delenv("DELEGATE_ADDRESS", raising=False)
    assert Settings().has_delegate is False

    monkeypatch.setenv("DELEGATE_ADDRESS", "0x1111111111111111111111111111111111111111")
    assert Settings().has_delegate is True


def test_timeouts_must_be_positive(monkeypatch):
    monkeypatch.setenv("BRIDGE_DEADLINE_SECONDS", "0")

    with pytest.raises(ValidationError):
        Settings()
