"""Tests for settings."""

import logging

from swapflow.config import Settings, configure_logging, get_settings


class TestSettings:
    """Tests for Settings defaults and environment overrides."""

    def test_defaults(self):
        settings = Settings()

        assert settings.quote_debounce_seconds == 0.5
        assert settings.quote_timeout_seconds == 10.0
        assert settings.deadline_window_seconds == 1200
        assert settings.confirmation_timeout_seconds == 300.0
        assert settings.confirmation_poll_seconds == 2.0
        assert settings.retry_attempts == 3
        assert settings.default_slippage_bps == 50
        assert settings.unlimited_approval is False

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("QUOTE_DEBOUNCE_SECONDS", "0.25")
        monkeypatch.setenv("UNLIMITED_APPROVAL", "true")
        monkeypatch.setenv("ETH_RPC_URL", "https://eth.example")

        settings = Settings()

        assert settings.quote_debounce_seconds == 0.25
        assert settings.unlimited_approval is True
        assert settings.get_rpc_url(1) == "https://eth.example"
        assert settings.get_rpc_url(56) is None
        assert settings.get_rpc_url(999) is None

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()

    def test_configure_logging(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        configure_logging(debug=True)
        configure_logging(debug=False)

        assert calls[0]["level"] == logging.DEBUG
        assert calls[1]["level"] == logging.INFO
