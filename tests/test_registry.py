"""
Tests for settings and adapter selection.
"""

import logging

import pytest

from paygate import configure_logging
from paygate.adapters import HpsAdapter, LitleAdapter, SandboxAdapter, StripeAdapter
from paygate.config import Settings, StripeConfig, get_settings
from paygate.exceptions import AuthenticationError, ConfigurationError
from paygate.registry import get_provider

PROVIDER_ENV = (
    "PAYGATE_PROVIDER",
    "PAYGATE_TEST_MODE",
    "LOG_LEVEL",
    "STRIPE_SECRET_KEY",
    "LITLE_LOGIN",
    "LITLE_PASSWORD",
    "LITLE_MERCHANT_ID",
    "HPS_SECRET_API_KEY",
    "HPS_SECRET_KEY",
    "DLOCAL_LOGIN",
    "DLOCAL_TRANS_KEY",
    "DLOCAL_SECRET_KEY",
    "COMMERCE_HUB_API_KEY",
    "COMMERCE_HUB_API_SECRET",
    "COMMERCE_HUB_MERCHANT_ID",
    "COMMERCE_HUB_TERMINAL_ID",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Test environment-driven configuration."""

    def test_defaults(self, clean_env):
        settings = Settings()
        assert settings.PAYGATE_TEST_MODE is True
        assert settings.HTTP_TIMEOUT == 60.0
        assert settings.stripe_config() is None
        assert settings.litle_config() is None

    def test_stripe_config(self, clean_env):
        clean_env.setenv("STRIPE_SECRET_KEY", "sk_test_123")
        clean_env.setenv("PAYGATE_TEST_MODE", "false")
        config = Settings().stripe_config()
        assert config == StripeConfig(api_key="sk_test_123", test_mode=False)

    def test_hps_key_alias(self, clean_env):
        clean_env.setenv("HPS_SECRET_KEY", "skapi_cert_abc")
        assert Settings().hps_config().secret_api_key == "skapi_cert_abc"

    def test_partial_credentials_are_not_configured(self, clean_env):
        clean_env.setenv("LITLE_LOGIN", "login")
        assert Settings().litle_config() is None

    def test_get_settings_is_cached(self, clean_env):
        assert get_settings() is get_settings()

    def test_adapter_configs_are_frozen(self):
        config = StripeConfig(api_key="sk_test_123")
        with pytest.raises(Exception):
            config.api_key = "sk_test_456"


class TestGetProvider:
    """Test adapter selection."""

    def test_falls_back_to_sandbox(self, clean_env):
        assert isinstance(get_provider(), SandboxAdapter)

    def test_first_configured_processor_wins(self, clean_env):
        clean_env.setenv("LITLE_LOGIN", "login")
        clean_env.setenv("LITLE_PASSWORD", "password")
        clean_env.setenv("LITLE_MERCHANT_ID", "101")
        clean_env.setenv("HPS_SECRET_API_KEY", "skapi_cert_abc")
        assert isinstance(get_provider(), LitleAdapter)

    def test_named_provider(self, clean_env):
        clean_env.setenv("STRIPE_SECRET_KEY", "sk_test_123")
        clean_env.setenv("HPS_SECRET_API_KEY", "skapi_cert_abc")
        assert isinstance(get_provider("hps"), HpsAdapter)
        assert isinstance(get_provider("STRIPE"), StripeAdapter)

    def test_provider_from_settings(self, clean_env):
        clean_env.setenv("PAYGATE_PROVIDER", "sandbox")
        clean_env.setenv("STRIPE_SECRET_KEY", "sk_test_123")
        assert isinstance(get_provider(), SandboxAdapter)

    def test_unknown_provider(self, clean_env):
        with pytest.raises(ConfigurationError):
            get_provider("paypal")

    def test_unconfigured_provider(self, clean_env):
        with pytest.raises(ConfigurationError):
            get_provider("dlocal")

    def test_provider_is_cached(self, clean_env):
        assert get_provider() is get_provider()

    def test_stripe_requires_key(self):
        with pytest.raises(AuthenticationError):
            StripeAdapter(StripeConfig(api_key=""))


class TestConfigureLogging:

    def test_level_from_settings(self, clean_env):
        clean_env.setenv("LOG_LEVEL", "warning")
        configure_logging()
        assert logging.getLogger("paygate").level == logging.WARNING

    def test_explicit_level(self):
        configure_logging("debug")
        assert logging.getLogger("paygate").level == logging.DEBUG
