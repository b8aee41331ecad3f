from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ==================== Adapter configuration ====================

class AdapterConfig(BaseModel):
    """Immutable per-adapter configuration, fixed at construction time."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    test_mode: bool = True
    timeout: float = 60.0


class StripeConfig(AdapterConfig):
    api_key: str
    fee_refund_api_key: Optional[str] = None
    api_version: Optional[str] = None


class LitleConfig(AdapterConfig):
    login: str
    password: str
    merchant_id: str
    url_override: Optional[Literal["prelive", "postlive"]] = None


class HpsConfig(AdapterConfig):
    secret_api_key: str
    developer_id: Optional[str] = None
    version_number: Optional[str] = None
    site_trace: Optional[str] = None


class DLocalConfig(AdapterConfig):
    login: str
    trans_key: str
    secret_key: str
    application_id: Optional[str] = None


class CommerceHubConfig(AdapterConfig):
    api_key: str
    api_secret: str
    merchant_id: str
    terminal_id: str


# ==================== Settings ====================

class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore"
    )

    PAYGATE_PROVIDER: Optional[str] = None
    PAYGATE_TEST_MODE: bool = True
    HTTP_TIMEOUT: float = 60.0
    LOG_LEVEL: str = "INFO"

    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_FEE_REFUND_KEY: Optional[str] = None
    STRIPE_API_VERSION: Optional[str] = None

    LITLE_LOGIN: Optional[str] = None
    LITLE_PASSWORD: Optional[str] = None
    LITLE_MERCHANT_ID: Optional[str] = None
    LITLE_URL_OVERRIDE: Optional[Literal["prelive", "postlive"]] = None

    HPS_SECRET_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("HPS_SECRET_API_KEY", "HPS_SECRET_KEY"),
    )
    HPS_DEVELOPER_ID: Optional[str] = None
    HPS_VERSION_NUMBER: Optional[str] = None
    HPS_SITE_TRACE: Optional[str] = None

    DLOCAL_LOGIN: Optional[str] = None
    DLOCAL_TRANS_KEY: Optional[str] = None
    DLOCAL_SECRET_KEY: Optional[str] = None

    COMMERCE_HUB_API_KEY: Optional[str] = None
    COMMERCE_HUB_API_SECRET: Optional[str] = None
    COMMERCE_HUB_MERCHANT_ID: Optional[str] = None
    COMMERCE_HUB_TERMINAL_ID: Optional[str] = None

    def _common(self) -> dict:
        return {"test_mode": self.PAYGATE_TEST_MODE, "timeout": self.HTTP_TIMEOUT}

    def stripe_config(self) -> Optional[StripeConfig]:
        if not self.STRIPE_SECRET_KEY:
            return None
        return StripeConfig(
            api_key=self.STRIPE_SECRET_KEY,
            fee_refund_api_key=self.STRIPE_FEE_REFUND_KEY,
            api_version=self.STRIPE_API_VERSION,
            **self._common(),
        )

    def litle_config(self) -> Optional[LitleConfig]:
        if not (self.LITLE_LOGIN and self.LITLE_PASSWORD and self.LITLE_MERCHANT_ID):
            return None
        return LitleConfig(
            login=self.LITLE_LOGIN,
            password=self.LITLE_PASSWORD,
            merchant_id=self.LITLE_MERCHANT_ID,
            url_override=self.LITLE_URL_OVERRIDE,
            **self._common(),
        )

    def hps_config(self) -> Optional[HpsConfig]:
        if not self.HPS_SECRET_API_KEY:
            return None
        return HpsConfig(
            secret_api_key=self.HPS_SECRET_API_KEY,
            developer_id=self.HPS_DEVELOPER_ID,
            version_number=self.HPS_VERSION_NUMBER,
            site_trace=self.HPS_SITE_TRACE,
            **self._common(),
        )

    def dlocal_config(self) -> Optional[DLocalConfig]:
        if not (self.DLOCAL_LOGIN and self.DLOCAL_TRANS_KEY and self.DLOCAL_SECRET_KEY):
            return None
        return DLocalConfig(
            login=self.DLOCAL_LOGIN,
            trans_key=self.DLOCAL_TRANS_KEY,
            secret_key=self.DLOCAL_SECRET_KEY,
            **self._common(),
        )

    def commerce_hub_config(self) -> Optional[CommerceHubConfig]:
        required = (
            self.COMMERCE_HUB_API_KEY,
            self.COMMERCE_HUB_API_SECRET,
            self.COMMERCE_HUB_MERCHANT_ID,
            self.COMMERCE_HUB_TERMINAL_ID,
        )
        if not all(required):
            return None
        return CommerceHubConfig(
            api_key=self.COMMERCE_HUB_API_KEY,
            api_secret=self.COMMERCE_HUB_API_SECRET,
            merchant_id=self.COMMERCE_HUB_MERCHANT_ID,
            terminal_id=self.COMMERCE_HUB_TERMINAL_ID,
            **self._common(),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance."""
    return Settings()
