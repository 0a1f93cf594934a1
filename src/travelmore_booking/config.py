"""Configuration for the TravelMore booking engine."""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .pricing import BelowRange


class Settings(BaseSettings):
    """Runtime settings loaded from environment."""

    api_base_url: str = "https://api.travelmore.travel/api"
    api_token: SecretStr = SecretStr("")
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    discount_debounce_seconds: float = Field(default=0.8, ge=0)
    below_range_policy: BelowRange = BelowRange.FIRST_TIER
    currency_symbol: str = "Rp"
    default_country_code: str = "+62"

    model_config = SettingsConfigDict(env_prefix="TRAVELMORE_", env_file=".env")
