"""Configuration system using pydantic-settings with environment variable loading."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChainConfig(BaseModel):
    """A chain/venue whose active markets are fetched from the feed."""

    id: int
    name: str


def _default_chains() -> list[ChainConfig]:
    return [
        ChainConfig(id=1, name="Ethereum"),
        ChainConfig(id=9745, name="Plasma"),
    ]


class MarketSettings(BaseSettings):
    """Upstream market feed and asset selection.

    ``related_terms`` drives the broadened match used when no market
    names the asset directly (e.g. markets listed under the issuing
    protocol's name).
    """

    model_config = SettingsConfigDict(env_prefix="MARKET_")

    asset_symbol: str = "sUSDe"
    related_terms: list[str] = Field(default_factory=lambda: ["ethena"])
    api_base: str = "https://api-v2.pendle.finance/core/v1"
    limit: int = 200
    chains: list[ChainConfig] = Field(default_factory=_default_chains)
    request_timeout: float = 15.0  # seconds


class StoreSettings(BaseSettings):
    """Snapshot persistence and read window."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    db_path: str = "data/term_spread.db"
    default_days: int = 90
    max_days: int = 365


class SchedulerSettings(BaseSettings):
    """Daily snapshot trigger."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")

    enabled: bool = True
    run_hour_utc: int = Field(default=12, ge=0, le=23)


class ServerSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = "0.0.0.0"
    port: int = 8080


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    market: MarketSettings = MarketSettings()
    store: StoreSettings = StoreSettings()
    scheduler: SchedulerSettings = SchedulerSettings()
    server: ServerSettings = ServerSettings()
