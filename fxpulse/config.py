"""Application configuration.

- ``Settings``: runtime settings from environment variables / ``.env``
- ``load_weights_config``: scoring weight tables from ``weights.yaml``
"""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fxpulse_core import timeframes
from fxpulse_core.errors import ConfigError
from fxpulse_core.models import DEFAULT_INDICATOR_WEIGHTING, DEFAULT_TRADING_STYLE, WeightConfig
from fxpulse_core.strength import MAJOR_PAIRS

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FXPULSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Feed
    feed_url: str = "wss://api.fxlabs.ai/market-v2"
    reconnect_base_delay: float = 1.0  # seconds
    max_reconnect_attempts: int = 3
    router_debug: bool = False

    # Cache
    max_bars: int = 100
    max_ticks: int = 50

    # Recompute
    recompute_debounce: float = 0.5  # seconds

    # Dashboard settings (read-only to the core)
    trading_style: str = DEFAULT_TRADING_STYLE
    indicator_weighting: str = DEFAULT_INDICATOR_WEIGHTING
    active_timeframe: str = "1H"
    heatmap_symbol: str = "EURUSDm"
    heatmap_timeframes: list[str] = ["5M", "15M", "30M", "1H", "4H", "1D"]
    tracker_symbols: list[str] = ["EURUSDm", "GBPUSDm", "USDJPYm"]
    strength_pairs: list[str] = [f"{p}m" for p in MAJOR_PAIRS]
    strength_mode: str = "closed"  # "closed" | "live"
    strength_multiplier: float = 1000.0
    correlation_rsi_period: int = 14
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    symbol_suffix: str = "m"  # broker suffix on every feed symbol

    # Scoring weights
    weights_path: str = "weights.yaml"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @field_validator("active_timeframe")
    @classmethod
    def _check_timeframe(cls, value: str) -> str:
        if not timeframes.is_known(value):
            raise ValueError(f"unknown timeframe '{value}'")
        return timeframes.ui_label(value)

    @model_validator(mode="after")
    def _check_rsi_levels(self):
        if not 0 <= self.rsi_oversold < self.rsi_overbought <= 100:
            raise ValueError("RSI levels must satisfy 0 <= rsi_oversold < rsi_overbought <= 100")
        return self

    @field_validator("strength_mode")
    @classmethod
    def _check_mode(cls, value: str) -> str:
        if value not in ("closed", "live"):
            raise ValueError(f"strength_mode must be 'closed' or 'live', got '{value}'")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_weights_config(path: Path | str | None = None) -> WeightConfig:
    """Load scoring weight tables from a YAML file.

    Falls back to the built-in tables if the file doesn't exist. Tables
    whose weights don't sum to 1.0 are rejected.

    Raises:
        ConfigError: If the file is not valid YAML or fails validation.
    """
    config_path = Path(path) if path is not None else Path(get_settings().weights_path)

    if not config_path.exists():
        logger.info("No weights file found at %s, using built-in weight tables", config_path)
        return WeightConfig()

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Expected a mapping in {config_path}, got {type(raw).__name__}")

    try:
        config = WeightConfig(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid weight tables in {config_path}: {e}") from e

    logger.info(
        "Loaded weight tables: styles=%s, schemes=%s",
        config.styles(),
        config.schemes(),
    )
    return config
