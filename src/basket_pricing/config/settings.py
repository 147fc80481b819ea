"""
Centralized settings, data paths and logging configuration for the pricing engine.
"""
import logging
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_package_root() -> Path:
    """Get the basket_pricing package directory (where data/ lives)."""
    return Path(__file__).resolve().parent.parent


def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name, "").strip()
    return Path(value) if value else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


@dataclass
class Settings:
    """Engine settings with sensible defaults."""

    # Data files
    rules_path: Path
    tax_rules_path: Path
    tier_prices_path: Optional[Path] = None

    # Behaviour
    require_lines: bool = True
    log_level: str = "INFO"

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> 'Settings':
        """Load settings from the environment, falling back to the bundled sample data."""
        data = data_dir or get_package_root() / 'data'

        return cls(
            rules_path=_env_path('PRICING_RULES_PATH', data / 'rules.json'),
            tax_rules_path=_env_path('PRICING_TAX_RULES_PATH', data / 'tax_rules.csv'),
            tier_prices_path=_env_path('PRICING_TIER_PRICES_PATH', data / 'tier_prices.csv'),
            require_lines=_env_bool('PRICING_REQUIRE_LINES', True),
            log_level=os.getenv('PRICING_LOG_LEVEL', 'INFO').upper(),
        )


def configure_logging(level: Optional[str] = None):
    """Configure root logging once; module-level loggers inherit it."""
    logging.basicConfig(
        level=(level or get_settings().log_level),
        format=LOG_FORMAT,
    )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings():
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
