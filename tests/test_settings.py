from pathlib import Path

from basket_pricing.config.settings import Settings, get_settings, reset_settings, get_package_root


def test_defaults_point_at_bundled_data(monkeypatch):
    for name in ("PRICING_RULES_PATH", "PRICING_TAX_RULES_PATH", "PRICING_TIER_PRICES_PATH",
                 "PRICING_REQUIRE_LINES", "PRICING_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings.load()
    assert settings.rules_path == get_package_root() / "data" / "rules.json"
    assert settings.rules_path.exists()
    assert settings.tax_rules_path.exists()
    assert settings.require_lines is True
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("PRICING_RULES_PATH", str(tmp_path / "r.json"))
    monkeypatch.setenv("PRICING_REQUIRE_LINES", "false")
    monkeypatch.setenv("PRICING_LOG_LEVEL", "debug")
    settings = Settings.load()
    assert settings.rules_path == Path(tmp_path / "r.json")
    assert settings.require_lines is False
    assert settings.log_level == "DEBUG"


def test_get_settings_is_cached(monkeypatch):
    reset_settings()
    first = get_settings()
    assert get_settings() is first
    reset_settings()
    assert get_settings() is not first
    reset_settings()
