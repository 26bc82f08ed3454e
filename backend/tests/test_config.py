"""
Settings tests

Run:
    pytest backend/tests/test_config.py -v
"""

from ogframe.config import Settings


class TestFromEnv:

    def test_defaults(self, monkeypatch):
        for name in ("PORT", "MAX_CONCURRENT_SCREENSHOTS", "REQUIRE_HTTPS", "CACHE_DIR"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()
        assert settings.port == 3000
        assert settings.max_concurrent_screenshots == 3
        assert settings.require_https is False
        assert settings.cache_dir == "./cache"

    def test_values_are_clamped(self, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENT_SCREENSHOTS", "50")
        monkeypatch.setenv("SCREENSHOT_TIMEOUT", "10")
        settings = Settings.from_env()

        assert settings.max_concurrent_screenshots == 10
        assert settings.screenshot_timeout_ms == 5000

    def test_invalid_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("PORT", "eighty")
        assert Settings.from_env().port == 3000

    def test_bool_parsing(self, monkeypatch):
        monkeypatch.setenv("REQUIRE_HTTPS", "true")
        assert Settings.from_env().require_https is True

    def test_production_flag(self):
        assert Settings(environment="production").is_production
        assert not Settings().is_production
