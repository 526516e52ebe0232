import pytest
from pydantic import ValidationError

from geminigate.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("GEMINI_API_KEY", "SUPABASE_URL", "SUPABASE_KEY", "SUPABASE_SERVICE_ROLE_KEY"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.gemini_api_key is None
        assert settings.gemini_default_model == "gemini-2.0-flash-lite"
        assert settings.min_request_interval_seconds == 12.0
        assert settings.provider_max_retries == 3
        assert settings.cache_ttl_minutes == 60
        assert settings.tier_daily_limits == {"free": 10, "monthly": 100, "lifetime": 500}
        assert settings.persistence_backend == "supabase"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        monkeypatch.setenv("SUPABASE_URL", "https://p.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service")
        monkeypatch.setenv("MIN_REQUEST_INTERVAL_SECONDS", "4.5")
        monkeypatch.setenv("TIER_DAILY_LIMITS", '{"free": 3, "monthly": 30}')

        settings = Settings(_env_file=None)

        assert settings.gemini_api_key == "env-key"
        assert settings.supabase_url == "https://p.supabase.co"
        assert settings.supabase_key == "service"
        assert settings.min_request_interval_seconds == 4.5
        assert settings.tier_daily_limits == {"free": 3, "monthly": 30}

    def test_supabase_key_fallback_alias(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
        monkeypatch.setenv("SUPABASE_KEY", "anon")
        assert Settings(_env_file=None).supabase_key == "anon"

    def test_redact_fields_comma_separated(self):
        settings = Settings(_env_file=None, REDACT_LOG_FIELDS="apikey, token ,")
        assert settings.redact_log_fields == ["apikey", "token"]

    def test_max_retries_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, PROVIDER_MAX_RETRIES=0)

    def test_negative_delays_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, FAILURE_BASE_DELAY=-1)

    def test_negative_tier_limit_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, TIER_DAILY_LIMITS={"free": -1})

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, PERSISTENCE_BACKEND="redis")
