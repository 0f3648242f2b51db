"""
Configuration tests.

Tests cover:
  - Production refuses to start without a signing secret
  - Development/testing construct without any secret in the environment
"""
import pytest

from roadmap_engine.config import DevelopmentConfig, ProductionConfig, TestingConfig, get_config


@pytest.fixture()
def no_secrets(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    monkeypatch.delenv("JWT_SECRET_KEY", raising=False)


# ═════════════════════════════════════════════════════════════════════════
# PRODUCTION
# ═════════════════════════════════════════════════════════════════════════

class TestProductionConfig:
    def test_missing_secret_fails_fast(self, no_secrets):
        with pytest.raises(RuntimeError, match="JWT_SECRET_KEY or SECRET_KEY"):
            get_config("production")

    def test_secret_key_is_enough(self, no_secrets, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", "prod-secret")
        cfg = ProductionConfig()
        assert cfg.SECRET_KEY == "prod-secret"
        assert cfg.JWT_SECRET_KEY == "prod-secret"

    def test_jwt_secret_preferred_for_tokens(self, no_secrets, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", "session-secret")
        monkeypatch.setenv("JWT_SECRET_KEY", "idp-shared-secret")
        cfg = get_config("production")
        assert cfg.JWT_SECRET_KEY == "idp-shared-secret"
        assert cfg.SECRET_KEY == "session-secret"
        assert not cfg.DEBUG


# ═════════════════════════════════════════════════════════════════════════
# OTHER ENVIRONMENTS
# ═════════════════════════════════════════════════════════════════════════

class TestOtherEnvironments:
    def test_development_uses_generated_secret(self, no_secrets):
        cfg = DevelopmentConfig()
        assert cfg.DEBUG
        assert cfg.JWT_SECRET_KEY

    def test_testing_has_fixed_secret(self, no_secrets):
        assert TestingConfig().JWT_SECRET_KEY == "test-secret-key"

    def test_unknown_name_falls_back_to_development(self):
        assert get_config("staging").ENV == "development"
