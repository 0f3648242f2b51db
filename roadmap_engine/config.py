"""
Roadmap Engine configuration.

Usage:
    config = get_config(os.getenv("APP_ENV", "development"))
    app = create_app(config)
"""

import os
import secrets

from dotenv import load_dotenv

load_dotenv()

# Development only; production MUST set a stable secret
_DEV_SECRET = secrets.token_hex(32)


class Config:
    """Base configuration shared across all environments."""

    ENV = "base"
    DEBUG = False
    TESTING = False

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    # Shared secret with the identity provider
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY") or SECRET_KEY
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE") or None

    # Empty -> in-memory store
    DATABASE_URL = os.getenv("DATABASE_URL", "")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    @property
    def cors_origins(self):
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


class DevelopmentConfig(Config):
    ENV = "development"
    DEBUG = True


class TestingConfig(Config):
    ENV = "testing"
    TESTING = True
    JWT_SECRET_KEY = "test-secret-key"
    JWT_AUDIENCE = None
    DATABASE_URL = os.getenv("TEST_DATABASE_URL", "")


class ProductionConfig(Config):
    ENV = "production"
    DEBUG = False

    def __init__(self):
        # Read at construction; no random fallback
        secret = os.getenv("JWT_SECRET_KEY") or os.getenv("SECRET_KEY")
        if not secret:
            raise RuntimeError("JWT_SECRET_KEY or SECRET_KEY must be set in production")
        self.SECRET_KEY = os.getenv("SECRET_KEY") or secret
        self.JWT_SECRET_KEY = secret


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(name: str = None) -> Config:
    name = name or os.getenv("APP_ENV", "development")
    return config.get(name, config["default"])()
