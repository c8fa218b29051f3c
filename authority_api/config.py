"""
Environment-aware configuration.
Secrets, token lifetimes, the grace window and the backing stores are all
read from the environment (or .env) once, when the app is created.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present


def _seconds(name: str, default: str) -> timedelta:
    return timedelta(seconds=int(os.getenv(name, default)))


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///token-authority.db")
    # Upper bound for any single database or cache call
    STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))
    # "sql" keeps revoked access tokens in the database, "redis" in REDIS_URL
    REVOCATION_BACKEND = os.getenv("REVOCATION_BACKEND", "sql")
    REDIS_URL = os.getenv("REDIS_URL")

    # Access and refresh tokens must be signed with different secrets
    JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", "dev-access-secret-change-me-0123456789")
    JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "dev-refresh-secret-change-me-0123456789")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "token-authority")
    ACCESS_TOKEN_EXPIRES = _seconds("ACCESS_TOKEN_EXPIRES_SECONDS", "900")
    REFRESH_TOKEN_EXPIRES = _seconds("REFRESH_TOKEN_EXPIRES_SECONDS", "604800")
    FAMILY_MAX_AGE = _seconds("FAMILY_MAX_AGE_SECONDS", "2592000")
    REFRESH_GRACE_WINDOW = _seconds("REFRESH_GRACE_SECONDS", "60")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # In dev, propagate exceptions so our error handler has full context
    PROPAGATE_EXCEPTIONS = True


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    REVOCATION_BACKEND = "sql"
    JWT_ACCESS_SECRET = "testing-access-secret-0123456789abcdef"
    JWT_REFRESH_SECRET = "testing-refresh-secret-0123456789abcdef"


class ProductionConfig(BaseConfig):
    DEBUG = False


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
