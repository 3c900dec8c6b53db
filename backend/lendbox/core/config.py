"""Application configuration with security-first defaults.

Environment variables override all defaults.
SECRET_KEY must be set in .env for production; startup fails fast without it.
"""

import os
import warnings
from pathlib import Path
from typing import List

from dotenv import load_dotenv

_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _csv_env(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings:
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "LendBox")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./lendbox.db")

    # JWT Security
    SECRET_KEY: str = os.getenv("SECRET_KEY", "")
    if not SECRET_KEY:
        if ENVIRONMENT == "production":
            raise ValueError(
                "SECRET_KEY must be set in production environment. "
                "Generate with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        warnings.warn(
            "SECRET_KEY not set in environment. Using development default. "
            "Set SECRET_KEY in .env to a strong random value before deploying.",
            RuntimeWarning,
        )
        SECRET_KEY = "development-only-weak-default-change-in-production"

    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    # Admin sessions last a working day
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"))
    TOKEN_COOKIE_NAME: str = "lendbox_admin_token"

    # CORS and host allow-lists (comma separated in env)
    CORS_ORIGINS: List[str] = _csv_env(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000",
    )
    ALLOWED_HOSTS: List[str] = _csv_env("ALLOWED_HOSTS", "localhost,127.0.0.1")

    SECURE_COOKIES: bool = ENVIRONMENT == "production"
    SAME_SITE_COOKIE: str = "strict"

    # Photo storage (borrower + return photos, item images, logos)
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", str(_BACKEND_DIR / "storage"))
    MEDIA_URL: str = os.getenv("MEDIA_URL", "/storage")
    MAX_PHOTO_BYTES: int = int(os.getenv("MAX_PHOTO_BYTES", str(5 * 1024 * 1024)))

    # Rate limiting for the unauthenticated public API
    RATE_LIMIT_REQUESTS: int = int(os.getenv("RATE_LIMIT_REQUESTS", "60"))
    RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    # Loan requests and returns store photos; kept lower than browsing
    RATE_LIMIT_SUBMISSIONS: int = int(os.getenv("RATE_LIMIT_SUBMISSIONS", "10"))

    # Password policy
    MIN_PASSWORD_LENGTH: int = int(os.getenv("MIN_PASSWORD_LENGTH", "8"))

    # Bootstrap master admin (password generated when not provided)
    MASTER_ADMIN_EMAIL: str = os.getenv("MASTER_ADMIN_EMAIL", "master@lendbox.app")
    MASTER_ADMIN_PASSWORD: str = os.getenv("MASTER_ADMIN_PASSWORD", "")

    DEFAULT_PAGE_SIZE: int = 15
    MAX_PAGE_SIZE: int = 100

    # Development server (run_server.py)
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))


settings = Settings()
