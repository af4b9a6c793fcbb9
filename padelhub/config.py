"""
Runtime configuration, read from the environment (and a local .env if present).
"""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application settings"""

    # Database
    DB_PATH = os.getenv("PADELHUB_DB_PATH", "")  # empty = project root / data / padelhub.db

    # Auth
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "padelhub-dev-secret-change-in-production")
    JWT_ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))

    # Logging
    DEBUG = os.getenv("DEBUG", "False").lower() == "true"

    # HTTP
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

    # League rules
    PHASE_LENGTH_DAYS = int(os.getenv("PHASE_LENGTH_DAYS", "14"))
    DIVISION_SIZE = int(os.getenv("DIVISION_SIZE", "4"))
    POINTS_RETRY_ATTEMPTS = int(os.getenv("POINTS_RETRY_ATTEMPTS", "3"))

    @classmethod
    def get_cors_origins(cls) -> list[str]:
        """Comma-separated CORS_ORIGINS as a list"""
        return [o.strip() for o in cls.CORS_ORIGINS.split(",") if o.strip()]
