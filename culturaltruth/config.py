"""
CulturalTruth Configuration

Central settings loaded from environment variables.
Environment *mode* (Hackathon/Production) lives in environment.py and is
switchable at runtime. These settings are fixed for the process lifetime.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    """Immutable process settings."""

    VERSION: str = "2.0.0"

    # --- Qloo ---
    QLOO_API_KEY: str = os.getenv("QLOO_API_KEY", "")
    API_TIMEOUT: float = float(os.getenv("API_TIMEOUT", "10"))

    # --- Environment ---
    DEFAULT_MODE: str = os.getenv("CULTURALTRUTH_MODE", "Hackathon")

    # --- Resilience ---
    RATE_LIMIT_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "50"))
    CIRCUIT_BREAKER_THRESHOLD: int = int(
        os.getenv("CIRCUIT_BREAKER_THRESHOLD", "5")
    )
    CIRCUIT_BREAKER_TIMEOUT: float = float(
        os.getenv("CIRCUIT_BREAKER_TIMEOUT", "30")
    )
    MAX_CACHE_SIZE: int = int(os.getenv("MAX_CACHE_SIZE", "1000"))
    CACHE_TTL_SECONDS: float = float(os.getenv("CACHE_TTL_SECONDS", "300"))

    # --- Audit ---
    MAX_AUDIT_RECORDS: int = int(os.getenv("MAX_AUDIT_RECORDS", "1000"))

    # --- Input limits ---
    MAX_CONTENT_LENGTH: int = int(os.getenv("MAX_CONTENT_LENGTH", "10000"))
    MAX_BATCH_SIZE: int = int(os.getenv("MAX_BATCH_SIZE", "50"))
    BATCH_DELAY_SECONDS: float = float(os.getenv("BATCH_DELAY_SECONDS", "1.0"))

    # --- Server ---
    HOST: str = os.getenv("CULTURALTRUTH_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("CULTURALTRUTH_PORT", "8000"))

    # --- CORS ---
    CORS_ORIGINS: str = os.getenv("CULTURALTRUTH_CORS_ORIGINS", "*")


settings = Settings()
