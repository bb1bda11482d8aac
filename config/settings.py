"""
config/settings.py
──────────────────
Application configuration loaded from environment variables.
"""
import os
from dataclasses import dataclass


@dataclass
class Settings:
    # Runtime
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database (SQLite path, ":memory:" in tests)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "insights.db")

    # Insight lifecycle
    INSIGHT_TTL_DAYS: int = int(os.getenv("INSIGHT_TTL_DAYS", "7"))
    ONBOARDING_CONFIDENCE: float = float(os.getenv("ONBOARDING_CONFIDENCE", "90"))
    DEFAULT_LIST_LIMIT: int = int(os.getenv("DEFAULT_LIST_LIMIT", "10"))

    # Deferred generation
    WORKER_MAX_RETRIES: int = int(os.getenv("WORKER_MAX_RETRIES", "3"))
    SWEEP_INTERVAL_S: float = float(os.getenv("SWEEP_INTERVAL_S", "300"))

    # Simulation
    SIMULATION_SEED: int = int(os.getenv("SIMULATION_SEED", "42"))
    HISTORY_DAYS: int = int(os.getenv("HISTORY_DAYS", "14"))

    # i18n
    DEFAULT_LANG: str = os.getenv("DEFAULT_LANG", "pt")


settings = Settings()
