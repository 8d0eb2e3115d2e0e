"""
Environment-driven settings for the Student & Library API.

Values are read once at import time.  A local ``.env`` file is loaded
first so that development setups do not need exported variables.
"""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    app_name: str = os.getenv("APP_NAME", "Student & Library API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))
    cors_origins: List[str] = field(default_factory=lambda: _split_csv(os.getenv("CORS_ORIGINS", "*")))

    # MongoDB
    database_url: str = os.getenv("DATABASE_URL", "mongodb://127.0.0.1:27017")
    database_name: str = os.getenv("DATABASE_NAME", "studentDB")
    server_selection_timeout_ms: int = int(os.getenv("SERVER_SELECTION_TIMEOUT_MS", "5000"))

    # Lending
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "14"))


settings = Settings()
