"""
config.py
Application settings, loaded from the environment (and a .env file if present).
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent


@dataclass
class AppConfig:
    db_path: str = str(BASE_DIR / "committee.db")
    upload_dir: str = str(BASE_DIR / "uploads")
    log_level: str = "INFO"
    debug: bool = False                     # verbose query logging
    default_admin_password: str = "admin123"
    currency: str = "Rs"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load config with environment variable overrides."""
        load_dotenv()
        config = cls()
        config.db_path = os.getenv("COMMITTEE_DB_PATH", config.db_path)
        config.upload_dir = os.getenv("COMMITTEE_UPLOAD_DIR", config.upload_dir)
        config.debug = os.getenv("COMMITTEE_DEBUG", "false").lower() == "true"
        config.log_level = "DEBUG" if config.debug else os.getenv("LOG_LEVEL", "INFO").upper()
        config.default_admin_password = os.getenv("COMMITTEE_DEFAULT_ADMIN_PASSWORD", "admin123")
        config.currency = os.getenv("COMMITTEE_CURRENCY", "Rs")
        return config


def setup_logging(config: AppConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


settings = AppConfig.from_env()
