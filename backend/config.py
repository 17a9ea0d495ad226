# backend/config.py
from __future__ import annotations
from pathlib import Path
import logging
import os
from dotenv import load_dotenv

# Load exactly backend/.env (do NOT call load_dotenv() without a path)
ENV_FILE = Path(__file__).with_name(".env")
load_dotenv(ENV_FILE, override=False)


def get_data_dir() -> Path:
    # Fallback to backend/data when DATA_DIR is not set
    return Path(os.getenv("DATA_DIR", str(Path(__file__).with_name("data")))).resolve()


def get_settings():
    return Settings


class Settings:
    REFERENCE_PRESET: str = os.getenv("REFERENCE_PRESET", "sample")
    REFERENCE_XLSX_PATH: str = os.getenv(
        "REFERENCE_XLSX_PATH", str(get_data_dir() / "reference_tables.xlsx")
    )
    AT_RISK_MARGIN: float = float(os.getenv("AT_RISK_MARGIN", "0.15"))
    PERFORMANCE_THRESHOLD_PCT: float = float(
        os.getenv("PERFORMANCE_THRESHOLD_PCT", "10.0")
    )
    DEFAULT_GRANULARITY: str = os.getenv("DEFAULT_GRANULARITY", "MONTHLY")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000")


settings = Settings


def configure_logging(level: str | None = None) -> None:
    """Call once at startup; repeated calls only adjust the level."""
    lvl = (level or Settings.LOG_LEVEL).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=lvl,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    root.setLevel(lvl)
