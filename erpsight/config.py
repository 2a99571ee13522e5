"""
Environment configuration and logging setup.

Values come from the process environment, optionally seeded from a `.env`
file at the project root:

  ERPSIGHT_LOG_LEVEL           logging level name (default INFO)
  ERPSIGHT_INDUSTRY            benchmark industry (default 인프라/건설)
  ERPSIGHT_ANOMALY_MULTIPLIER  IQR fence multiplier (default 1.5)
  ERPSIGHT_TOP_N               length of ranked lists (default 10)
  ERPSIGHT_ORG_CODES           comma-separated org codes kept by the parser
"""

from dataclasses import dataclass
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from erpsight.benchmarks.industry import DEFAULT_INDUSTRY

BASE_DIR = Path(__file__).parent.parent
load_dotenv(BASE_DIR / ".env")

logger = logging.getLogger(__name__)

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_ANOMALY_MULTIPLIER = 1.5
DEFAULT_TOP_N = 10


@dataclass(frozen=True)
class Settings:
    log_level: str = DEFAULT_LOG_LEVEL
    industry: str = DEFAULT_INDUSTRY
    anomaly_multiplier: float = DEFAULT_ANOMALY_MULTIPLIER
    top_n: int = DEFAULT_TOP_N
    org_codes: tuple[str, ...] = ()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default


def parse_org_codes(raw: str) -> tuple[str, ...]:
    return tuple(code.strip() for code in (raw or "").split(",") if code.strip())


def get_settings() -> Settings:
    """Read settings from the environment. Called fresh each time so tests can monkeypatch env vars."""
    return Settings(
        log_level=(os.getenv("ERPSIGHT_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        industry=os.getenv("ERPSIGHT_INDUSTRY") or DEFAULT_INDUSTRY,
        anomaly_multiplier=_env_float("ERPSIGHT_ANOMALY_MULTIPLIER", DEFAULT_ANOMALY_MULTIPLIER),
        top_n=_env_int("ERPSIGHT_TOP_N", DEFAULT_TOP_N),
        org_codes=parse_org_codes(os.getenv("ERPSIGHT_ORG_CODES", "")),
    )


def configure_logging(settings: Settings = None) -> None:
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(level=level)
