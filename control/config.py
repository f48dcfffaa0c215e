import os
from pathlib import Path


def _int_env(name: str, default: int) -> int:
    raw = str(os.getenv(name, str(default))).strip()
    try:
        return int(raw)
    except Exception:
        return default


def _float_env(name: str, default: float) -> float:
    raw = str(os.getenv(name, str(default))).strip()
    try:
        return float(raw)
    except Exception:
        return default


_DEFAULT_DB_PATH = Path(__file__).resolve().parent / "data" / "ghostlayer.db"

DATABASE_URL = str(os.getenv("GHOSTLAYER_DB_URL", f"sqlite:///{_DEFAULT_DB_PATH.as_posix()}")).strip()
STATE_KEY = str(os.getenv("GHOSTLAYER_STATE_KEY", "ghostlayer_state_v6")).strip()

SYNC_INTERVAL_SECONDS = _int_env("GHOSTLAYER_SYNC_INTERVAL_SECONDS", 600)
ACCRUAL_MODE = str(os.getenv("GHOSTLAYER_ACCRUAL_MODE", "random")).strip().lower()
ACCRUAL_MAX_GB = _float_env("GHOSTLAYER_ACCRUAL_MAX_GB", 0.5)
UPSTREAM_TIMEOUT_SECONDS = _float_env("GHOSTLAYER_UPSTREAM_TIMEOUT", 5.0)

BCRYPT_ROUNDS = _int_env("GHOSTLAYER_BCRYPT_ROUNDS", 12)
DEFAULT_ADMIN_PASSWORD = str(os.getenv("GHOSTLAYER_DEFAULT_ADMIN_PASSWORD", "admin"))

API_PORT = _int_env("GHOSTLAYER_API_PORT", 8010)
BIND_HOST = str(os.getenv("GHOSTLAYER_BIND_HOST", "0.0.0.0")).strip()
LOG_LEVEL = str(os.getenv("GHOSTLAYER_LOG_LEVEL", "INFO")).strip()
LOG_FILE = os.getenv("GHOSTLAYER_LOG_FILE") or None

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or None
GEMINI_MODEL = str(os.getenv("GEMINI_MODEL", "gemini-2.5-flash")).strip()
ENRICHMENT_TIMEOUT_SECONDS = _float_env("GHOSTLAYER_ENRICHMENT_TIMEOUT", 8.0)
