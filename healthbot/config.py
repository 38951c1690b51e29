from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DATA_DIR = BASE_DIR / "data"


def _resolve_path(raw_path: str | None, default_path: Path | None) -> Path | None:
    if not raw_path:
        return default_path
    path = Path(raw_path).expanduser()
    if path.is_absolute():
        return path
    return (BASE_DIR / path).resolve()


# Load .env early so path env vars are available for module-level constants.
load_dotenv()

DATA_DIR = _resolve_path(os.getenv("DATA_DIR"), DEFAULT_DATA_DIR)
DB_PATH = _resolve_path(os.getenv("DB_PATH"), DATA_DIR / "health.db")
# Unset means the built-in questionnaire from constants.py.
QUESTIONNAIRE_PATH = _resolve_path(os.getenv("QUESTIONNAIRE_PATH"), None)


@dataclass(frozen=True)
class AppConfig:
    telegram_bot_token: str
    openai_api_key: str
    openai_model: str = "gpt-4.1-mini"
    analysis_timeout: float = 60.0
    ocr_language: str = "rus+eng"


class ConfigError(RuntimeError):
    pass


def load_config() -> AppConfig:
    load_dotenv()

    telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    openai_api_key = os.getenv("OPENAI_API_KEY", "").strip()
    openai_model = os.getenv("OPENAI_MODEL", "gpt-4.1-mini").strip() or "gpt-4.1-mini"
    analysis_timeout_raw = os.getenv("ANALYSIS_TIMEOUT", "60").strip()
    ocr_language = os.getenv("OCR_LANGUAGE", "rus+eng").strip() or "rus+eng"

    if not telegram_bot_token:
        raise ConfigError("Missing TELEGRAM_BOT_TOKEN in environment/.env")
    if not openai_api_key:
        raise ConfigError("Missing OPENAI_API_KEY in environment/.env")

    try:
        analysis_timeout = float(analysis_timeout_raw)
        if analysis_timeout <= 0 or analysis_timeout > 600:
            raise ValueError
    except ValueError as exc:
        raise ConfigError("ANALYSIS_TIMEOUT must be a number of seconds in range (0, 600]") from exc

    return AppConfig(
        telegram_bot_token=telegram_bot_token,
        openai_api_key=openai_api_key,
        openai_model=openai_model,
        analysis_timeout=analysis_timeout,
        ocr_language=ocr_language,
    )


def ensure_data_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
