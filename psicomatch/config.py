from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent.parent


def _load_env() -> None:
    env_path = BASE_DIR / ".env"
    load_dotenv(env_path, override=False)


def _parse_port(value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        port = int(value.strip())
    except ValueError as exc:
        raise RuntimeError(f"API_PORT содержит нечисловое значение: {value!r}") from exc
    if not 0 < port < 65536:
        raise RuntimeError(f"API_PORT вне допустимого диапазона: {port}")
    return port


def _parse_level(value: str | None) -> int:
    if not value:
        return logging.INFO
    level = logging.getLevelName(value.strip().upper())
    if not isinstance(level, int):
        raise RuntimeError(f"LOG_LEVEL неизвестен: {value!r}")
    return level


@dataclass(frozen=True)
class Settings:
    database_path: Path
    log_file: Path
    log_level: int
    api_host: str
    api_port: int
    questionnaires_path: Path


def get_settings() -> Settings:
    _load_env()

    db_path = os.getenv("DATABASE_PATH") or str(BASE_DIR / "psicomatch.db")
    log_file_raw = os.getenv("LOG_FILE") or str(BASE_DIR / "logs" / "psicomatch.log")
    questionnaires_raw = os.getenv("QUESTIONNAIRES_PATH") or str(BASE_DIR / "data" / "matching_tests.json")
    host = (os.getenv("API_HOST") or "127.0.0.1").strip()

    return Settings(
        database_path=Path(db_path).expanduser().resolve(),
        log_file=Path(log_file_raw).expanduser().resolve(),
        log_level=_parse_level(os.getenv("LOG_LEVEL")),
        api_host=host,
        api_port=_parse_port(os.getenv("API_PORT"), 5001),
        questionnaires_path=Path(questionnaires_raw).expanduser().resolve(),
    )
