import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


@dataclass
class Config:
    alarms_path: Path
    storage_key: str
    timezone_name: Optional[str]
    rearm_on_load: bool
    check_interval_ms: int
    fallback_sound_path: Path
    debug: bool
    log_level: str


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    alarms_path = Path(os.getenv("ALARM_STORAGE_PATH", "data/alarms.json"))
    storage_key = os.getenv("ALARM_STORAGE_KEY") or "alarms"
    timezone_name = os.getenv("ALARM_TIMEZONE") or None
    rearm_on_load = _get_env_bool("ALARM_REARM_ON_LOAD", True)
    check_interval_ms = _get_env_int("ALARM_CHECK_INTERVAL_MS", 800)
    if check_interval_ms <= 0:
        raise ValueError("ALARM_CHECK_INTERVAL_MS must be positive")
    fallback_sound_path = Path(os.getenv("ALARM_FALLBACK_SOUND_PATH", "data/alarm.wav"))
    debug = _get_env_bool("DEBUG", False)
    log_level = "DEBUG" if debug else os.getenv("LOG_LEVEL", "INFO").upper()

    return Config(
        alarms_path=alarms_path,
        storage_key=storage_key,
        timezone_name=timezone_name,
        rearm_on_load=rearm_on_load,
        check_interval_ms=check_interval_ms,
        fallback_sound_path=fallback_sound_path,
        debug=debug,
        log_level=log_level,
    )


def setup_logging(log_level: str = "INFO") -> None:
    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    log_path = logs_dir / "smart_alarm.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
