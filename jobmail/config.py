"""Load settings and env configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from jobmail.log import get_logger
from jobmail.retry import RetryPolicy

log = get_logger(__name__)

load_dotenv()

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = PROJECT_ROOT / "config"
SETTINGS_PATH: Path = CONFIG_DIR / "settings.yaml"
DATA_DIR: Path = PROJECT_ROOT / "data"


@dataclass
class Settings:
    concurrency: int = 2
    confidence_threshold: float = 0.6
    max_results: int = 50
    days_back: int = 7
    enqueue_delay: float = 5.0
    sync_interval_minutes: int = 30
    excerpt_chars: int = 1500
    excerpt_lines: int = 30
    retry_attempts: int = 2
    retry_base_delay: float = 2.0
    retry_backoff_factor: float = 2.0
    retry_max_delay: float = 30.0
    csv_path: str = ""

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            backoff_factor=self.retry_backoff_factor,
        )

    def resolved_csv_path(self) -> Path:
        if self.csv_path:
            p = Path(self.csv_path)
            return p if p.is_absolute() else PROJECT_ROOT / p
        return DATA_DIR / "applications.csv"


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


# Lowest accepted value per numeric setting.
_MINIMUMS: dict[str, float] = {
    "concurrency": 1,
    "retry_attempts": 1,
    "sync_interval_minutes": 1,
    "excerpt_chars": 1,
    "excerpt_lines": 1,
    "max_results": 0,
    "days_back": 0,
    "enqueue_delay": 0,
    "retry_base_delay": 0,
    "retry_max_delay": 0,
    "retry_backoff_factor": 1,
    "confidence_threshold": 0,
}


def _coerce(value: Any, target: Any, minimum: float | None = None) -> Any:
    if target is int:
        value = int(value)
    elif target is float:
        value = float(value)
    else:
        return str(value)
    if minimum is not None and value < minimum:
        raise ValueError(f"must be at least {minimum}")
    return value


def load_settings(path: Path | None = None) -> Settings:
    """Defaults, overridden by ``config/settings.yaml``, overridden by ``JOBMAIL_*`` env vars."""
    path = path or SETTINGS_PATH
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path.name} must contain a mapping, got {type(data).__name__}")

    settings = Settings()
    types = {"int": int, "float": float, "str": str}
    for f in fields(Settings):
        target = types.get(f.type if isinstance(f.type, str) else f.type.__name__, str)
        raw = data.get(f.name)
        env_raw = get_env(f"JOBMAIL_{f.name.upper()}")
        if env_raw:
            raw = env_raw
        if raw is None or raw == "":
            continue
        try:
            setattr(settings, f.name, _coerce(raw, target, _MINIMUMS.get(f.name)))
        except (TypeError, ValueError):
            log.warning("Ignoring invalid setting %s=%r", f.name, raw)

    unknown = set(data) - {f.name for f in fields(Settings)}
    if unknown:
        log.warning("Unknown settings in %s: %s", path.name, ", ".join(sorted(unknown)))
    return settings


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
