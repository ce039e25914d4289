from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import ConfigurationError


DETRANNET_MAIN_URL = "https://sistema.detrannet.sc.gov.br/arearestrita/tela_principal.asp"

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            return os.getenv(match.group(1), "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer (got {raw!r})") from None


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            out[k] = _deep_merge(out[k], v) if k in out else v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config so a `.env` with DETRAN_USER / DETRAN_PASS is enough.

    YAML remains an optional override for tuning waits and paths.
    """
    return {
        "detran": {
            "username": os.getenv("DETRAN_USER", ""),
            "password": os.getenv("DETRAN_PASS", ""),
            "url": os.getenv("DETRAN_URL", DETRANNET_MAIN_URL),
        },
        "browser": {
            "headless": not _env_bool("BROWSER_HEADFUL", default=False),
            "slow_mo_ms": _env_int("BROWSER_SLOWMO_MS", 0),
            "navigation_timeout_ms": _env_int("NAVIGATION_TIMEOUT_MS", 60_000),
            "settle_ms": _env_int("SETTLE_MS", 1_000),
            "content_timeout_ms": _env_int("CONTENT_TIMEOUT_MS", 20_000),
            "debts_settle_ms": _env_int("DEBTS_SETTLE_MS", 2_000),
            "debts_timeout_ms": _env_int("DEBTS_TIMEOUT_MS", 8_000),
            "fail_on_content_timeout": _env_bool("FAIL_ON_CONTENT_TIMEOUT", default=False),
        },
        "concurrency": {
            "max_sessions": _env_int("MAX_BROWSER_SESSIONS", 2),
            "acquire_timeout_s": _env_int("SESSION_ACQUIRE_TIMEOUT_S", 120),
        },
        "state": {
            "db_path": os.getenv("STATE_DB_PATH", "data/consultations.db"),
        },
        "debug": {
            "dir": os.getenv("DEBUG_DIR", "data/debug"),
            "save_snapshots": _env_bool("SAVE_SNAPSHOTS", default=False),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/lookup.log"),
        },
    }


class DetranConfig(BaseModel):
    """
    DetranNet SC restricted-area access.

    The main frameset sits behind HTTP basic auth; credentials are handed to the browser context.
    """

    username: str = ""
    password: str = Field(default="", repr=False)
    url: str = DETRANNET_MAIN_URL

    @model_validator(mode="after")
    def _validate(self) -> "DetranConfig":
        parsed = urlparse(self.url or "")
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"detran.url must be a full URL like {DETRANNET_MAIN_URL!r}")
        return self

    @property
    def has_credentials(self) -> bool:
        return bool(self.username.strip() and self.password)


class BrowserConfig(BaseModel):
    headless: bool = True
    slow_mo_ms: int = Field(default=0, ge=0)
    navigation_timeout_ms: int = Field(default=60_000, gt=0)
    # How long to look for the plate field across the frameset.
    input_timeout_ms: int = Field(default=5_000, gt=0)

    # Fixed wait after submitting, then bounded polling for a conclusive result frame.
    settle_ms: int = Field(default=1_000, ge=0)
    content_timeout_ms: int = Field(default=20_000, gt=0)
    poll_initial_ms: int = Field(default=250, gt=0)
    poll_max_ms: int = Field(default=2_000, gt=0)

    # After expanding "Listagem de Débitos": fixed head start, then poll for the table.
    debts_settle_ms: int = Field(default=2_000, ge=0)
    debts_timeout_ms: int = Field(default=8_000, ge=0)

    fail_on_content_timeout: bool = False


class ConcurrencyConfig(BaseModel):
    max_sessions: int = Field(default=2, ge=1)
    acquire_timeout_s: int = Field(default=120, ge=0)


class StateConfig(BaseModel):
    db_path: str = "data/consultations.db"


class DebugConfig(BaseModel):
    dir: str = "data/debug"
    # Also write every captured frame snapshot (not only failures) for offline parsing work.
    save_snapshots: bool = False


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/lookup.log"


class AppConfig(BaseModel):
    detran: DetranConfig = DetranConfig()
    browser: BrowserConfig = BrowserConfig()
    concurrency: ConcurrencyConfig = ConcurrencyConfig()
    state: StateConfig = StateConfig()
    debug: DebugConfig = DebugConfig()
    logging: LoggingConfig = LoggingConfig()

    def require_credentials(self) -> DetranConfig:
        if not self.detran.has_credentials:
            raise ConfigurationError(
                "Credenciais do Detran (DETRAN_USER/DETRAN_PASS) não configuradas no servidor."
            )
        return self.detran


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    try:
        return AppConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
