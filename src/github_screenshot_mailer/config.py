from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, model_validator


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


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


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only defaults so a `.env` file is enough; a YAML file can override any key.
    """
    return {
        "automation": {
            "base_url": os.getenv("GITHUB_BASE_URL", "https://github.com"),
            "screenshot_dir": os.getenv("SCREENSHOT_DIR", "data/screenshots"),
            "headless": _env_bool("HEADLESS", default=True),
            "login_email": os.getenv("GITHUB_LOGIN_EMAIL", ""),
            "login_password": os.getenv("GITHUB_LOGIN_PASSWORD", ""),
            "mobile_approval_timeout_seconds": os.getenv("MOBILE_APPROVAL_TIMEOUT_SECONDS", "120"),
            "mobile_polling_interval_seconds": os.getenv("MOBILE_POLLING_INTERVAL_SECONDS", "3"),
            "debug_dir": os.getenv("DEBUG_DIR", "data/debug"),
        },
        "smtp": {
            "host": os.getenv("SMTP_HOST", ""),
            "port": os.getenv("SMTP_PORT", "587"),
            "username": os.getenv("SMTP_USERNAME", ""),
            "password": os.getenv("SMTP_PASSWORD", ""),
            "from_address": os.getenv("SMTP_FROM", ""),
            "use_tls": _env_bool("SMTP_USE_TLS", default=True),
            "use_ssl": _env_bool("SMTP_USE_SSL", default=False),
        },
        "state": {
            "db_path": os.getenv("STATE_DB_PATH", "data/screenshots.db"),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/screenshot_mailer.log"),
        },
    }


class AutomationConfig(BaseModel):
    """
    Browser automation settings for github.com.

    Login credentials are optional: they are only required when a request asks for a logged-in capture.
    """

    base_url: str = "https://github.com"
    screenshot_dir: str = "data/screenshots"
    headless: bool = True
    login_email: str = ""
    login_password: str = Field(default="", repr=False)

    # The resolver enforces its own floors (30s / 1s) on top of these.
    mobile_approval_timeout_seconds: int = 120
    mobile_polling_interval_seconds: int = 3

    login_wait_seconds: float = 30.0
    page_load_timeout_seconds: float = 30.0
    viewport_width: int = 1366
    viewport_height: int = 768
    user_agent: str = DEFAULT_USER_AGENT
    # Playwright slow motion (debug); also settable with `capture --slowmo-ms`.
    slow_mo_ms: int = Field(default=0, ge=0)

    # Screens + HTML of failed logins land here; empty disables it.
    debug_dir: str = "data/debug"

    @model_validator(mode="after")
    def _normalize_base_url(self) -> "AutomationConfig":
        base_url = (self.base_url or "").strip().rstrip("/")
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("automation.base_url must be a full URL like 'https://github.com'")
        self.base_url = base_url
        return self

    @property
    def has_credentials(self) -> bool:
        return bool(self.login_email.strip() and self.login_password.strip())


class SmtpConfig(BaseModel):
    host: str = ""
    port: int = 587
    username: str = ""
    password: str = Field(default="", repr=False)
    from_address: str = ""
    use_tls: bool = True
    use_ssl: bool = False
    timeout_seconds: float = 10.0

    @model_validator(mode="after")
    def _validate_security(self) -> "SmtpConfig":
        if self.use_tls and self.use_ssl:
            raise ValueError("smtp.use_tls and smtp.use_ssl are mutually exclusive")
        if not self.from_address:
            self.from_address = self.username
        return self


class StateConfig(BaseModel):
    db_path: str = "data/screenshots.db"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/screenshot_mailer.log"


class AppConfig(BaseModel):
    automation: AutomationConfig = AutomationConfig()
    smtp: SmtpConfig = SmtpConfig()
    state: StateConfig = StateConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
