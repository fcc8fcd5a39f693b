"""Settings for traefik-pihole-sync.

Settings are read once at startup, in increasing order of precedence, from the
built-in defaults, an optional YAML file, environment variables and CLI flags.

Environment variables:

    TRAEFIK_API_URL          Traefik routers endpoint
                             (default: http://traefik:8080/api/http/routers)
    PIHOLE_URL               Pi-hole base URL, e.g. http://pihole (required)
    PIHOLE_PASSWORD          Pi-hole web/API password (required)
    TRAEFIK_HOST_IP          Address every routed hostname resolves to (required)
    SYNC_INTERVAL            "@every 5m" style interval or a cron expression
                             (default: @every 5m)
    LOG_LEVEL                DEBUG, INFO, WARNING, ERROR (default: INFO)
    DRY_RUN                  Report changes without applying them (default: false)
    RUN_ONCE                 Run a single pass and exit (default: false)
    PIHOLE_AUTH_ENCODING     "form" or "json" login payload (default: form)
    PIHOLE_WRITE_MODE        "replace" or "item" record writes (default: replace)
    REQUEST_TIMEOUT_SECONDS  Timeout of every HTTP call (default: 10)
    CONFIG_PATH              Optional YAML file holding any of the settings above
                             under their lower-case setting names, e.g.:
                               pihole_url: http://pihole
                               target_ip: 10.0.0.2
                               sync_interval: "*/10 * * * *"
"""

from __future__ import annotations

import ipaddress
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ConfigurationError
from .pihole import AuthEncoding, WriteMode
from .scheduler import parse_schedule
from .traefik import DEFAULT_ROUTERS_URL

logger = logging.getLogger(__name__)

ENV_VARS = {
    "traefik_api_url": "TRAEFIK_API_URL",
    "pihole_url": "PIHOLE_URL",
    "pihole_password": "PIHOLE_PASSWORD",
    "target_ip": "TRAEFIK_HOST_IP",
    "sync_interval": "SYNC_INTERVAL",
    "log_level": "LOG_LEVEL",
    "dry_run": "DRY_RUN",
    "once": "RUN_ONCE",
    "auth_encoding": "PIHOLE_AUTH_ENCODING",
    "write_mode": "PIHOLE_WRITE_MODE",
    "request_timeout": "REQUEST_TIMEOUT_SECONDS",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    """Validated runtime configuration."""

    pihole_url: str
    pihole_password: str
    target_ip: str
    traefik_api_url: str = DEFAULT_ROUTERS_URL
    sync_interval: str = "@every 5m"
    log_level: str = "INFO"
    dry_run: bool = False
    once: bool = False
    auth_encoding: AuthEncoding = AuthEncoding.FORM
    write_mode: WriteMode = WriteMode.REPLACE
    request_timeout: float = 10.0

    def describe(self) -> Dict[str, Any]:
        """Settings safe to log; the password is masked."""
        return {
            "traefik_api_url": self.traefik_api_url,
            "pihole_url": self.pihole_url,
            "pihole_password": "***" if self.pihole_password else "",
            "target_ip": self.target_ip,
            "sync_interval": self.sync_interval,
            "log_level": self.log_level,
            "dry_run": self.dry_run,
            "once": self.once,
            "auth_encoding": self.auth_encoding.value,
            "write_mode": self.write_mode.value,
            "request_timeout": self.request_timeout,
        }


def _parse_bool(value: Any, *, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Read settings from a YAML file.

    Raises:
        ConfigurationError: the file is missing, unreadable or not a mapping.
    """
    path = Path(config_path)
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError([f"Failed to load config from {path}: {e}"]) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError([f"Config file {path} must contain a mapping"])

    unknown = sorted(set(data) - set(ENV_VARS))
    if unknown:
        logger.warning(f"Ignoring unknown settings in {path}: {', '.join(unknown)}")
    return {k: v for k, v in data.items() if k in ENV_VARS}


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    *,
    config_path: Optional[str] = None,
    once: Optional[bool] = None,
    dry_run: Optional[bool] = None,
) -> Settings:
    """Build and validate the settings.

    Raises:
        ConfigurationError: with every problem found, not just the first.
    """
    if environ is None:
        environ = os.environ

    raw: Dict[str, Any] = {}
    config_path = config_path or environ.get("CONFIG_PATH", "").strip()
    if config_path:
        raw.update(load_config_file(config_path))

    for key, env_var in ENV_VARS.items():
        value = environ.get(env_var, "")
        if value.strip():
            raw[key] = value.strip()

    if once is not None:
        raw["once"] = once
    if dry_run is not None:
        raw["dry_run"] = dry_run

    errors: List[str] = []

    def text(key: str) -> str:
        return str(raw.get(key) or "").strip()

    for key in ("pihole_url", "pihole_password", "target_ip"):
        if not text(key):
            errors.append(f"{ENV_VARS[key]} is required")

    target_ip = text("target_ip")
    if target_ip:
        try:
            ipaddress.ip_address(target_ip)
        except ValueError:
            errors.append(f"{ENV_VARS['target_ip']} is not a valid IP address: {target_ip}")

    sync_interval = text("sync_interval") or Settings.sync_interval
    try:
        parse_schedule(sync_interval)
    except ValueError as e:
        errors.append(f"Invalid {ENV_VARS['sync_interval']} '{sync_interval}': {e}")

    log_level = (text("log_level") or Settings.log_level).upper()
    if log_level not in LOG_LEVELS:
        errors.append(
            f"Invalid {ENV_VARS['log_level']}: {log_level}. Use one of {', '.join(LOG_LEVELS)}"
        )

    auth_encoding = Settings.auth_encoding
    try:
        auth_encoding = AuthEncoding(text("auth_encoding").lower() or auth_encoding.value)
    except ValueError:
        errors.append(
            f"Invalid {ENV_VARS['auth_encoding']}: {text('auth_encoding')}. Use 'form' or 'json'"
        )

    write_mode = Settings.write_mode
    try:
        write_mode = WriteMode(text("write_mode").lower() or write_mode.value)
    except ValueError:
        errors.append(
            f"Invalid {ENV_VARS['write_mode']}: {text('write_mode')}. Use 'replace' or 'item'"
        )

    request_timeout = Settings.request_timeout
    if text("request_timeout"):
        try:
            request_timeout = float(text("request_timeout"))
            if request_timeout <= 0:
                raise ValueError("must be positive")
        except ValueError:
            errors.append(f"Invalid {ENV_VARS['request_timeout']}: {text('request_timeout')}")

    if errors:
        raise ConfigurationError(errors)

    return Settings(
        traefik_api_url=text("traefik_api_url") or DEFAULT_ROUTERS_URL,
        pihole_url=text("pihole_url").rstrip("/"),
        pihole_password=str(raw.get("pihole_password") or ""),
        target_ip=target_ip,
        sync_interval=sync_interval,
        log_level=log_level,
        auth_encoding=auth_encoding,
        write_mode=write_mode,
        request_timeout=request_timeout,
        dry_run=_parse_bool(raw.get("dry_run")),
        once=_parse_bool(raw.get("once")),
    )
