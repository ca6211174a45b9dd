"""Smart Converter application configuration.

Loads settings from two YAML files:
  * convertbot.settings.yaml  : non-secret configuration
  * convertbot.secrets.yaml   : Twilio and ngrok credentials (never committed)

Environment variables override both files so the bot can also be configured
the classic way (``TWILIO_ACCOUNT_SID``, ``TWILIO_AUTH_TOKEN``,
``TWILIO_WHATSAPP_NUMBER``, ``PUBLIC_BASE_URL``, ``PORT``).
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path(os.environ.get("CONVERTBOT_SETTINGS", "convertbot.settings.yaml"))
SECRETS_FILE  = Path(os.environ.get("CONVERTBOT_SECRETS", "convertbot.secrets.yaml"))


class ConfigurationError(RuntimeError):
    """Raised when required startup configuration is missing or invalid."""


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class TwilioSecrets(BaseModel):
    account_sid:     Optional[str] = None
    auth_token:      Optional[str] = None
    whatsapp_number: Optional[str] = None   # e.g. "whatsapp:+14155238886"


class NgrokSecrets(BaseModel):
    authtoken: Optional[str] = None


class Secrets(BaseModel):
    twilio: TwilioSecrets = Field(default_factory=TwilioSecrets)
    ngrok:  NgrokSecrets  = Field(default_factory=NgrokSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str           = "0.0.0.0"
    port:            int           = 8085
    public_base_url: Optional[str] = None

    @field_validator("public_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().rstrip("/")
        return value or None


class StorageSettings(BaseModel):
    public_dir: str = "public/files"   # served under /files
    upload_dir: str = "."              # temp_* downloads land here


class LimitSettings(BaseModel):
    max_file_size_bytes:             int   = 10 * 1024 * 1024
    download_timeout_seconds:        float = 60.0
    download_retries:                int   = 2
    send_attempts:                   int   = 3
    session_timeout_seconds:         int   = 10 * 60
    session_sweep_interval_seconds:  int   = 60
    artifact_max_age_seconds:        int   = 2 * 60 * 60
    artifact_sweep_interval_seconds: int   = 60 * 60


class TunnelSettings(BaseModel):
    """Best-effort ngrok integration used to find a public base URL."""
    discover: bool = True
    launch:   bool = False
    api_url:  str  = "http://127.0.0.1:4040/api/tunnels"
    region:   str  = "us"


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    limits:  LimitSettings   = Field(default_factory=LimitSettings)
    tunnel:  TunnelSettings  = Field(default_factory=TunnelSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    secrets: Secrets         = Field(default_factory=Secrets)

    def missing_credentials(self) -> List[str]:
        """Return the names of required Twilio credentials that are unset."""
        twilio = self.secrets.twilio
        required = {
            "TWILIO_ACCOUNT_SID":     twilio.account_sid,
            "TWILIO_AUTH_TOKEN":      twilio.auth_token,
            "TWILIO_WHATSAPP_NUMBER": twilio.whatsapp_number,
        }
        return [name for name, value in required.items() if not value]

    def require_credentials(self) -> None:
        """Raise ConfigurationError unless all Twilio credentials are present."""
        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(
                f"Missing {', '.join(missing)} in {SECRETS_FILE} or environment"
            )


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


def _apply_env_overrides(data: Dict[str, Any], environ: Dict[str, str]) -> Dict[str, Any]:
    """Overlay well-known environment variables on top of the YAML data."""
    # YAML sections may be absent or explicitly null
    server  = data["server"]  = data.get("server") or {}
    secrets = data["secrets"] = data.get("secrets") or {}
    twilio  = secrets["twilio"] = secrets.get("twilio") or {}
    ngrok   = secrets["ngrok"]  = secrets.get("ngrok") or {}

    env_map = [
        ("TWILIO_ACCOUNT_SID",     twilio, "account_sid"),
        ("TWILIO_AUTH_TOKEN",      twilio, "auth_token"),
        ("TWILIO_WHATSAPP_NUMBER", twilio, "whatsapp_number"),
        ("NGROK_AUTHTOKEN",        ngrok,  "authtoken"),
        ("PUBLIC_BASE_URL",        server, "public_base_url"),
        ("PORT",                   server, "port"),
    ]
    for env_name, section, key in env_map:
        value = environ.get(env_name)
        if value:
            section[key] = value
            logger.debug("Config override from env: %s", env_name)
    return data


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
) -> AppSettings:
    """Load and merge settings + secrets + env into a single *AppSettings* object."""
    settings_data = _load_yaml(settings_path or SETTINGS_FILE)
    secrets_data  = _load_yaml(secrets_path or SECRETS_FILE)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data
    settings_data = _apply_env_overrides(
        settings_data, dict(os.environ) if environ is None else environ
    )

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, public_base_url=%s, tunnel.discover=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.server.public_base_url,
        app_settings.tunnel.discover,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def reset_config() -> None:
    """Forget the cached settings (for testing)."""
    global _config
    _config = None
