"""Configuration management for termtabs.

Loads settings from a YAML configuration file with environment variable
overrides. Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/termtabs.yaml")
DEFAULT_TERMINAL_URL = "http://127.0.0.1:7681"


class SessionConfig(BaseModel):
    timeout_ms: int = Field(default=5000, gt=0, description="Liveness deadline per navigation attempt")
    default_url: str = Field(default=DEFAULT_TERMINAL_URL)

    @property
    def timeout(self) -> float:
        """The liveness deadline in seconds."""
        return self.timeout_ms / 1000.0


class IdentityConfig(BaseModel):
    alias: str = Field(default="ttyd", description="Key store alias of the client identity")
    data_dir: Path = Field(default=Path("~/.local/share/termtabs"))
    export_filename: str = Field(default="ca.crt")
    validity_days: int = Field(default=3650, gt=0)
    common_name: str = Field(default="termtabs client")

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir.expanduser()

    @property
    def keystore_dir(self) -> Path:
        return self.resolved_data_dir / "keystore"

    @property
    def export_path(self) -> Path:
        return self.resolved_data_dir / self.export_filename

    @property
    def preferences_path(self) -> Path:
        return self.resolved_data_dir / "preferences.yaml"


class ProbeConfig(BaseModel):
    request_timeout: float = Field(default=10.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for termtabs.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "TERMTABS_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    session: SessionConfig = Field(default_factory=SessionConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Values present in the YAML file win over environment variables, which
    win over the .env file and the defaults. ``TTYD_URL`` only fills in the
    terminal URL when the YAML file leaves it unset.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    _load_dotenv(Path(".env"))

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv(env_path: Path) -> None:
    """Copy unset non-prefixed variables (TTYD_URL) from a .env file into os.environ."""
    if not env_path.exists():
        return
    with open(env_path) as f:
        for raw in f:
            key, sep, value = raw.strip().partition("=")
            if not sep or key.startswith("#"):
                continue
            key = key.removeprefix("export ").strip()
            if key and not os.environ.get(key):
                os.environ[key] = value.strip().strip("\"'")


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply environment variable overrides for non-prefixed vars."""
    # TTYD_URL is what the terminal server's launcher exports
    ttyd_url = os.environ.get("TTYD_URL", "")
    if not ttyd_url:
        return

    if "session" not in yaml_data:
        yaml_data["session"] = {}
    if not yaml_data["session"].get("default_url"):
        yaml_data["session"]["default_url"] = ttyd_url
