from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import os
import yaml


DEFAULT_GIVEAWAY_COLOR = 0x7837FF


class ConfigError(RuntimeError):
    """Raised when the configuration file is invalid."""


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(slots=True)
class SchedulerConfig:
    interval_seconds: float = 1.0


@dataclass(slots=True)
class PermissionsConfig:
    development_guild_id: Optional[int] = None


@dataclass(slots=True)
class GuildConfig:
    log_channel_id: Optional[int] = None
    giveaway_color: int = DEFAULT_GIVEAWAY_COLOR


@dataclass(slots=True)
class Config:
    token: str
    application_id: int
    database_path: Path
    logging: LoggingConfig
    scheduler: SchedulerConfig
    permissions: PermissionsConfig
    guilds: Dict[int, GuildConfig] = field(default_factory=dict)
    avatar_url: Optional[str] = None

    def get_guild_config(self, guild_id: int) -> Optional[GuildConfig]:
        return self.guilds.get(guild_id)

    def giveaway_color(self, guild_id: int) -> int:
        guild_config = self.guilds.get(guild_id)
        if guild_config is None:
            return DEFAULT_GIVEAWAY_COLOR
        return guild_config.giveaway_color


def _require(data: Dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ConfigError(f"Missing required config key: {key}")
    return data[key]

def _resolve_env_value(value: str, key: str) -> str:
    trimmed = value.strip()
    if trimmed.startswith("${") and trimmed.endswith("}"):
        env_name = trimmed[2:-1].strip()
        if not env_name:
            raise ConfigError(f"Environment reference for '{key}' is empty.")
        env_value = os.getenv(env_name)
        if env_value is None:
            raise ConfigError(
                f"Environment variable '{env_name}' referenced by '{key}' is not set."
            )
        return env_value
    return value

def _optional_snowflake(value: Any, key: str) -> Optional[int]:
    if value in (None, "", 0):
        return None
    try:
        snowflake = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer ID or null.") from exc
    if snowflake <= 0:
        raise ConfigError(f"{key} must be a positive integer.")
    return snowflake


def _parse_logging(data: Dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    return LoggingConfig(level=level)


def _parse_scheduler(data: Dict[str, Any]) -> SchedulerConfig:
    interval = data.get("interval_seconds", 1.0)
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
        raise ConfigError("scheduler.interval_seconds must be a positive number.")
    return SchedulerConfig(interval_seconds=float(interval))


def _parse_permissions(data: Dict[str, Any]) -> PermissionsConfig:
    return PermissionsConfig(
        development_guild_id=_optional_snowflake(
            data.get("development_guild_id"), "permissions.development_guild_id"
        )
    )


def _parse_color(value: Any, key: str) -> int:
    if isinstance(value, str):
        text = value.strip().lstrip("#")
        if text.lower().startswith("0x"):
            text = text[2:]
        try:
            value = int(text, 16)
        except ValueError as exc:
            raise ConfigError(f"{key} must be a hex colour such as '#7837FF'.") from exc
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFFFFFF:
        raise ConfigError(f"{key} must be an RGB colour between 0x000000 and 0xFFFFFF.")
    return value


def _parse_guilds(data: Any) -> Dict[int, GuildConfig]:
    if data in (None, ""):
        return {}
    if not isinstance(data, dict):
        raise ConfigError("guilds must be a mapping of guild IDs to guild settings.")

    guilds: Dict[int, GuildConfig] = {}
    for guild_id_raw, entry in data.items():
        try:
            guild_id = int(guild_id_raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid guild id in guilds: {guild_id_raw!r}") from exc
        entry = entry or {}
        if not isinstance(entry, dict):
            raise ConfigError(f"guilds[{guild_id}] must be an object.")
        guilds[guild_id] = GuildConfig(
            log_channel_id=_optional_snowflake(
                entry.get("log_channel_id"), f"guilds[{guild_id}].log_channel_id"
            ),
            giveaway_color=_parse_color(
                entry.get("giveaway_color", DEFAULT_GIVEAWAY_COLOR),
                f"guilds[{guild_id}].giveaway_color",
            ),
        )
    return guilds


def load_config(path: Path) -> Config:
    if not path.exists():
        raise ConfigError(f"Config file {path} does not exist.")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping at the root.")

    token_raw = str(_require(data, "token"))
    token = _resolve_env_value(token_raw, "token").strip()
    if not token:
        raise ConfigError("token must not be empty.")
    try:
        application_id = int(_resolve_env_value(str(_require(data, "application_id")), "application_id"))
    except ValueError as exc:
        raise ConfigError("application_id must be an integer.") from exc
    database_path = Path(str(data.get("database_path", "data/giveaways.sqlite")))
    avatar_url = data.get("avatar_url") or None

    return Config(
        token=token,
        application_id=application_id,
        database_path=database_path,
        logging=_parse_logging(data.get("logging") or {}),
        scheduler=_parse_scheduler(data.get("scheduler") or {}),
        permissions=_parse_permissions(data.get("permissions") or {}),
        guilds=_parse_guilds(data.get("guilds")),
        avatar_url=str(avatar_url) if avatar_url else None,
    )
