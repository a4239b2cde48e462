from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

# Environment variable names for secrets
ENV_ACCESS_TOKEN = "MESSENGERBOT_ACCESS_TOKEN"
ENV_VERIFY_TOKEN = "MESSENGERBOT_VERIFY_TOKEN"
ENV_APP_SECRET = "MESSENGERBOT_APP_SECRET"

LOCAL_CONFIG_NAME = Path(".messengerbot") / "messengerbot.toml"
HOME_CONFIG_PATH = Path.home() / ".messengerbot" / "messengerbot.toml"

DEFAULT_API_VERSION = "v18.0"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_SESSION_FILE = "sessions.json"
SESSION_KINDS = ("memory", "file")


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class BotConfig:
    access_token: str
    verify_token: str
    app_secret: str
    api_version: str = DEFAULT_API_VERSION
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    session_kind: str = "memory"
    session_path: Path = Path(DEFAULT_SESSION_FILE)


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config_file(path: str | Path | None = None) -> tuple[dict, Path | None]:
    """Return the raw config mapping and the file it came from.

    Without an explicit path the local and home candidates are tried in
    order; when neither exists an empty mapping is returned so that
    environment variables alone can configure the bot.
    """
    if path:
        cfg_path = Path(path).expanduser()
        return _read_config(cfg_path), cfg_path

    for candidate in _config_candidates():
        if candidate.is_file():
            return _read_config(candidate), candidate
    return {}, None


def _describe(config_path: Path | None) -> str:
    return str(config_path) if config_path is not None else "the config file"


def get_secret(
    config: dict, config_path: Path | None, *, key: str, env_var: str
) -> str:
    """Get a credential from the environment or the config file.

    The environment variable takes precedence over the config file.
    """
    env_value = os.environ.get(env_var)
    if env_value and env_value.strip():
        return env_value.strip()

    try:
        value = config[key]
    except KeyError:
        raise ConfigError(
            f"Missing {key}. Set {env_var} environment variable "
            f"or add `{key}` to {_describe(config_path)}."
        ) from None

    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"Invalid `{key}` in {_describe(config_path)}; expected a non-empty string."
        )
    return value.strip()


def _get_str(config: dict, key: str, default: str, config_path: Path | None) -> str:
    value = config.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"Invalid `{key}` in {_describe(config_path)}; expected a non-empty string."
        )
    return value.strip()


def _get_port(config: dict, config_path: Path | None) -> int:
    value = config.get("port", DEFAULT_PORT)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Invalid `port` in {_describe(config_path)}; expected an integer.")
    if not 0 < value < 65536:
        raise ConfigError(
            f"Invalid `port` in {_describe(config_path)}; expected 1-65535, got {value}."
        )
    return value


def _get_sessions(config: dict, config_path: Path | None) -> tuple[str, Path]:
    section = config.get("sessions", {})
    if not isinstance(section, dict):
        raise ConfigError(f"Invalid `sessions` in {_describe(config_path)}; expected a table.")
    kind = section.get("kind", "memory")
    if kind not in SESSION_KINDS:
        raise ConfigError(
            f"Invalid `sessions.kind` in {_describe(config_path)}; "
            f"expected one of {', '.join(SESSION_KINDS)}."
        )
    raw_path = section.get("path", DEFAULT_SESSION_FILE)
    if not isinstance(raw_path, str) or not raw_path.strip():
        raise ConfigError(
            f"Invalid `sessions.path` in {_describe(config_path)}; expected a non-empty string."
        )
    return kind, Path(raw_path).expanduser()


def server_address(config: dict, config_path: Path | None = None) -> tuple[str, int]:
    return (
        _get_str(config, "host", DEFAULT_HOST, config_path),
        _get_port(config, config_path),
    )


def parse_config(config: dict, config_path: Path | None = None) -> BotConfig:
    session_kind, session_path = _get_sessions(config, config_path)
    return BotConfig(
        access_token=get_secret(
            config, config_path, key="access_token", env_var=ENV_ACCESS_TOKEN
        ),
        verify_token=get_secret(
            config, config_path, key="verify_token", env_var=ENV_VERIFY_TOKEN
        ),
        app_secret=get_secret(
            config, config_path, key="app_secret", env_var=ENV_APP_SECRET
        ),
        api_version=_get_str(config, "api_version", DEFAULT_API_VERSION, config_path),
        host=_get_str(config, "host", DEFAULT_HOST, config_path),
        port=_get_port(config, config_path),
        session_kind=session_kind,
        session_path=session_path,
    )


def load_config(path: str | Path | None = None) -> BotConfig:
    config, config_path = load_config_file(path)
    return parse_config(config, config_path)
