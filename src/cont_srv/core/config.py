"""Load server configuration from CLI values and a TOML file."""

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cont_srv.core.errors import ConfigError
from cont_srv.models.config import ServerConfig

log = logging.getLogger(__name__)

FILE_KEYS = (
    "address",
    "port",
    "root_dir",
    "cert_path",
    "key_path",
    "user_name",
    "password_hash",
    "workers",
    "book_cache_size",
)


def read_config_file(path: Path) -> dict[str, Any]:
    """Read the recognized keys from a TOML config file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    unknown = sorted(set(data) - set(FILE_KEYS))
    if unknown:
        log.warning("Ignoring unknown config keys in %s: %s", path, ", ".join(unknown))
    return {key: data[key] for key in FILE_KEYS if key in data}


def load_config(config_file: Path | None = None, **cli_values: Any) -> ServerConfig:
    """Merge CLI values with a config file; keys set in the file win.

    Raises:
        ConfigError: If the file cannot be read or the result is invalid
    """
    values = {key: value for key, value in cli_values.items() if value is not None}
    if config_file is not None:
        values.update(read_config_file(config_file))

    try:
        return ServerConfig(**values)
    except ValidationError as e:
        messages = "; ".join(_format_error(err) for err in e.errors())
        raise ConfigError(messages) from e


def _format_error(err: dict) -> str:
    location = ".".join(str(part) for part in err.get("loc", ()))
    message = err.get("msg", "invalid value")
    message = message.removeprefix("Value error, ")
    return f"{location}: {message}" if location else message
