"""
Configuration management for ftag.

Settings come from a TOML file, then environment variables, then command
line options, each overriding the one before.

    [config]
    version = 1

    [store]
    filename = ".ftagdb"   # store file searched for upward from the cwd
    directory = ""         # when set, use the store in this directory

    [display]
    show_hidden = false    # include dot-prefixed files and tags
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import tomli_w

from .paths import DEFAULT_STORE_FILENAME

CONFIG_FILENAME = "config.toml"
CONFIG_VERSION = 1

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


class ConfigError(ValueError):
    """Config file is malformed or from a newer version."""


def get_config_path() -> Path:
    """Resolve the config file location (FTAG_CONFIG, then XDG, then ~/.config)."""
    explicit = os.environ.get("FTAG_CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "ftag" / CONFIG_FILENAME


@dataclass
class FtagConfig:
    """Complete ftag configuration."""
    path: Path = field(default_factory=get_config_path)
    version: int = CONFIG_VERSION
    store_filename: str = DEFAULT_STORE_FILENAME
    store_directory: Optional[Path] = None
    show_hidden: bool = False

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.path.exists()


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _bool_setting(value, key: str) -> bool:
    """A TOML boolean, or one of the strings FTAG_SHOW_HIDDEN accepts."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_VALUES or word in _FALSE_VALUES:
            return word in _TRUE_VALUES
    raise ConfigError(f"{key} must be true or false, not {value!r}")


def load_config(path: Optional[Path] = None) -> FtagConfig:
    """
    Load configuration from a TOML file.

    A missing file gives the defaults.

    Raises:
        ConfigError: If the file is not valid TOML or its version is newer
    """
    config_path = path if path is not None else get_config_path()
    if not config_path.exists():
        return FtagConfig(path=config_path)

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config {config_path}: {e}") from e

    version = data.get("config", {}).get("version", CONFIG_VERSION)
    if version > CONFIG_VERSION:
        raise ConfigError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    store = data.get("store", {})
    display = data.get("display", {})
    directory = store.get("directory") or None

    return FtagConfig(
        path=config_path,
        version=version,
        store_filename=store.get("filename") or DEFAULT_STORE_FILENAME,
        store_directory=Path(directory).expanduser() if directory else None,
        show_hidden=_bool_setting(display.get("show_hidden", False), "display.show_hidden"),
    )


def apply_env_overrides(config: FtagConfig) -> FtagConfig:
    """Override config values from FTAG_DB, FTAG_DIR and FTAG_SHOW_HIDDEN."""
    filename = os.environ.get("FTAG_DB")
    if filename:
        config.store_filename = filename
    directory = os.environ.get("FTAG_DIR")
    if directory:
        config.store_directory = Path(directory).expanduser()
    show_hidden = os.environ.get("FTAG_SHOW_HIDDEN")
    if show_hidden is not None:
        config.show_hidden = _parse_bool(show_hidden)
    return config


def save_config(config: FtagConfig) -> None:
    """
    Save configuration to its file.

    Creates the parent directory if it doesn't exist.
    """
    config.path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "config": {"version": config.version},
        "store": {
            "filename": config.store_filename,
            "directory": str(config.store_directory) if config.store_directory else "",
        },
        "display": {"show_hidden": config.show_hidden},
    }

    with open(config.path, "wb") as f:
        tomli_w.dump(data, f)


def resolve_config(path: Optional[Path] = None) -> FtagConfig:
    """
    Load the config file and apply environment overrides.

    This is the main entry point for config management.
    """
    return apply_env_overrides(load_config(path))
