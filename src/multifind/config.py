#  Copyright (c) 2025 Tom Villani, Ph.D.

"""Configuration discovery and loading for multifind.

Settings come from, highest priority first:

1. An explicit config file (``--config``)
2. The file named by ``MULTIFIND_CONFIG``
3. A discovered ``.multifind.toml``/``.yaml``/``.yml``/``.json``, or the
   ``[tool.multifind]`` table of a ``pyproject.toml``
4. ``MULTIFIND_*`` environment variables
5. Built-in defaults

A config file is a mapping with optional ``engine``, ``injection``,
``surface`` and ``log_store`` tables whose keys are the option field names,
plus a top-level ``log_level``.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import-not-found,unused-ignore]

import yaml

from multifind.logging_utils import validate_log_level
from multifind.options import EngineOptions, InjectionOptions, LogStoreOptions, SurfaceOptions

CONFIG_ENV_VAR = "MULTIFIND_CONFIG"
DEDICATED_CONFIG_FILENAMES = [".multifind.toml", ".multifind.yaml", ".multifind.yml", ".multifind.json"]

# Environment variable -> (section, field, converter)
ENV_SETTINGS: dict[str, tuple[str, str, type]] = {
    "MULTIFIND_MAX_TERMS": ("engine", "max_terms", int),
    "MULTIFIND_SETTLE_DELAY": ("injection", "settle_delay_seconds", float),
    "MULTIFIND_MAX_INJECTION_ATTEMPTS": ("injection", "max_injection_attempts", int),
    "MULTIFIND_DEBOUNCE": ("surface", "debounce_seconds", float),
    "MULTIFIND_LOG_MAX_ENTRIES": ("log_store", "max_entries", int),
}

_SECTIONS: dict[str, type] = {
    "engine": EngineOptions,
    "injection": InjectionOptions,
    "surface": SurfaceOptions,
    "log_store": LogStoreOptions,
}


@dataclass(frozen=True)
class MultiFindConfig:
    """Complete multifind configuration."""

    engine: EngineOptions = field(default_factory=EngineOptions)
    injection: InjectionOptions = field(default_factory=InjectionOptions)
    surface: SurfaceOptions = field(default_factory=SurfaceOptions)
    log_store: LogStoreOptions = field(default_factory=LogStoreOptions)
    log_level: str = "INFO"


def _coerce(name: str, value: Any) -> Any:
    # TOML, YAML and JSON only produce lists; option fields hold tuples and frozensets
    if name == "theme_palette" or name.endswith("_files"):
        if isinstance(value, str):
            value = [value]
        return tuple(value)
    if name == "excluded_tags":
        return frozenset(str(tag).lower() for tag in value)
    return value


def _build_section(section: str, values: Mapping[str, Any]) -> Any:
    options_cls = _SECTIONS[section]
    if not isinstance(values, Mapping):
        raise argparse.ArgumentTypeError(f"[{section}] must be a table, got {type(values).__name__}")

    known = {f.name for f in fields(options_cls)}
    kwargs: dict[str, Any] = {}
    for raw_name, value in values.items():
        name = raw_name.replace("-", "_")
        if name not in known:
            raise argparse.ArgumentTypeError(
                f"Unknown option {raw_name!r} in [{section}]. Valid options: {', '.join(sorted(known))}"
            )
        kwargs[name] = _coerce(name, value)

    try:
        return options_cls(**kwargs)
    except (TypeError, ValueError) as e:
        raise argparse.ArgumentTypeError(f"Invalid [{section}] configuration: {e}") from e


def config_from_dict(data: Mapping[str, Any]) -> MultiFindConfig:
    """Build a :class:`MultiFindConfig` from a merged configuration mapping.

    Raises
    ------
    argparse.ArgumentTypeError
        If a section or option is unknown or a value is invalid

    """
    kwargs: dict[str, Any] = {}
    for raw_key, value in data.items():
        key = raw_key.replace("-", "_")
        if key in _SECTIONS:
            kwargs[key] = _build_section(key, value)
        elif key == "log_level":
            try:
                kwargs["log_level"] = validate_log_level(str(value))
            except ValueError as e:
                raise argparse.ArgumentTypeError(str(e)) from e
        else:
            raise argparse.ArgumentTypeError(f"Unknown configuration section: {raw_key!r}")
    return MultiFindConfig(**kwargs)


def load_config_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Read ``MULTIFIND_*`` settings into a configuration mapping.

    Raises
    ------
    argparse.ArgumentTypeError
        If a variable holds a value of the wrong type

    """
    environ = os.environ if environ is None else environ
    config: Dict[str, Any] = {}
    for var, (section, name, converter) in ENV_SETTINGS.items():
        raw = environ.get(var)
        if raw is None or not raw.strip():
            continue
        try:
            value = converter(raw.strip())
        except ValueError as e:
            raise argparse.ArgumentTypeError(f"Invalid value for {var}: {raw!r}") from e
        config.setdefault(section, {})[name] = value

    log_level = environ.get("MULTIFIND_LOG_LEVEL")
    if log_level:
        config["log_level"] = log_level
    return config


def _load_pyproject_section(pyproject_path: Path) -> Dict[str, Any]:
    """Load the [tool.multifind] table from a pyproject.toml file, or an empty dict."""
    try:
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise argparse.ArgumentTypeError(f"Invalid TOML in pyproject.toml {pyproject_path}: {e}") from e
    except OSError as e:
        raise argparse.ArgumentTypeError(f"Error reading pyproject.toml {pyproject_path}: {e}") from e

    config = data.get("tool", {}).get("multifind", {})
    if not isinstance(config, dict):
        raise argparse.ArgumentTypeError(
            f"[tool.multifind] section in {pyproject_path} must be a table, got {type(config).__name__}"
        )
    return config


def _load_mapping(config_path: Path, loader: Any, kind: str) -> Dict[str, Any]:
    try:
        if kind == "TOML":
            with open(config_path, "rb") as f:
                config = loader(f)
        else:
            with open(config_path, "r", encoding="utf-8") as f:
                config = loader(f)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise argparse.ArgumentTypeError(f"Invalid {kind} in config file {config_path}: {e}") from e
    except OSError as e:
        raise argparse.ArgumentTypeError(f"Error reading {kind} config {config_path}: {e}") from e

    if config is None and kind == "YAML":
        return {}
    if not isinstance(config, dict):
        raise argparse.ArgumentTypeError(f"{kind} config file must contain a mapping, got {type(config).__name__}")
    return config


def load_config_file(config_path: Path | str) -> Dict[str, Any]:
    """Load configuration from a JSON, TOML, YAML or pyproject.toml file.

    Parameters
    ----------
    config_path : Path or str
        Path to the configuration file

    Returns
    -------
    dict
        Configuration mapping

    Raises
    ------
    argparse.ArgumentTypeError
        If the file is missing, unreadable, malformed or of an unsupported type

    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise argparse.ArgumentTypeError(f"Configuration file does not exist: {config_path}")
    if not config_path.is_file():
        raise argparse.ArgumentTypeError(f"Configuration path is not a file: {config_path}")

    ext = config_path.suffix.lower()
    if config_path.name.lower() == "pyproject.toml":
        return _load_pyproject_section(config_path)
    if ext == ".toml":
        return _load_mapping(config_path, tomllib.load, "TOML")
    if ext in (".yaml", ".yml"):
        return _load_mapping(config_path, yaml.safe_load, "YAML")
    if ext == ".json":
        return _load_mapping(config_path, json.load, "JSON")
    raise argparse.ArgumentTypeError(f"Unsupported config file format: {ext}. Use .json, .toml, or .yaml")


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``override`` into ``base``; nested tables are merged key by key."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value
    return result


def discover_config_file(start_dir: Optional[Path] = None) -> Optional[Path]:
    """Find the nearest config file from ``start_dir`` (default: cwd) up to the filesystem root.

    Dedicated ``.multifind.*`` files win over a ``pyproject.toml`` in the same
    directory, and a pyproject only counts if it has a ``[tool.multifind]``
    table. The user's home directory is checked last.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        for filename in DEDICATED_CONFIG_FILENAMES:
            candidate = current / filename
            if candidate.is_file():
                return candidate

        pyproject_path = current / "pyproject.toml"
        if pyproject_path.is_file():
            try:
                if _load_pyproject_section(pyproject_path):
                    return pyproject_path
            except argparse.ArgumentTypeError:
                # Unparseable pyproject; keep searching upward
                pass

        if current.parent == current:
            break
        current = current.parent

    home = Path.home()
    for filename in DEDICATED_CONFIG_FILENAMES:
        candidate = home / filename
        if candidate.is_file():
            return candidate
    return None


def load_config_with_priority(
    explicit_path: Optional[str] = None,
    env_var_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    discover: bool = True,
) -> MultiFindConfig:
    """Resolve the effective configuration from every source.

    Parameters
    ----------
    explicit_path : str, optional
        Path from ``--config``
    env_var_path : str, optional
        Path from ``MULTIFIND_CONFIG``; read from ``environ`` when omitted
    environ : Mapping, optional
        Environment to read; defaults to ``os.environ``
    discover : bool, default True
        Search for a config file when no path is given

    Returns
    -------
    MultiFindConfig

    Raises
    ------
    argparse.ArgumentTypeError
        If a named config file cannot be loaded or any value is invalid

    """
    environ = os.environ if environ is None else environ
    merged = load_config_from_env(environ)

    if env_var_path is None:
        env_var_path = environ.get(CONFIG_ENV_VAR) or None

    file_config: Dict[str, Any] = {}
    if explicit_path:
        file_config = load_config_file(explicit_path)
    elif env_var_path:
        file_config = load_config_file(env_var_path)
    elif discover:
        discovered = discover_config_file()
        if discovered is not None:
            file_config = load_config_file(discovered)

    return config_from_dict(merge_configs(merged, file_config))


__all__ = [
    "MultiFindConfig",
    "config_from_dict",
    "load_config_from_env",
    "load_config_file",
    "merge_configs",
    "discover_config_file",
    "load_config_with_priority",
]
