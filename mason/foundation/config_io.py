from __future__ import annotations

import json
import os
from collections.abc import Mapping
from typing import Any

import yaml

from mason.foundation.errors import ConfigError, ParseError

USER_CONFIG_ENV_VAR = "MASON_USER_CONFIG"
USER_CONFIG_FILENAME = ".mason.yaml"


def user_config_path(env_var: str = USER_CONFIG_ENV_VAR) -> str:
    """Per-operator config location: env override, else ~/.mason.yaml."""

    raw_env = os.environ.get(env_var, "").strip()
    if raw_env:
        return os.path.abspath(os.path.expandvars(os.path.expanduser(raw_env)))
    return os.path.join(os.path.expanduser("~"), USER_CONFIG_FILENAME)


def load_yaml_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except FileNotFoundError:
        raise
    except yaml.YAMLError as exc:
        raise ParseError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ParseError(f"Config file must contain a YAML mapping: {path}")
    return dict(payload)


def load_json_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except FileNotFoundError:
        raise
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise ParseError(f"File must contain a JSON object: {path}")
    return dict(payload)


def parse_bool(value: Any, path: str) -> bool:
    """
    Strict boolean parsing to avoid bool('false') footguns.

    Accepts True/False, 0/1 and the strings true/false/1/0/yes/no
    (case-insensitive). Raises ConfigError for anything else.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ConfigError(f"Invalid boolean for {path}: {value!r}")
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes"}:
            return True
        if normalized in {"false", "0", "no"}:
            return False
    raise ConfigError(f"Invalid boolean for {path}: {value!r}")


def optional_str(payload: Mapping[str, Any], path: str) -> str | None:
    cur: Any = payload
    for part in path.split("."):
        if not isinstance(cur, Mapping) or part not in cur:
            return None
        cur = cur[part]
    if cur is None:
        return None
    if not isinstance(cur, str):
        raise ConfigError(f"Invalid config type for {path}: expected string")
    if not cur.strip():
        return None
    return cur.strip()


def get_mapping(payload: Mapping[str, Any], path: str) -> Mapping[str, Any]:
    cur: Any = payload
    for part in path.split("."):
        if not isinstance(cur, Mapping):
            return {}
        cur = cur.get(part)
    if cur is None:
        return {}
    if not isinstance(cur, Mapping):
        raise ConfigError(f"Invalid config type for {path}: expected mapping")
    return cur


def collect_unknown_keys(mapping: Any, schema: Mapping[str, Any], *, prefix: str = "") -> list[str]:
    """List dotted keys present in `mapping` but absent from `schema`."""

    if not isinstance(mapping, Mapping):
        return []
    unknown: list[str] = []
    for key, value in mapping.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if key not in schema:
            unknown.append(dotted)
            continue
        subschema = schema.get(key)
        if isinstance(subschema, Mapping):
            unknown.extend(collect_unknown_keys(value, subschema, prefix=dotted))
    return sorted(unknown)
