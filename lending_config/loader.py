"""
Configuration Loader (``lending_config.loader``).

Responsibility
--------------
Loads the engine YAML file and parses it into the frozen dataclasses of
``lending_config.schema``.  The only environment variable honoured is
``DATABASE_URL``, which replaces the store URL.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Setting values must be strings or integers.  Unquoted YAML decimals
  arrive as floats and are refused so that no rate passes through a
  binary float.
* ``compute_checksum`` is a deterministic SHA-256 over the parsed file.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from lending_config.schema import EngineSettings, RetrySettings, StoreSettings
from lending_kernel.services.system_settings import SettingDefault

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV = "DATABASE_URL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of the parsed configuration."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _decimal_string(key: str, value: Any) -> str:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(
            f"Setting {key!r} must be a quoted decimal string, got {value!r}"
        )
    text = str(value).strip()
    try:
        Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Setting {key!r} is not a decimal: {value!r}") from exc
    return text


def parse_store(data: dict[str, Any]) -> StoreSettings:
    return StoreSettings(
        database_url=data["database_url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
        pool_recycle=int(data.get("pool_recycle", 1800)),
    )


def parse_retry(data: dict[str, Any]) -> RetrySettings:
    max_attempts = int(data.get("max_attempts", 3))
    if max_attempts < 1:
        raise ValueError(f"retry.max_attempts must be >= 1, got {max_attempts}")
    return RetrySettings(
        max_attempts=max_attempts,
        backoff_seconds=Decimal(_decimal_string("retry.backoff_seconds", data.get("backoff_seconds", "0"))),
    )


def parse_setting(data: dict[str, Any]) -> SettingDefault:
    key = data["key"]
    value_type = data.get("value_type", "number")
    value = data["value"]
    if value_type == "number":
        value = _decimal_string(key, value)
    return SettingDefault(
        key=key,
        value=str(value),
        category=data["category"],
        description=data.get("description"),
        value_type=value_type,
    )


def parse_engine_settings(
    data: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Build EngineSettings from a parsed YAML dict plus the environment."""
    store_data = dict(data["store"])
    if environ and environ.get(DATABASE_URL_ENV):
        store_data["database_url"] = environ[DATABASE_URL_ENV]

    settings = tuple(parse_setting(s) for s in data.get("settings", []))
    keys = [s.key for s in settings]
    duplicates = sorted({k for k in keys if keys.count(k) > 1})
    if duplicates:
        raise ValueError(f"Duplicate setting keys: {duplicates}")

    return EngineSettings(
        store=parse_store(store_data),
        retry=parse_retry(data.get("retry", {})),
        log_level=str(data.get("logging", {}).get("level", "INFO")).upper(),
        settings=settings,
        checksum=compute_checksum(data),
    )


def load_engine_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Load and parse the engine configuration file."""
    return parse_engine_settings(load_yaml_file(path or DEFAULT_CONFIG_PATH), environ)
