from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DEFAULT_RETRYABLE_PATTERNS,
    MAX_RETRIES_RANGE,
    RETRY_DELAY_RANGE,
    BatchConfig,
    Credential,
    DirectoryConfig,
)

"""Config loader.

Responsibilities:
- Load YAML (default ``config/batch.yml``)
- Merge CLI overrides on top of the file values
- Validate the merged document against batch_config_schema.json
- Resolve the credential: environment (XDM_USERNAME / XDM_PASSWORD, usually
  populated from .env) first, then the ``credential`` section of the file
- Apply defaults and build the typed BatchConfig
"""

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ENV_PASSWORD",
    "ENV_USERNAME",
    "SCHEMA_PATH",
    "ConfigError",
    "load_config",
]

SCHEMA_PATH = Path(__file__).with_name("batch_config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/batch.yml")

ENV_USERNAME = "XDM_USERNAME"
ENV_PASSWORD = "XDM_PASSWORD"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing/invalid, or the data violates it
            (missing keys, wrong types, out-of-range retry settings, extra keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path)
        prefix = f"{location}: " if location else ""
        raise ConfigError(f"config validation failed: {prefix}{e.message}") from e


def _check_range(name: str, value: int, bounds: tuple[int, int]) -> None:
    low, high = bounds
    if not low <= value <= high:
        raise ConfigError(f"{name} must be between {low} and {high} (got {value})")


def _resolve_credential(data: dict[str, Any], env: Mapping[str, str]) -> Credential:
    raw = data.get("credential") or {}
    username = env.get(ENV_USERNAME) or raw.get("username") or ""
    password = env.get(ENV_PASSWORD) or raw.get("password") or ""
    if not username.strip() or not password:
        raise ConfigError(
            f"credential not configured: set {ENV_USERNAME}/{ENV_PASSWORD} "
            "(environment or .env) or the credential section of the config file"
        )
    return Credential(username=username.strip(), password=password)


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return data


def load_config(
    path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> BatchConfig:
    """Load, merge and validate the batch configuration.

    Args:
        path: YAML file. None means "no file": overrides must then carry at
            least input_path and output_dir.
        overrides: values that win over the file (CLI flags); None values are ignored
        env: environment mapping for credential lookup (defaults to os.environ)
    """
    data: dict[str, Any] = _read_yaml(path) if path is not None else {}
    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    _validate_config_schema(data)

    max_retries = int(data.get("max_retries", 3))
    retry_delay = int(data.get("retry_delay_seconds", 5))
    # Schema enforces these too; kept explicit for callers bypassing the schema file
    _check_range("max_retries", max_retries, MAX_RETRIES_RANGE)
    _check_range("retry_delay_seconds", retry_delay, RETRY_DELAY_RANGE)

    dir_raw = data.get("directory") or {}
    directory = DirectoryConfig(
        port=int(dir_raw.get("port", 636 if dir_raw.get("use_ssl") else 389)),
        use_ssl=bool(dir_raw.get("use_ssl", False)),
        connect_timeout=int(dir_raw.get("connect_timeout", 10)),
        domain_controllers={
            str(k).lower(): str(v) for k, v in (dir_raw.get("domain_controllers") or {}).items()
        },
    )

    patterns = data.get("retryable_error_patterns")
    return BatchConfig(
        input_path=Path(data["input_path"]),
        output_dir=Path(data["output_dir"]),
        credential=_resolve_credential(data, os.environ if env is None else env),
        test_mode=bool(data.get("test_mode", False)),
        max_retries=max_retries,
        retry_delay_seconds=retry_delay,
        exponential_backoff=bool(data.get("exponential_backoff", False)),
        validate_credentials_first=bool(data.get("validate_credentials_first", False)),
        test_connectivity_first=bool(data.get("test_connectivity_first", False)),
        connectivity_timeout_seconds=int(data.get("connectivity_timeout_seconds", 5)),
        retryable_error_patterns=(
            tuple(patterns) if patterns is not None else DEFAULT_RETRYABLE_PATTERNS
        ),
        verify_membership=bool(data.get("verify_membership", False)),
        assume_yes=bool(data.get("assume_yes", False)),
        directory=directory,
    )
