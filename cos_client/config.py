"""Configuration loading for the object storage client.

Supports two configuration sources:
1. Environment variables (for CI/CD) - take priority
2. A JSON config file (for local development)

Environment Variables:
    COS_ENDPOINT=s3.us-south.cloud-object-storage.appdomain.cloud
    COS_AUTH_MODE=bearer|hmac            (default: bearer)
    IBMCLOUD_API_KEY=xxx                 (bearer mode, exchanged for IAM tokens)
    COS_TOKEN=xxx                        (bearer mode, pre-issued token)
    COS_ACCESS_KEY_ID=xxx                (hmac mode)
    COS_SECRET_ACCESS_KEY=xxx            (hmac mode)
    COS_INSTANCE_ID=crn:...              (optional, used by list buckets)
    COS_REGION=us-standard               (optional)
    COS_SERVICE=s3                       (optional)
    COS_CHUNK_SIZE=5242880               (optional)
    COS_MAX_WORKERS=1                    (optional)
    COS_TIMEOUT=60                       (optional)

The JSON file uses the same names in lower case without the prefix,
e.g. {"endpoint": "...", "auth_mode": "hmac", "access_key_id": "..."}.
"""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from cos_client.auth import (
    AccessKeyCredentials,
    Authorizer,
    BearerAuthorizer,
    HmacAuthorizer,
    IamTokenProvider,
    StaticTokenProvider,
)
from cos_client.client import CosClient
from cos_client.multipart import DEFAULT_CHUNK_SIZE
from cos_client.signing import DEFAULT_REGION, DEFAULT_SERVICE
from cos_client.transport import DEFAULT_TIMEOUT, HttpTransport


class ConfigError(Exception):
    """Raised when configuration loading fails."""

    pass


AUTH_MODES = ("bearer", "hmac")

# Environment variable for each ClientConfig field
ENV_VARS = {
    "endpoint": "COS_ENDPOINT",
    "auth_mode": "COS_AUTH_MODE",
    "api_key": "IBMCLOUD_API_KEY",
    "token": "COS_TOKEN",
    "access_key_id": "COS_ACCESS_KEY_ID",
    "secret_key": "COS_SECRET_ACCESS_KEY",
    "instance_id": "COS_INSTANCE_ID",
    "region": "COS_REGION",
    "service": "COS_SERVICE",
    "chunk_size": "COS_CHUNK_SIZE",
    "max_workers": "COS_MAX_WORKERS",
    "timeout": "COS_TIMEOUT",
}

INT_FIELDS = ("chunk_size", "max_workers")
FLOAT_FIELDS = ("timeout",)


@dataclass
class ClientConfig:
    """Settings needed to build a CosClient."""

    endpoint: str
    auth_mode: str = "bearer"
    api_key: Optional[str] = None
    token: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_key: Optional[str] = None
    instance_id: Optional[str] = None
    region: str = DEFAULT_REGION
    service: str = DEFAULT_SERVICE
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_workers: int = 1
    timeout: float = DEFAULT_TIMEOUT

    def validate(self) -> None:
        """Check the settings are complete for the chosen auth mode.

        Raises:
            ConfigError: On a missing or invalid setting.
        """
        if not self.endpoint:
            raise ConfigError("Missing required setting 'endpoint'")

        if self.auth_mode not in AUTH_MODES:
            raise ConfigError(
                f"Invalid auth_mode '{self.auth_mode}'. Expected one of: {', '.join(AUTH_MODES)}"
            )

        if self.auth_mode == "bearer" and not (self.api_key or self.token):
            raise ConfigError("Bearer mode requires 'api_key' or 'token'")

        if self.auth_mode == "hmac":
            for name in ("access_key_id", "secret_key"):
                if not getattr(self, name):
                    raise ConfigError(f"HMAC mode requires '{name}'")

        if self.chunk_size <= 0:
            raise ConfigError(f"chunk_size must be positive, got {self.chunk_size}")

        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1, got {self.max_workers}")


def _coerce(values: dict[str, object]) -> dict[str, object]:
    """Convert numeric settings given as strings."""
    coerced = dict(values)
    for name, value in values.items():
        try:
            if name in INT_FIELDS:
                coerced[name] = int(value)
            elif name in FLOAT_FIELDS:
                coerced[name] = float(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for '{name}': {value!r}") from e
    return coerced


def load_from_json(config_path: str) -> dict[str, object]:
    """Load settings from a JSON file.

    Args:
        config_path: Path to the config file.

    Returns:
        The settings found in the file.

    Raises:
        ConfigError: If the file doesn't exist, contains invalid JSON,
                    or has unknown settings.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object")

    known = {f.name for f in fields(ClientConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown setting(s) in config file: {', '.join(unknown)}")

    return data


def load_from_env() -> dict[str, object]:
    """Load settings from COS_* environment variables.

    Returns:
        The settings that are set (non-empty) in the environment.
    """
    values = {}
    for name, env_var in ENV_VARS.items():
        value = os.environ.get(env_var)
        if value:
            values[name] = value
    return values


def load_config(
    config_path: Optional[str] = None,
    overrides: Optional[dict[str, object]] = None,
) -> ClientConfig:
    """Load client configuration with environment priority.

    Priority order:
    1. Explicit overrides (e.g. command line options)
    2. Environment variables
    3. Config file, if given and present

    Args:
        config_path: Path to a JSON config file (optional).
        overrides: Settings that win over every other source.

    Returns:
        A validated ClientConfig.

    Raises:
        ConfigError: If settings are missing or invalid.
    """
    values: dict[str, object] = {}

    if config_path and Path(config_path).exists():
        values.update(load_from_json(config_path))

    values.update(load_from_env())
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})

    if "endpoint" not in values:
        raise ConfigError(
            "No endpoint configured. Set COS_ENDPOINT or add 'endpoint' to the config file."
        )

    config = ClientConfig(**_coerce(values))
    config.validate()
    return config


def build_authorizer(config: ClientConfig) -> Authorizer:
    """Build the Authorizer for the configured auth mode."""
    if config.auth_mode == "hmac":
        return HmacAuthorizer(
            config.endpoint,
            AccessKeyCredentials(config.access_key_id, config.secret_key),
            region=config.region,
            service=config.service,
        )

    if config.token:
        provider = StaticTokenProvider(config.token)
    else:
        provider = IamTokenProvider(config.api_key)
    return BearerAuthorizer(config.endpoint, provider)


def build_client(config: ClientConfig, transport: Optional[HttpTransport] = None) -> CosClient:
    """Build a CosClient from configuration.

    Args:
        config: Validated configuration.
        transport: Transport to use; a new one with ``config.timeout`` if omitted.
    """
    return CosClient(
        build_authorizer(config),
        transport=transport or HttpTransport(timeout=config.timeout),
        instance_id=config.instance_id,
    )
