"""Configuration loading with environment variable substitution."""

import json
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from tokenkv.exceptions import ConfigError

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")

DEFAULT_REDIS_URL = "redis://127.0.0.1:6379"
DEFAULT_TOKENS_SET = "tokens"
DEFAULT_HTTP_PORT = 3000
DEFAULT_RPC_PORT = 50051


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ConfigError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"Environment variable {name} must be a boolean, got {raw!r}")


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"Environment variable {name} must be an integer, got {raw!r}") from None


class BackendConfig(BaseModel):
    """Backend connector configuration."""

    backend: str = "redis"  # redis | memory
    redis_url: str = DEFAULT_REDIS_URL
    max_connections: int = Field(default=50, gt=0)
    pool_timeout: float = Field(default=5.0, gt=0)  # Seconds to wait for a pooled connection
    operation_timeout: float = Field(default=2.0, gt=0)
    retry_attempts: int = Field(default=2, ge=1)
    retry_backoff_base: float = Field(default=0.05, ge=0)
    retry_backoff_cap: float = Field(default=1.0, ge=0)
    scan_count: int = Field(default=500, gt=0)
    scan_dedupe_window: int = Field(default=10000, gt=0)  # Keys remembered to drop SCAN repeats


class AuthConfig(BaseModel):
    """Token validation settings."""

    tokens_set: str = Field(default=DEFAULT_TOKENS_SET, min_length=1)
    # 0 disables caching; otherwise the maximum revocation latency
    cache_ttl_seconds: int = Field(default=0, ge=0)
    cache_max_size: int = Field(default=10000, gt=0)


class ServerConfig(BaseModel):
    """Protocol adapter configuration."""

    host: str = "0.0.0.0"
    http_port: int = Field(default=DEFAULT_HTTP_PORT, gt=0, lt=65536)
    rpc_port: int = Field(default=DEFAULT_RPC_PORT, gt=0, lt=65536)
    enable_http: bool = True
    enable_rpc: bool = True
    cors_origins: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"


class Config(BaseModel):
    """Main configuration for tokenkv."""

    backend: BackendConfig = Field(default_factory=BackendConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Config":
        """Load configuration from the process environment.

        Recognised variables:
            REDIS_URL, TOKENKV_BACKEND, TOKENS_SET, TOKEN_CACHE_TTL,
            HOST, HTTP_PORT, RPC_PORT (or GRPC_PORT),
            ENABLE_HTTP, ENABLE_RPC (or ENABLE_GRPC), LOG_LEVEL, LOG_FORMAT
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {"backend": {}, "auth": {}, "server": {}, "logging": {}}

        if "REDIS_URL" in env:
            data["backend"]["redis_url"] = env["REDIS_URL"]
        if "TOKENKV_BACKEND" in env:
            data["backend"]["backend"] = env["TOKENKV_BACKEND"]
        if "TOKENS_SET" in env:
            data["auth"]["tokens_set"] = env["TOKENS_SET"]
        if "TOKEN_CACHE_TTL" in env:
            data["auth"]["cache_ttl_seconds"] = _parse_int("TOKEN_CACHE_TTL", env["TOKEN_CACHE_TTL"])
        if "HOST" in env:
            data["server"]["host"] = env["HOST"]
        if "HTTP_PORT" in env:
            data["server"]["http_port"] = _parse_int("HTTP_PORT", env["HTTP_PORT"])
        for name in ("GRPC_PORT", "RPC_PORT"):
            if name in env:
                data["server"]["rpc_port"] = _parse_int(name, env[name])
        if "ENABLE_HTTP" in env:
            data["server"]["enable_http"] = _parse_bool("ENABLE_HTTP", env["ENABLE_HTTP"])
        for name in ("ENABLE_GRPC", "ENABLE_RPC"):
            if name in env:
                data["server"]["enable_rpc"] = _parse_bool(name, env[name])
        if "LOG_LEVEL" in env:
            data["logging"]["level"] = env["LOG_LEVEL"].upper()
        if "LOG_FORMAT" in env:
            data["logging"]["format"] = env["LOG_FORMAT"].lower()

        return cls.from_dict(data)
