"""Configuration loading from agentpod.yaml with env var interpolation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} patterns with environment variable values."""
    return re.sub(
        r"\$\{(\w+)\}",
        lambda m: os.environ.get(m.group(1), m.group(0)),
        value,
    )


def _walk_interpolate(obj):
    """Recursively interpolate env vars in a config dict."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_interpolate(v) for v in obj]
    return obj


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8765
    reload: bool = False


class DatabaseConfig(BaseModel):
    url: str = "sqlite+aiosqlite:///agentpod.db"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    dir: str = "./logs"


class ProviderConfig(BaseModel):
    provider: str
    config: dict = Field(default_factory=dict)


def default_providers() -> dict[str, ProviderConfig]:
    return {
        "runtime": ProviderConfig(provider="docker"),
        "git": ProviderConfig(provider="filesystem"),
    }


class SandboxSettings(BaseModel):
    """Knobs the orchestrator uses when provisioning sandboxes."""

    name_max_length: int = 100
    image_template: str = "codeopen-{flavor}:latest"
    workdir: str = "/workspace"
    # Placeholders: {service}, {slug}, {id}
    url_template: str = "http://{service}-{slug}.localhost"
    default_addons: list[str] = Field(default_factory=lambda: ["code-server"])
    slug_retry_limit: int = 5
    container_prefix: str = "agentpod"


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    providers: dict[str, ProviderConfig] = Field(default_factory=default_providers)
    sandbox: SandboxSettings = Field(default_factory=SandboxSettings)


def load_config(path: str | Path = "agentpod.yaml") -> AppConfig:
    """Load config from YAML file with env var interpolation."""
    path = Path(path)
    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _walk_interpolate(raw)
    else:
        raw = {}
    return AppConfig(**raw)
