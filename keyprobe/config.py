"""
Configuration management for keyprobe.

Supports YAML configuration with environment variable expansion.
"""

import os
import re
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Any

import yaml


DEFAULT_PORT = 5500
DEFAULT_BASE_URL = "https://api.openai.com/v1"


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT


@dataclass
class UpstreamConfig:
    """OpenAI API connection settings."""
    base_url: str = DEFAULT_BASE_URL
    # None keeps the httpx default timeout
    timeout: Optional[float] = None


@dataclass
class LoggingConfig:
    """Log output configuration."""
    level: str = "INFO"
    format: str = "text"  # text | json


@dataclass
class ProxyConfig:
    """Root configuration for keyprobe."""
    server: ServerConfig = field(default_factory=ServerConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in config values."""
    if isinstance(value, str):
        # Match ${VAR} or $VAR patterns
        pattern = r'\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)'

        def replace(match):
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(v) for v in value]
    return value


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def load_config(path: str | Path) -> ProxyConfig:
    """Load configuration from YAML file."""
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    # Expand environment variables
    data = expand_env_vars(raw)

    server_data = data.get("server") or {}
    server = ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", DEFAULT_PORT)),
    )

    upstream_data = data.get("upstream") or {}
    upstream = UpstreamConfig(
        base_url=str(upstream_data.get("base_url", DEFAULT_BASE_URL)).rstrip("/"),
        timeout=_optional_float(upstream_data.get("timeout")),
    )

    logging_data = data.get("logging") or {}
    log_config = LoggingConfig(
        level=str(logging_data.get("level", "INFO")).upper(),
        format=logging_data.get("format", "text"),
    )

    return ProxyConfig(
        server=server,
        upstream=upstream,
        logging=log_config,
    )


def apply_env_overrides(config: ProxyConfig) -> ProxyConfig:
    """Apply PORT / HOST / KEYPROBE_LOG_LEVEL from the environment."""
    port = os.environ.get("PORT")
    if port:
        config.server.port = int(port)

    host = os.environ.get("HOST")
    if host:
        config.server.host = host

    level = os.environ.get("KEYPROBE_LOG_LEVEL")
    if level:
        config.logging.level = level.upper()

    return config


def create_default_config() -> str:
    """Generate default configuration YAML."""
    return """# keyprobe configuration

server:
  host: 0.0.0.0
  port: 5500  # PORT env var overrides

# OpenAI REST API
upstream:
  base_url: https://api.openai.com/v1
  # timeout: 30  # seconds, httpx default when unset

logging:
  level: INFO
  format: text  # text | json
"""
