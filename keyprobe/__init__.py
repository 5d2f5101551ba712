"""
keyprobe - OpenAI API Key Checker

Small proxy that validates an OpenAI API key and probes chat completions:
1. Key check - GET /v1/models with the caller's key
2. Chat probe - one fixed chat completion with the caller's key

Upstream responses are normalised into friendly JSON errors.
"""

__version__ = "0.1.0"

from .config import ProxyConfig, load_config
from .server import create_app, ProxyServer

__all__ = [
    "__version__",
    "ProxyConfig",
    "load_config",
    "create_app",
    "ProxyServer",
]
