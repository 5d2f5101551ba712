"""
OpenAI REST client

Thin async wrapper over httpx for the two endpoints the proxy calls.
The caller's key is sent as a bearer token; nothing is retried.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional, Any, Dict

import httpx

from .config import DEFAULT_BASE_URL

logger = logging.getLogger("keyprobe.upstream")

CHAT_MODEL = "gpt-3.5-turbo"
CHAT_PROMPT = "Hi, how are you?"
CHAT_MAX_TOKENS = 150


class UpstreamUnavailable(Exception):
    """The request could not be completed (DNS, refused, timeout, ...)."""

    def __init__(self, cause: str):
        super().__init__(cause)
        self.cause = cause


@dataclass
class UpstreamReply:
    """Raw upstream reply: status code plus the parsed JSON body, if any."""
    status_code: int
    body: Any = None
    body_valid: bool = True


def chat_probe_payload() -> Dict[str, Any]:
    """Fixed single-turn chat completion request."""
    return {
        "model": CHAT_MODEL,
        "messages": [
            {"role": "user", "content": CHAT_PROMPT},
        ],
        "max_tokens": CHAT_MAX_TOKENS,
    }


class OpenAIClient:
    """
    Async client for the OpenAI model-listing and chat-completion endpoints.

    One instance (and one connection pool) is shared by all requests; it is
    owned by the app lifespan and closed on shutdown.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")

        kwargs: Dict[str, Any] = {"follow_redirects": True}
        if timeout is not None:
            kwargs["timeout"] = timeout
        if transport is not None:
            kwargs["transport"] = transport

        self._http = httpx.AsyncClient(**kwargs)

    @staticmethod
    def _headers(key: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    async def _send(self, method: str, path: str, key: str, payload: Optional[Dict] = None) -> UpstreamReply:
        url = f"{self.base_url}{path}"
        try:
            response = await self._http.request(
                method,
                url,
                headers=self._headers(key),
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.warning(
                "upstream request failed",
                extra={"method": method, "url": url, "error": repr(e)},
            )
            raise UpstreamUnavailable(str(e) or e.__class__.__name__) from e

        try:
            body = response.json()
            body_valid = True
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
            body_valid = False

        logger.debug(
            "upstream response",
            extra={"method": method, "url": url, "status": response.status_code},
        )
        return UpstreamReply(status_code=response.status_code, body=body, body_valid=body_valid)

    async def list_models(self, key: str) -> UpstreamReply:
        """GET /models"""
        return await self._send("GET", "/models", key)

    async def create_chat_completion(self, key: str) -> UpstreamReply:
        """POST /chat/completions with the fixed probe prompt."""
        return await self._send("POST", "/chat/completions", key, chat_probe_payload())

    @property
    def is_closed(self) -> bool:
        return self._http.is_closed

    async def aclose(self):
        await self._http.aclose()
