"""Shared fixtures: a fake OpenAI API behind httpx.MockTransport."""

import json

import httpx
import pytest

from keyprobe.upstream import OpenAIClient


class FakeOpenAI:
    """Records requests and answers with a canned response per path."""

    def __init__(self):
        self.requests = []
        self.routes = {}
        self.failure = None
        self.redirects = {}

    def respond(self, path: str, status: int, body=None, raw: bytes = None):
        self.routes[path] = (status, body, raw)

    def redirect(self, path: str, location: str, status: int = 307):
        self.redirects[path] = (status, location)

    def fail_with(self, exc_type=httpx.ConnectError, message="connection refused"):
        self.failure = (exc_type, message)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failure:
            exc_type, message = self.failure
            raise exc_type(message, request=request)

        if request.url.path in self.redirects:
            status, location = self.redirects[request.url.path]
            return httpx.Response(status, headers={"Location": location})

        status, body, raw = self.routes.get(request.url.path, (404, {"error": {"message": "not found"}}, None))
        if raw is not None:
            return httpx.Response(status, content=raw)
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def last_json(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def openai_client(fake_openai):
    return OpenAIClient(
        base_url="https://api.openai.test/v1",
        transport=httpx.MockTransport(fake_openai),
    )
