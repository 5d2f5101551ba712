"""
keyprobe Server

FastAPI application exposing the key check and chat probe, plus the
landing page.
"""

import time
import logging
from pathlib import Path
from typing import Optional, Any
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, HTMLResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.exception_handlers import http_exception_handler
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel, ConfigDict

from . import __version__
from .config import ProxyConfig, load_config, apply_env_overrides
from .classifier import ProxyResponse
from .logs import configure_logging, get_logger
from .service import check_key, probe_chat
from .upstream import OpenAIClient

STATIC_DIR = Path(__file__).parent / "static"
INDEX_PAGE = STATIC_DIR / "index.html"


# =============================================================================
# Pydantic Models
# =============================================================================

class KeyRequest(BaseModel):
    """Body of POST /api/check-key and POST /api/chat."""
    model_config = ConfigDict(extra="ignore")

    # Typed as Any so non-string keys reach the credential validator
    key: Optional[Any] = None


async def read_key(request: Request) -> Any:
    """Extract ``key`` from a JSON body; anything unparseable counts as missing."""
    try:
        payload = await request.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return KeyRequest.model_validate(payload).key


def to_json(response: ProxyResponse) -> JSONResponse:
    return JSONResponse(status_code=response.status_code, content=response.body)


def method_not_allowed() -> JSONResponse:
    return JSONResponse(status_code=405, content={"error": "Method not allowed"})


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    config: ProxyConfig = None,
    client: OpenAIClient = None,
    logger: logging.Logger = None,
) -> FastAPI:
    """
    Create FastAPI application.

    ``client`` and ``logger`` can be injected; otherwise they are built from
    ``config``. An injected client is not closed on shutdown.
    """
    config = config or ProxyConfig()
    logger = logger or get_logger("server")
    owns_client = client is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        if app.state.client is None:
            app.state.client = OpenAIClient(
                base_url=config.upstream.base_url,
                timeout=config.upstream.timeout,
            )
        logger.info(
            "keyprobe starting",
            extra={"version": __version__, "upstream": config.upstream.base_url},
        )

        yield

        logger.info("keyprobe shutting down")
        if owns_client and app.state.client is not None:
            await app.state.client.aclose()

    app = FastAPI(
        title="keyprobe",
        description="OpenAI API key checker",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.client = client
    app.state.config = config
    app.state.logger = logger

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        # Every wrong-method request gets the same JSON error body
        if exc.status_code == 405:
            return method_not_allowed()
        return await http_exception_handler(request, exc)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - start) * 1000, 1),
            },
        )
        return response

    # =========================================================================
    # Routes
    # =========================================================================

    def landing_page():
        try:
            html = INDEX_PAGE.read_text(encoding="utf-8")
        except OSError as e:
            logger.error("failed to serve page", extra={"path": str(INDEX_PAGE), "error": str(e)})
            return JSONResponse(status_code=500, content={"error": "Failed to serve page"})
        return HTMLResponse(content=html, media_type="text/html; charset=utf-8")

    @app.get("/", response_class=HTMLResponse)
    async def index():
        """Landing page."""
        return landing_page()

    @app.get("/api/index", response_class=HTMLResponse)
    async def api_index():
        """Landing page (function-per-route path)."""
        return landing_page()

    @app.get("/health")
    async def health():
        """Health check."""
        return {"status": "healthy", "version": __version__}

    # -------------------------------------------------------------------------
    # Key operations
    # -------------------------------------------------------------------------

    @app.post("/api/check-key")
    async def api_check_key(request: Request):
        """Check that an OpenAI key is accepted by /v1/models."""
        key = await read_key(request)
        return to_json(await check_key(key, request.app.state.client, logger))

    @app.post("/api/chat")
    async def api_chat(request: Request):
        """Send one fixed chat completion with the given key."""
        key = await read_key(request)
        return to_json(await probe_chat(key, request.app.state.client, logger))

    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    return app


# =============================================================================
# Main
# =============================================================================

class ProxyServer:
    """
    The listening HTTP server, owned by the process entry point.

    uvicorn installs SIGINT/SIGTERM handlers while ``run()`` is active and
    drives the app lifespan, so the upstream client is closed on shutdown.
    """

    def __init__(self, config: ProxyConfig = None):
        import uvicorn

        self.config = config or ProxyConfig()
        self.app = create_app(self.config)
        self._server = uvicorn.Server(uvicorn.Config(
            self.app,
            host=self.config.server.host,
            port=self.config.server.port,
            log_level=self.config.logging.level.lower(),
            access_log=False,
        ))
        self._started = False

    @property
    def url(self) -> str:
        return f"http://{self.config.server.host}:{self.config.server.port}"

    def run(self):
        """Serve until a termination signal arrives. Can only be called once."""
        if self._started:
            raise RuntimeError("ProxyServer already started")
        self._started = True
        self._server.run()

    @property
    def stopping(self) -> bool:
        return self._server.should_exit

    def stop(self):
        """Ask the server to exit its serve loop."""
        self._server.should_exit = True


def main(config_path: str = None, host: str = None, port: int = None):
    """Run the keyprobe server."""
    config = load_config(config_path) if config_path else ProxyConfig()
    apply_env_overrides(config)

    if host:
        config.server.host = host
    if port:
        config.server.port = port

    configure_logging(config.logging.level, config.logging.format)

    server = ProxyServer(config)
    get_logger("server").info("listening", extra={"url": server.url})
    server.run()


if __name__ == "__main__":
    main()
