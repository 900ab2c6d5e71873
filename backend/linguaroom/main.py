import logging
from pathlib import Path
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from dotenv import load_dotenv

# Load .env file BEFORE importing settings to ensure env vars are available
# When running from backend/ directory
env_path = Path(__file__).parent.parent / ".env"
if not env_path.exists():
    # When running from the repository root
    env_path = Path(__file__).parent.parent.parent / ".env"

load_dotenv(dotenv_path=env_path)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .api.subscribe import router as subscribe_router
from .api.translate import router as translate_router
from .config import Settings, settings as default_settings
from .errors import SessionError
from .state import build_state

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # basicConfig is a no-op once the root logger has handlers (e.g. under uvicorn --log-config)
    logging.getLogger("linguaroom").setLevel(level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    state = app.state.session
    logger.info(
        f"Starting LinguaRoom (base_url={state.settings.openai_api_base_url}, "
        f"translate_model={state.settings.openai_translate_model}, "
        f"api_key_present={state.client.configured})"
    )
    yield
    # Shutdown - end open push streams and close the HTTP client
    await state.close()


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level)
    app = FastAPI(title="LinguaRoom", version="0.1.0", lifespan=lifespan)
    app.state.session = build_state(settings, transport=transport)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SessionError)
    async def session_error_handler(request: Request, exc: SessionError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": str(exc) or "Unexpected server error"})

    app.include_router(translate_router, prefix="/api")
    app.include_router(subscribe_router, prefix="/api")

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # Browser client bundle, when one is deployed next to the backend
    if settings.public_dir.is_dir():
        app.mount("/", StaticFiles(directory=settings.public_dir, html=True), name="public")

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(
        "linguaroom.main:app",
        host=default_settings.backend_host,
        port=default_settings.backend_port,
        log_level=default_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
