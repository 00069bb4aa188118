import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stickerswap.api import (
    albums_router,
    health_router,
    matches_router,
    profiles_router,
    subscriptions_router,
    templates_router,
    trades_router,
    webhooks_router,
)
from stickerswap.config import settings
from stickerswap.db.database import init_db
from stickerswap.models.failure import (
    KnownError,
    RefusalError,
    create_unknown_failure,
    finalize_response,
)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("stickerswap"),
    lifespan=lifespan,
)

app.include_router(albums_router)
app.include_router(health_router)
app.include_router(matches_router)
app.include_router(profiles_router)
app.include_router(subscriptions_router)
app.include_router(templates_router)
app.include_router(trades_router)
app.include_router(webhooks_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    response = finalize_response(exc.to_response())
    return JSONResponse(response.model_dump(mode="json"), status_code=exc.status_code)


@app.exception_handler(RefusalError)
async def refusal_handler(_request: Request, exc: RefusalError) -> JSONResponse:
    response = finalize_response(exc.to_response())
    return JSONResponse(response.model_dump(mode="json"), status_code=exc.status_code)


@app.exception_handler(Exception)
async def unknown_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    response = create_unknown_failure(exc)
    return JSONResponse(response.model_dump(mode="json"), status_code=500)
