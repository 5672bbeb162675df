import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from .api.v1 import links
from .api.v1.links import get_mapping_service
from .database import init_models
from .errors import ShortenerError
from .logging_config import RequestLoggingMiddleware, setup_logging
from .observability import PrometheusMiddleware, metrics_endpoint
from .redis import redis_client
from .services.cleanup import sweep_expired_links_forever
from .services.lifecycle import UrlMappingService

setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    await init_models()
    await redis_client.connect()
    task = asyncio.create_task(sweep_expired_links_forever())
    yield
    # Shutdown logic
    task.cancel()
    await redis_client.close()

app = FastAPI(
    title="URL Shortener",
    description="Maps long URLs to short codes and redirects them back",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(PrometheusMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.add_route("/metrics", metrics_endpoint)

app.include_router(links.router, prefix="/v1")

@app.exception_handler(ShortenerError)
async def shortener_error_handler(request: Request, exc: ShortenerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": exc.status_code,
            "error": exc.error,
            "message": str(exc),
            "path": request.url.path,
        },
    )

@app.get("/health")
async def health():
    return {"status": "ok"}

@app.get("/{short_code}")
async def redirect_to_url(
    short_code: str,
    service: UrlMappingService = Depends(get_mapping_service),
):
    original_url = await service.resolve(short_code)
    return RedirectResponse(url=original_url, status_code=302)
