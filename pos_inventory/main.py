import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pos_inventory.api import inventory, products, reports, vendors
from pos_inventory.cache import ReadThroughCache
from pos_inventory.config import settings
from pos_inventory.database import init_db
from pos_inventory.errors import FetchError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    # One cache per process, shared by every request through app.state
    app.state.cache = ReadThroughCache(ttl_seconds=settings.CACHE_TTL_SECONDS, max_size=settings.CACHE_MAX_ENTRIES)
    logger.info(
        "%s started (page size %d, cache TTL %.0fs)", settings.APP_NAME, settings.PAGE_SIZE, settings.CACHE_TTL_SECONDS
    )
    yield


app = FastAPI(
    title="POS Inventory API",
    description="Stock ledger, vendor purchases and weighted-average costing",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError):
    """The store failed mid-read. Report it as unavailable, never as a zero."""
    logger.error("Fetch failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return JSON for unhandled exceptions so frontend can parse error."""
    logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.include_router(products.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")
app.include_router(vendors.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")


@app.get("/api/v1/config")
def get_config():
    """Expose the process-wide paging and caching settings."""
    return {"page_size": settings.PAGE_SIZE, "cache_ttl_seconds": settings.CACHE_TTL_SECONDS}


@app.get("/api/v1/cache/stats")
def cache_stats(request: Request):
    return request.app.state.cache.stats.to_dict()


@app.get("/health")
def health():
    return {"status": "ok"}
