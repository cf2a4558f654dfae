from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fuelfinder.config import settings
from fuelfinder.dependencies import get_station_feed
from fuelfinder.errors import FuelFinderError
from fuelfinder.routers.stations import router as stations_router
from fuelfinder.routers.trends import router as trends_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.preload_feed:
        try:
            await asyncio.to_thread(get_station_feed().get_stations)
        except FuelFinderError:
            logger.exception("Failed to preload fuel price feed")
    yield


app = FastAPI(title="Fuel Finder", version="0.1.0", lifespan=lifespan)
app.include_router(stations_router)
app.include_router(trends_router)


@app.exception_handler(FuelFinderError)
async def fuelfinder_error_handler(request: Request, exc: FuelFinderError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Error in %s: %s", request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.error, "details": str(exc)})


@app.get("/health")
async def health_check() -> dict:
    return {"status": "ok"}
