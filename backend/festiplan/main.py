import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request

from .config import get_settings
from .database import create_schema
from .routers import festivals, invoices, placements, plan_zones, reservations, tariff_zones
from .utils.request_id import REQUEST_ID_HEADER, reset_request_id, resolve_request_id, set_request_id

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    if settings.create_schema:
        logger.info("creating missing tables")
        await create_schema()
    yield


app = FastAPI(title="Festiplan API", lifespan=lifespan)


async def request_id_middleware(request: Request, call_next):
    request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


app.middleware("http")(request_id_middleware)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(festivals.router)
app.include_router(tariff_zones.router)
app.include_router(plan_zones.router)
app.include_router(reservations.router)
app.include_router(placements.router)
app.include_router(invoices.router)
