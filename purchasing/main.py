import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from purchasing.config import settings
from purchasing.context import build_context, close_context
from purchasing.errors import ConflictError, OrderNotFoundError, StorageError
from purchasing.metrics import get_metrics_bytes, get_metrics_content_type
from purchasing.routes import admin, orders

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ctx = await build_context(settings)
    ctx.notifier.start()
    app.state.context = ctx
    yield
    await close_context(ctx, settings.notification_shutdown_wait_sec)


app = FastAPI(title="Purchasing", lifespan=lifespan)
app.include_router(orders.router)
app.include_router(admin.router)


@app.exception_handler(OrderNotFoundError)
async def order_not_found(request: Request, exc: OrderNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Order not found"})


@app.exception_handler(ConflictError)
async def order_conflict(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": exc.reason})


@app.exception_handler(StorageError)
async def storage_failure(request: Request, exc: StorageError) -> JSONResponse:
    # already logged by the engine; details stay internal
    return JSONResponse(status_code=500, content={"detail": ""})


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint: order operations, notification queue, backup requests."""
    return Response(
        content=get_metrics_bytes(),
        media_type=get_metrics_content_type(),
    )
