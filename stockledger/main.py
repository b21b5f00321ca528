import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stockledger.config import Settings, get_settings
from stockledger.core.exceptions import (
    InvalidStockOperation,
    LedgerImmutabilityError,
    NotFoundError,
    ReversalConflict,
    StockBusyError,
    StockLedgerError,
)
from stockledger.core.logging import setup_logging
from stockledger.database import create_schema
from stockledger.routers import (
    alerts_router,
    analytics_router,
    health_router,
    ledger_router,
    products_router,
    stock_router,
)

setup_logging()
settings: Settings = get_settings()
logger = logging.getLogger(__name__)

_STATUS_CODES = (
    (NotFoundError, 404),
    (InvalidStockOperation, 400),
    (ReversalConflict, 409),
    (StockBusyError, 409),
    (LedgerImmutabilityError, 500),
)


def status_for(exc: StockLedgerError) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(_app: FastAPI):
    create_schema()
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)


@app.exception_handler(StockLedgerError)
async def stock_ledger_error_handler(request: Request, exc: StockLedgerError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


app.include_router(health_router)
app.include_router(products_router)
app.include_router(stock_router)
app.include_router(ledger_router)
app.include_router(alerts_router)
app.include_router(analytics_router)


__all__ = ["app", "status_for"]
