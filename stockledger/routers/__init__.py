from stockledger.routers.alerts import router as alerts_router
from stockledger.routers.analytics import router as analytics_router
from stockledger.routers.health import router as health_router
from stockledger.routers.ledger import router as ledger_router
from stockledger.routers.products import router as products_router
from stockledger.routers.stock import router as stock_router

__all__ = [
    "alerts_router",
    "analytics_router",
    "health_router",
    "ledger_router",
    "products_router",
    "stock_router",
]
