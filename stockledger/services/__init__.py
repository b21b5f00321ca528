from stockledger.services import alert_service, analytics_service, ledger_service, stock_service
from stockledger.services import product_service

__all__ = [
    "alert_service",
    "analytics_service",
    "ledger_service",
    "product_service",
    "stock_service",
]
