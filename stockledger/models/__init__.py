import importlib

from stockledger.database.immutability import register_immutability_listeners
from stockledger.models.alert import Alert
from stockledger.models.category import Category
from stockledger.models.job_log import JobLog
from stockledger.models.product import Product
from stockledger.models.stock_event import StockEvent

register_immutability_listeners()


def import_all_models() -> None:
    for module_name in (
        "stockledger.models.alert",
        "stockledger.models.category",
        "stockledger.models.job_log",
        "stockledger.models.product",
        "stockledger.models.stock_event",
    ):
        importlib.import_module(module_name)


__all__ = [
    "Alert",
    "Category",
    "JobLog",
    "Product",
    "StockEvent",
    "import_all_models",
]
