"""Typed errors raised by the stock ledger core.

Every error carries a machine-readable ``code`` and the structured values
that caused it, so routers can map them to HTTP responses without parsing
messages.

    StockLedgerError
    +-- InvalidStockOperation
    +-- ReversalConflict
    +-- StockBusyError
    +-- LedgerImmutabilityError
    +-- NotFoundError
        +-- ProductNotFound
        +-- CategoryNotFound
        +-- LedgerEntryNotFound
        +-- AlertNotFound
"""


class StockLedgerError(Exception):
    code: str = "STOCK_LEDGER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class InvalidStockOperation(StockLedgerError):
    """Mutation would break a stock invariant or lacks available quantity."""

    code = "INVALID_STOCK_OPERATION"

    def __init__(self, message: str, *, product_id=None, requested=None, available=None):
        super().__init__(message)
        self.product_id = product_id
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.requested is not None:
            payload["requested"] = self.requested
        if self.available is not None:
            payload["available"] = self.available
        return payload


class ReversalConflict(StockLedgerError):
    code = "REVERSAL_CONFLICT"

    def __init__(self, event_id: int):
        super().__init__("Ledger entry {} has already been reversed".format(event_id))
        self.event_id = event_id


class StockBusyError(StockLedgerError):
    code = "STOCK_BUSY"

    def __init__(self, product_id: int, timeout: float):
        super().__init__(
            "Timed out after {:.1f}s waiting for stock lock on product {}".format(timeout, product_id)
        )
        self.product_id = product_id
        self.timeout = timeout


class LedgerImmutabilityError(StockLedgerError):
    code = "LEDGER_IMMUTABLE"

    def __init__(self, event_id, fields=()):
        fields = tuple(fields)
        if fields:
            message = "Ledger entry {} is immutable (attempted change: {})".format(
                event_id, ", ".join(sorted(fields))
            )
        else:
            message = "Ledger entry {} cannot be deleted".format(event_id)
        super().__init__(message)
        self.event_id = event_id
        self.fields = fields


class NotFoundError(StockLedgerError):
    code = "NOT_FOUND"
    entity = "Entity"

    def __init__(self, entity_id):
        super().__init__("{} {} not found".format(self.entity, entity_id))
        self.entity_id = entity_id


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"
    entity = "Product"


class CategoryNotFound(NotFoundError):
    code = "CATEGORY_NOT_FOUND"
    entity = "Category"


class LedgerEntryNotFound(NotFoundError):
    code = "LEDGER_ENTRY_NOT_FOUND"
    entity = "Ledger entry"


class AlertNotFound(NotFoundError):
    code = "ALERT_NOT_FOUND"
    entity = "Alert"


__all__ = [
    "AlertNotFound",
    "CategoryNotFound",
    "InvalidStockOperation",
    "LedgerEntryNotFound",
    "LedgerImmutabilityError",
    "NotFoundError",
    "ProductNotFound",
    "ReversalConflict",
    "StockBusyError",
    "StockLedgerError",
]
