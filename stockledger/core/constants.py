from enum import Enum


class Location(str, Enum):
    GODOWN = "godown"
    STORE = "store"


class ActionKind(str, Enum):
    CREATE = "Create"
    INCREASE = "Increase"
    REDUCE = "Reduce"
    MOVE = "Move"
    BULK_REDUCE = "BulkReduce"
    PRICE_CHANGE = "PriceChange"
    RESERVE = "Reserve"
    RELEASE = "Release"


class AlertKind(str, Enum):
    LOW_STOCK = "LowStock"
    OUT_OF_STOCK = "OutOfStock"
    EXPIRING_SOON = "ExpiringSoon"
    EXPIRED = "Expired"
    CUSTOM = "Custom"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


SALE_ACTIONS = (ActionKind.REDUCE, ActionKind.BULK_REDUCE)
STOCK_IN_ACTIONS = (ActionKind.CREATE, ActionKind.INCREASE)
REVERSIBLE_ACTIONS = (
    ActionKind.INCREASE,
    ActionKind.REDUCE,
    ActionKind.BULK_REDUCE,
    ActionKind.MOVE,
    ActionKind.RESERVE,
    ActionKind.RELEASE,
)

SEVERITY_WEIGHTS = {
    Severity.INFO: 1,
    Severity.WARNING: 2,
    Severity.ERROR: 3,
    Severity.CRITICAL: 4,
}

ALERT_TYPE_WEIGHTS = {
    AlertKind.OUT_OF_STOCK: 3,
    AlertKind.EXPIRED: 3,
    AlertKind.LOW_STOCK: 2,
    AlertKind.EXPIRING_SOON: 2,
    AlertKind.CUSTOM: 1,
}

# Age contributes at most this many points to the urgency score.
MAX_AGE_SCORE = 3

UNCATEGORIZED = "Uncategorized"

GROUP_BY_KEYS = ("none", "product", "category", "hour", "day", "week", "month")
