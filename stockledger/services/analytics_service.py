"""Sales and stock analytics derived from the ledger.

Nothing here is stored: every query re-reads the non-reversed ledger slice
for ``[start, end)`` joined (outer) with the product's current price and
category. Entries whose product was deleted count at price 0 under
"Uncategorized".
"""
import logging
from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockledger.config import get_settings
from stockledger.core.constants import (
    GROUP_BY_KEYS,
    SALE_ACTIONS,
    STOCK_IN_ACTIONS,
    UNCATEGORIZED,
    ActionKind,
    Location,
)
from stockledger.core.dates import as_utc, resolve_window, trailing_window
from stockledger.core.exceptions import InvalidStockOperation
from stockledger.core.stock_rules import StockRecord
from stockledger.models.category import Category
from stockledger.models.product import Product
from stockledger.models.stock_event import StockEvent

logger = logging.getLogger(__name__)

_BUCKET_FORMATS = {
    "hour": "%Y-%m-%d %H:00",
    "day": "%Y-%m-%d",
    "week": "%G-W%V",
    "month": "%Y-%m",
}
TREND_PERIODS = ("hour", "day", "week", "month")


@dataclass
class LedgerRow:
    event: StockEvent
    price: float
    cost_price: float
    product_name: Optional[str]
    category_name: str

    @property
    def timestamp(self) -> datetime:
        return as_utc(self.event.timestamp)

    @property
    def label(self) -> str:
        return self.product_name or "Product {}".format(self.event.product_id)


def units_sold(event: StockEvent) -> int:
    """Units a sale entry represents; entries without before/after count as one."""
    if event.quantity_before is not None and event.quantity_after is not None:
        return event.quantity_before - event.quantity_after
    return 1


def units_added(event: StockEvent) -> int:
    if event.quantity_before is not None and event.quantity_after is not None:
        return event.quantity_after - event.quantity_before
    return abs(event.change or 0)


def _money(value: float) -> float:
    return round(float(value or 0), 2)


def _fetch(db: Session, start, end, actions, shop_id=None) -> list[LedgerRow]:
    stmt = (
        select(
            StockEvent,
            Product.price,
            Product.cost_price,
            Product.name,
            Category.name,
        )
        .outerjoin(Product, Product.id == StockEvent.product_id)
        .outerjoin(Category, Category.id == Product.category_id)
        .where(
            StockEvent.reversed.is_(False),
            StockEvent.timestamp >= start,
            StockEvent.timestamp < end,
            StockEvent.action_kind.in_([ActionKind(action).value for action in actions]),
        )
        .order_by(StockEvent.timestamp, StockEvent.id)
    )
    if shop_id is not None:
        stmt = stmt.where(StockEvent.shop_id == shop_id)

    rows = []
    for event, price, cost_price, product_name, category_name in db.execute(stmt).all():
        price = float(price or 0)
        rows.append(
            LedgerRow(
                event=event,
                price=price,
                cost_price=float(cost_price) if cost_price is not None else price,
                product_name=product_name,
                category_name=category_name or UNCATEGORIZED,
            )
        )
    return rows


def _empty_totals() -> dict:
    return {"units_sold": 0, "revenue": 0.0, "cost": 0.0, "transactions": 0}


def _add_sale(totals: dict, row: LedgerRow) -> None:
    units = units_sold(row.event)
    totals["units_sold"] += units
    totals["revenue"] += units * row.price
    totals["cost"] += units * row.cost_price
    totals["transactions"] += 1


def _finish(totals: dict) -> dict:
    totals["revenue"] = _money(totals["revenue"])
    totals["cost"] = _money(totals["cost"])
    return totals


def _group_key(row: LedgerRow, group_by: str):
    if group_by == "product":
        return row.event.product_id, row.label
    if group_by == "category":
        return row.category_name, row.category_name
    bucket = row.timestamp.strftime(_BUCKET_FORMATS[group_by])
    return bucket, bucket


def sales_summary(
    db: Session,
    *,
    start=None,
    end=None,
    group_by: str = "none",
    top_n: Optional[int] = None,
    shop_id=None,
) -> dict:
    if group_by not in GROUP_BY_KEYS:
        raise InvalidStockOperation(
            "group_by must be one of {}, got {!r}".format(", ".join(GROUP_BY_KEYS), group_by)
        )
    start, end = resolve_window(start, end)
    rows = _fetch(db, start, end, SALE_ACTIONS, shop_id)

    totals = _empty_totals()
    groups: dict = {}
    for row in rows:
        _add_sale(totals, row)
        if group_by == "none":
            continue
        key, label = _group_key(row, group_by)
        group = groups.get(key)
        if group is None:
            group = {"key": key, "label": label, **_empty_totals()}
            groups[key] = group
        _add_sale(group, row)

    grouped = [_finish(group) for group in groups.values()]
    if group_by in ("product", "category"):
        grouped.sort(key=lambda item: (-item["revenue"], -item["units_sold"], str(item["key"])))
        if top_n:
            grouped = grouped[:top_n]
    else:
        grouped.sort(key=lambda item: item["key"])

    return {
        "start": start,
        "end": end,
        "group_by": group_by,
        "totals": _finish(totals),
        "rows": grouped,
    }


def top_products(db: Session, *, start=None, end=None, limit: Optional[int] = None, shop_id=None) -> list[dict]:
    limit = limit or get_settings().ANALYTICS_TOP_N
    summary = sales_summary(db, start=start, end=end, group_by="product", shop_id=shop_id)
    rows = sorted(summary["rows"], key=lambda item: (-item["units_sold"], -item["revenue"], item["key"]))
    return [
        {
            "product_id": item["key"],
            "name": item["label"],
            "units_sold": item["units_sold"],
            "revenue": item["revenue"],
            "transactions": item["transactions"],
        }
        for item in rows[:limit]
    ]


def category_performance(db: Session, *, start=None, end=None, top_n: Optional[int] = None, shop_id=None) -> list[dict]:
    summary = sales_summary(db, start=start, end=end, group_by="category", top_n=top_n, shop_id=shop_id)
    return [
        {
            "category": item["key"],
            "units_sold": item["units_sold"],
            "revenue": item["revenue"],
            "cost": item["cost"],
            "margin": _money(item["revenue"] - item["cost"]),
            "transactions": item["transactions"],
        }
        for item in summary["rows"]
    ]


def stock_added(db: Session, *, start=None, end=None, shop_id=None) -> dict:
    start, end = resolve_window(start, end)
    units = 0
    cost = 0.0
    count = 0
    for row in _fetch(db, start, end, STOCK_IN_ACTIONS, shop_id):
        added = units_added(row.event)
        units += added
        cost += added * row.cost_price
        count += 1
    return {"units": units, "cost": _money(cost), "count": count}


def movement_summary(db: Session, *, start=None, end=None, shop_id=None) -> list[dict]:
    start, end = resolve_window(start, end)
    groups: dict = defaultdict(lambda: {"count": 0, "units": 0, "value": 0.0})
    for row in _fetch(db, start, end, list(ActionKind), shop_id):
        action = row.event.action
        if action is ActionKind.PRICE_CHANGE:
            units = 0
        elif action is ActionKind.MOVE:
            units = int(row.event.details.get("quantity", abs(row.event.change or 0)))
        elif action in SALE_ACTIONS:
            units = units_sold(row.event)
        else:
            units = abs(row.event.change or 0)
        group = groups[action.value]
        group["count"] += 1
        group["units"] += units
        group["value"] += units * row.price
    return [
        {"action": action, "count": group["count"], "units": group["units"], "value": _money(group["value"])}
        for action, group in sorted(groups.items())
    ]


def _later_price_changes(db: Session, product_ids) -> dict:
    """Per product: sorted (timestamp, old_price) of every price change."""
    if not product_ids:
        return {}
    stmt = (
        select(StockEvent)
        .where(
            StockEvent.action_kind == ActionKind.PRICE_CHANGE.value,
            StockEvent.reversed.is_(False),
            StockEvent.product_id.in_(product_ids),
        )
        .order_by(StockEvent.timestamp, StockEvent.id)
    )
    history: dict = defaultdict(list)
    for event in db.execute(stmt).scalars():
        old_price = event.details.get("old_price")
        if old_price is None:
            continue
        history[event.product_id].append((as_utc(event.timestamp), float(old_price)))
    return history


def _list_price_at(history: dict, row: LedgerRow) -> float:
    changes = history.get(row.event.product_id)
    if changes:
        timestamps = [stamp for stamp, _ in changes]
        index = bisect_right(timestamps, row.timestamp)
        if index < len(changes):
            return changes[index][1]
    return row.price


def promotion_impact(db: Session, *, start=None, end=None, shop_id=None) -> dict:
    """Split sales into promotional (sold below list price) and regular."""
    start, end = resolve_window(start, end)
    rows = _fetch(db, start, end, SALE_ACTIONS, shop_id)
    history = _later_price_changes(db, {row.event.product_id for row in rows})

    promo = {"units_sold": 0, "revenue": 0.0, "transactions": 0}
    regular = {"units_sold": 0, "revenue": 0.0, "transactions": 0}
    for row in rows:
        list_price = _list_price_at(history, row)
        sale_price = row.event.details.get("sale_price")
        is_promo = sale_price is not None and float(sale_price) < list_price
        unit_price = float(sale_price) if sale_price is not None else list_price
        units = units_sold(row.event)
        bucket = promo if is_promo else regular
        bucket["units_sold"] += units
        bucket["revenue"] += units * unit_price
        bucket["transactions"] += 1

    promo["revenue"] = _money(promo["revenue"])
    regular["revenue"] = _money(regular["revenue"])
    return {"promo": promo, "regular": regular}


def price_changes(db: Session, *, start=None, end=None, recent: Optional[int] = None, shop_id=None) -> dict:
    recent = recent if recent is not None else get_settings().ANALYTICS_RECENT_PRICE_CHANGES
    start, end = resolve_window(start, end)
    rows = _fetch(db, start, end, [ActionKind.PRICE_CHANGE], shop_id)

    changes = []
    for row in reversed(rows):
        old_price = float(row.event.details.get("old_price") or 0)
        new_price = float(row.event.details.get("new_price") or 0)
        delta = new_price - old_price
        changes.append(
            {
                "event_id": row.event.id,
                "product_id": row.event.product_id,
                "name": row.label,
                "old_price": _money(old_price),
                "new_price": _money(new_price),
                "delta": _money(delta),
                "percent_change": round(delta / old_price * 100, 2) if old_price else 0.0,
                "timestamp": row.timestamp,
                "actor_id": row.event.actor_id,
            }
        )
    return {"count": len(rows), "recent": changes[:recent]}


def detail(db: Session, *, start=None, end=None, shop_id=None) -> dict:
    start, end = resolve_window(start, end)
    window = dict(start=start, end=end, shop_id=shop_id)
    return {
        "start": start,
        "end": end,
        "sales": sales_summary(db, **window)["totals"],
        "top_products": top_products(db, **window),
        "categories": category_performance(db, **window),
        "stock_added": stock_added(db, **window),
        "movements": movement_summary(db, **window),
        "promotions": promotion_impact(db, **window),
        "price_changes": price_changes(db, **window),
    }


def stock_overview(db: Session, *, shop_id=None) -> dict:
    stmt = select(Product)
    if shop_id is not None:
        stmt = stmt.where(Product.shop_id == shop_id)

    overview = {
        "products": 0,
        "total_units": 0,
        "reserved_units": 0,
        "available_units": 0,
        "locations": {location.value: 0 for location in Location},
        "low_stock": 0,
        "out_of_stock": 0,
        "stock_value": 0.0,
    }
    for product in db.execute(stmt).scalars():
        record: StockRecord = product.stock_record
        overview["products"] += 1
        overview["total_units"] += record.total
        overview["reserved_units"] += record.reserved
        overview["available_units"] += record.available()
        overview["locations"][Location.GODOWN.value] += record.godown
        overview["locations"][Location.STORE.value] += record.store
        overview["stock_value"] += record.total * float(product.price or 0)
        if record.is_out_of_stock():
            overview["out_of_stock"] += 1
        elif record.is_low_stock():
            overview["low_stock"] += 1
    overview["stock_value"] = _money(overview["stock_value"])
    return overview


def sales_trend(db: Session, *, period: str = "day", days: int = 30, now=None, shop_id=None) -> list[dict]:
    if period not in TREND_PERIODS:
        raise InvalidStockOperation("period must be one of {}, got {!r}".format(", ".join(TREND_PERIODS), period))
    start, end = trailing_window(days, now)
    summary = sales_summary(db, start=start, end=end, group_by=period, shop_id=shop_id)
    return [
        {
            "period": item["key"],
            "units_sold": item["units_sold"],
            "revenue": item["revenue"],
            "transactions": item["transactions"],
        }
        for item in summary["rows"]
    ]


def ledger_size(db: Session, *, shop_id=None) -> int:
    stmt = select(func.count(StockEvent.id))
    if shop_id is not None:
        stmt = stmt.where(StockEvent.shop_id == shop_id)
    return int(db.execute(stmt).scalar_one())


__all__ = [
    "category_performance",
    "detail",
    "ledger_size",
    "movement_summary",
    "price_changes",
    "promotion_impact",
    "sales_summary",
    "sales_trend",
    "stock_added",
    "stock_overview",
    "top_products",
    "units_added",
    "units_sold",
]
