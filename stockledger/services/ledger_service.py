"""Append-only stock ledger.

Entries are written by the stock service inside its locked transaction and
are never edited afterwards except for the reversal toggle. The stored
product quantities are a cache of this ledger: ``replay_stock`` rebuilds
them from the non-reversed entries.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockledger.core.constants import ActionKind, Location
from stockledger.core.dates import as_utc, utc_now
from stockledger.core.exceptions import InvalidStockOperation, LedgerEntryNotFound
from stockledger.core.security import ActorContext
from stockledger.core.stock_rules import StockRecord
from stockledger.models.product import Product
from stockledger.models.stock_event import StockEvent

logger = logging.getLogger(__name__)


def append_event(
    db: Session,
    *,
    product: Product,
    action: ActionKind,
    actor: ActorContext,
    location: Optional[Location] = None,
    quantity_before: Optional[int] = None,
    quantity_after: Optional[int] = None,
    change: int = 0,
    details: Optional[dict] = None,
) -> StockEvent:
    if quantity_before is not None and quantity_after is not None:
        change = quantity_after - quantity_before
    event = StockEvent(
        product_id=product.id,
        shop_id=product.shop_id,
        action_kind=ActionKind(action).value,
        location=location.value if location is not None else None,
        quantity_before=quantity_before,
        quantity_after=quantity_after,
        change=change,
        reversed=False,
        timestamp=utc_now(),
        actor_id=actor.actor_id,
        details=dict(details or {}),
    )
    db.add(event)
    # Flushing inside the product lock assigns the insertion sequence (id).
    db.flush()
    return event


def get_event(db: Session, event_id: int, *, for_update: bool = False) -> StockEvent:
    stmt = select(StockEvent).where(StockEvent.id == event_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    event = db.execute(stmt).scalars().first()
    if event is None:
        raise LedgerEntryNotFound(event_id)
    return event


def mark_reversed(event: StockEvent, actor: ActorContext) -> StockEvent:
    event.reversed = True
    event.reversed_at = utc_now()
    event.reversed_by = actor.actor_id
    return event


def _normalize_actions(actions) -> list[str]:
    if actions is None:
        return []
    if isinstance(actions, (str, ActionKind)):
        actions = [actions]
    return [ActionKind(action).value for action in actions]


def build_query(
    *,
    product_id: Optional[int] = None,
    shop_id: Optional[int] = None,
    start=None,
    end=None,
    actions: Optional[Iterable] = None,
    reversed: Optional[bool] = None,
):
    """Filtered ``select(StockEvent)``; ``start`` is inclusive, ``end`` exclusive."""
    stmt = select(StockEvent)
    if product_id is not None:
        stmt = stmt.where(StockEvent.product_id == product_id)
    if shop_id is not None:
        stmt = stmt.where(StockEvent.shop_id == shop_id)
    if start is not None:
        stmt = stmt.where(StockEvent.timestamp >= as_utc(start))
    if end is not None:
        stmt = stmt.where(StockEvent.timestamp < as_utc(end))
    action_values = _normalize_actions(actions)
    if action_values:
        stmt = stmt.where(StockEvent.action_kind.in_(action_values))
    if reversed is not None:
        stmt = stmt.where(StockEvent.reversed.is_(reversed))
    return stmt


def query_events(
    db: Session,
    *,
    product_id: Optional[int] = None,
    shop_id: Optional[int] = None,
    start=None,
    end=None,
    actions: Optional[Iterable] = None,
    reversed: Optional[bool] = None,
    newest_first: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
) -> list[StockEvent]:
    stmt = build_query(
        product_id=product_id,
        shop_id=shop_id,
        start=start,
        end=end,
        actions=actions,
        reversed=reversed,
    )
    if newest_first:
        stmt = stmt.order_by(StockEvent.timestamp.desc(), StockEvent.id.desc())
    else:
        stmt = stmt.order_by(StockEvent.timestamp, StockEvent.id)
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.execute(stmt).scalars().all())


def count_events(db: Session, **filters) -> int:
    stmt = build_query(**filters).with_only_columns(func.count(StockEvent.id)).order_by(None)
    return int(db.execute(stmt).scalar_one())


def _apply_to_counts(counts: dict, event: StockEvent) -> None:
    action = event.action
    if action is ActionKind.PRICE_CHANGE:
        return
    if action is ActionKind.CREATE:
        counts["godown"] = int(event.details.get("godown", 0))
        counts["store"] = int(event.details.get("store", 0))
        counts["reserved"] = 0
        return
    if action in (ActionKind.RESERVE, ActionKind.RELEASE):
        counts["reserved"] += event.change
        return
    if action is ActionKind.MOVE:
        quantity = int(event.details.get("quantity", -event.change))
        counts[event.details["from"]] -= quantity
        counts[event.details["to"]] += quantity
        return
    counts[event.location] += event.change


def replay_stock(db: Session, product_id: int, *, template: Optional[StockRecord] = None) -> StockRecord:
    """Rebuild a product's stock from its non-reversed ledger entries.

    Intermediate states are not validated (reversing an early entry can
    leave a historical dip below zero); only the final record must satisfy
    the invariants.
    """
    counts = {"godown": 0, "store": 0, "reserved": 0}
    for event in query_events(db, product_id=product_id, reversed=False):
        _apply_to_counts(counts, event)
    template = template or StockRecord()
    return StockRecord(
        godown=counts["godown"],
        store=counts["store"],
        reserved=counts["reserved"],
        low_stock_threshold=template.low_stock_threshold,
        expiration_date=template.expiration_date,
    )


def verify_stock(db: Session, product: Product) -> dict:
    stored = product.stock_record
    try:
        replayed = replay_stock(db, product.id, template=stored)
    except InvalidStockOperation as exc:
        logger.warning("Ledger replay for product %s is invalid: %s", product.id, exc)
        return {
            "product_id": product.id,
            "consistent": False,
            "stored": _record_dict(stored),
            "replayed": None,
            "error": exc.message,
        }
    consistent = (stored.godown, stored.store, stored.reserved) == (
        replayed.godown,
        replayed.store,
        replayed.reserved,
    )
    if not consistent:
        logger.warning(
            "Stock record for product %s drifted from ledger (stored=%s replayed=%s)",
            product.id,
            _record_dict(stored),
            _record_dict(replayed),
        )
    return {
        "product_id": product.id,
        "consistent": consistent,
        "stored": _record_dict(stored),
        "replayed": _record_dict(replayed),
        "error": None,
    }


def _record_dict(record: StockRecord) -> dict:
    return {
        "godown": record.godown,
        "store": record.store,
        "reserved": record.reserved,
        "total": record.total,
        "available": record.available(),
    }


__all__ = [
    "append_event",
    "build_query",
    "count_events",
    "get_event",
    "mark_reversed",
    "query_events",
    "replay_stock",
    "verify_stock",
]
