"""Stock mutation engine.

Every public operation here is the only way product quantities change.
Each one holds the product's lock, re-reads the row ``FOR UPDATE``, derives
the new ``StockRecord``, writes it together with exactly one ledger entry
and commits. Any failure rolls the whole unit back. Alert evaluation runs
after the commit and never undoes it.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.config import get_settings
from stockledger.core.constants import REVERSIBLE_ACTIONS, ActionKind, Location
from stockledger.core.dates import utc_now
from stockledger.core.exceptions import (
    InvalidStockOperation,
    ProductNotFound,
    ReversalConflict,
    StockLedgerError,
)
from stockledger.core.locks import product_locks
from stockledger.core.security import ActorContext
from stockledger.core.stock_rules import StockRecord, parse_location
from stockledger.models.product import Product
from stockledger.models.stock_event import StockEvent
from stockledger.services import alert_service, ledger_service

logger = logging.getLogger(__name__)


@dataclass
class StockMutation:
    product: Product
    event: Optional[StockEvent]

    @property
    def record(self) -> StockRecord:
        return self.product.stock_record


@dataclass
class BulkReduceLine:
    product_id: int
    quantity: int
    location: Location = Location.STORE
    sale_price: Optional[float] = None


@dataclass
class BulkLineResult:
    product_id: int
    quantity: int
    success: bool
    event_id: Optional[int] = None
    error: Optional[str] = None
    code: Optional[str] = None


@dataclass
class BulkReduceResult:
    lines: list[BulkLineResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for line in self.lines if line.success)

    @property
    def failed(self) -> int:
        return len(self.lines) - self.succeeded


def load_product(
    db: Session,
    product_id: int,
    *,
    for_update: bool = False,
    actor: Optional[ActorContext] = None,
) -> Product:
    stmt = select(Product).where(Product.id == product_id)
    if actor is not None and actor.shop_id is not None:
        stmt = stmt.where(Product.shop_id == actor.shop_id)
    if for_update:
        stmt = stmt.with_for_update(of=Product).execution_options(populate_existing=True)
    product = db.execute(stmt).scalars().first()
    if product is None:
        raise ProductNotFound(product_id)
    return product


@contextmanager
def _locked(db: Session, product_id: int):
    timeout = get_settings().STOCK_LOCK_TIMEOUT_SECONDS
    with product_locks.hold(product_id, timeout=timeout):
        try:
            yield
            db.commit()
        except (StockLedgerError, SQLAlchemyError):
            db.rollback()
            raise


def _evaluate_alerts(db: Session, product: Product) -> None:
    # The mutation is already committed; alert failures must not surface.
    try:
        alert_service.evaluate_stock_alerts(db, product)
    except Exception:
        db.rollback()
        logger.exception("Alert evaluation failed for product %s; the sweep will retry", product.id)


def _clean_details(**values) -> dict:
    return {key: value for key, value in values.items() if value not in (None, "")}


# ----------------------------------------------------------------------
# Operations
# ----------------------------------------------------------------------
def create_stock(
    db: Session,
    product: Product,
    initial_godown: int = 0,
    initial_store: int = 0,
    *,
    actor: ActorContext,
    reason: str = "",
) -> StockMutation:
    """Initialise the stock of a freshly added product and log ``Create``.

    ``product`` must already be added to ``db``; the caller's pending
    product insert commits together with the ledger entry.
    """
    try:
        record = StockRecord.initialize(
            initial_godown,
            initial_store,
            low_stock_threshold=product.low_stock_threshold or 0,
            expiration_date=product.expiration_date,
        )
        product.apply_stock(record)
        db.flush()
        event = ledger_service.append_event(
            db,
            product=product,
            action=ActionKind.CREATE,
            actor=actor,
            quantity_before=0,
            quantity_after=record.total,
            details=_clean_details(godown=record.godown, store=record.store, reason=reason),
        )
        db.commit()
    except (StockLedgerError, SQLAlchemyError):
        db.rollback()
        raise

    logger.info(
        "Created stock for product %s (godown=%s store=%s) by %s",
        product.id,
        record.godown,
        record.store,
        actor.actor_id,
    )
    _evaluate_alerts(db, product)
    return StockMutation(product=product, event=event)


def restock(
    db: Session,
    product_id: int,
    location,
    quantity: int,
    *,
    actor: ActorContext,
    reason: str = "",
    reference: str = "",
) -> StockMutation:
    location = parse_location(location)
    with _locked(db, product_id):
        product = load_product(db, product_id, for_update=True, actor=actor)
        before = product.stock_record
        after = before.with_increase(location, quantity)
        product.apply_stock(after)
        event = ledger_service.append_event(
            db,
            product=product,
            action=ActionKind.INCREASE,
            actor=actor,
            location=location,
            quantity_before=before.quantity_at(location),
            quantity_after=after.quantity_at(location),
            details=_clean_details(reason=reason, reference=reference),
        )

    logger.info("Restocked %s x%s into %s by %s", product_id, quantity, location.value, actor.actor_id)
    _evaluate_alerts(db, product)
    return StockMutation(product=product, event=event)


def _reduce(
    db: Session,
    product_id: int,
    location: Location,
    quantity: int,
    *,
    actor: ActorContext,
    action: ActionKind,
    sale_price: Optional[float],
    reason: str,
    reference: str,
) -> StockMutation:
    with _locked(db, product_id):
        product = load_product(db, product_id, for_update=True, actor=actor)
        before = product.stock_record
        after = before.with_decrease(location, quantity)
        product.apply_stock(after)
        event = ledger_service.append_event(
            db,
            product=product,
            action=action,
            actor=actor,
            location=location,
            quantity_before=before.quantity_at(location),
            quantity_after=after.quantity_at(location),
            details=_clean_details(
                sale_price=float(sale_price) if sale_price is not None else None,
                reason=reason,
                reference=reference,
            ),
        )
    return StockMutation(product=product, event=event)


def consume(
    db: Session,
    product_id: int,
    location,
    quantity: int,
    *,
    actor: ActorContext,
    sale_price: Optional[float] = None,
    reason: str = "",
    reference: str = "",
) -> StockMutation:
    location = parse_location(location)
    try:
        result = _reduce(
            db,
            product_id,
            location,
            quantity,
            actor=actor,
            action=ActionKind.REDUCE,
            sale_price=sale_price,
            reason=reason,
            reference=reference,
        )
    except InvalidStockOperation as exc:
        logger.warning("Rejected consume of %s x%s from %s: %s", product_id, quantity, location.value, exc)
        raise

    logger.info("Consumed %s x%s from %s by %s", product_id, quantity, location.value, actor.actor_id)
    _evaluate_alerts(db, result.product)
    return result


def move_stock(
    db: Session,
    product_id: int,
    source,
    destination,
    quantity: int,
    *,
    actor: ActorContext,
    reason: str = "",
) -> StockMutation:
    source = parse_location(source)
    destination = parse_location(destination)
    with _locked(db, product_id):
        product = load_product(db, product_id, for_update=True, actor=actor)
        before = product.stock_record
        after = before.with_move(source, destination, quantity)
        product.apply_stock(after)
        event = ledger_service.append_event(
            db,
            product=product,
            action=ActionKind.MOVE,
            actor=actor,
            location=source,
            quantity_before=before.quantity_at(source),
            quantity_after=after.quantity_at(source),
            details=_clean_details(
                **{
                    "from": source.value,
                    "to": destination.value,
                    "quantity": quantity,
                    "to_before": before.quantity_at(destination),
                    "to_after": after.quantity_at(destination),
                    "reason": reason,
                }
            ),
        )

    logger.info(
        "Moved %s x%s from %s to %s by %s",
        product_id,
        quantity,
        source.value,
        destination.value,
        actor.actor_id,
    )
    _evaluate_alerts(db, product)
    return StockMutation(product=product, event=event)


def bulk_reduce(
    db: Session,
    lines: Iterable[BulkReduceLine],
    *,
    actor: ActorContext,
    reason: str = "",
    reference: str = "",
) -> BulkReduceResult:
    """Reduce several products, one ``BulkReduce`` entry per line.

    Lines commit independently: a failing line is reported and earlier
    lines stay applied.
    """
    result = BulkReduceResult()
    touched: dict[int, Product] = {}
    for line in lines:
        try:
            mutation = _reduce(
                db,
                line.product_id,
                parse_location(line.location),
                line.quantity,
                actor=actor,
                action=ActionKind.BULK_REDUCE,
                sale_price=line.sale_price,
                reason=reason,
                reference=reference,
            )
        except StockLedgerError as exc:
            logger.warning("Bulk reduce line for product %s failed: %s", line.product_id, exc)
            result.lines.append(
                BulkLineResult(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    success=False,
                    error=exc.message,
                    code=exc.code,
                )
            )
            continue
        touched[line.product_id] = mutation.product
        result.lines.append(
            BulkLineResult(
                product_id=line.product_id,
                quantity=line.quantity,
                success=True,
                event_id=mutation.event.id,
            )
        )

    logger.info(
        "Bulk reduce by %s: %s succeeded, %s failed",
        actor.actor_id,
        result.succeeded,
        result.failed,
    )
    for product in touched.values():
        _evaluate_alerts(db, product)
    return result


def _inverse(record: StockRecord, event: StockEvent) -> StockRecord:
    action = event.action
    if action is ActionKind.INCREASE:
        return record.with_decrease(event.location, event.change)
    if action in (ActionKind.REDUCE, ActionKind.BULK_REDUCE):
        return record.with_increase(event.location, -event.change)
    if action is ActionKind.MOVE:
        quantity = int(event.details.get("quantity", -event.change))
        return record.with_move(event.details["to"], event.details["from"], quantity)
    if action is ActionKind.RESERVE:
        return record.with_release(event.change)
    if action is ActionKind.RELEASE:
        return record.with_reserve(-event.change)
    raise InvalidStockOperation("{} entries cannot be reversed".format(action.value))


def reverse(db: Session, event_id: int, *, actor: ActorContext) -> StockMutation:
    """Void a ledger entry and undo its quantity change on the product."""
    target = ledger_service.get_event(db, event_id)
    with _locked(db, target.product_id):
        event = ledger_service.get_event(db, event_id, for_update=True)
        if event.reversed:
            logger.warning("Rejected second reversal of ledger entry %s", event_id)
            raise ReversalConflict(event_id)
        if event.action not in REVERSIBLE_ACTIONS:
            raise InvalidStockOperation(
                "{} entries cannot be reversed".format(event.action_kind),
            )
        product = load_product(db, event.product_id, for_update=True, actor=actor)
        product.apply_stock(_inverse(product.stock_record, event))
        ledger_service.mark_reversed(event, actor)

    logger.info("Reversed ledger entry %s (%s) by %s", event_id, event.action_kind, actor.actor_id)
    _evaluate_alerts(db, product)
    return StockMutation(product=product, event=event)


def reserve(
    db: Session,
    product_id: int,
    quantity: int,
    *,
    actor: ActorContext,
    reference: str = "",
) -> StockMutation:
    with _locked(db, product_id):
        product = load_product(db, product_id, for_update=True, actor=actor)
        before = product.stock_record
        after = before.with_reserve(quantity)
        product.apply_stock(after)
        event = ledger_service.append_event(
            db,
            product=product,
            action=ActionKind.RESERVE,
            actor=actor,
            quantity_before=before.reserved,
            quantity_after=after.reserved,
            details=_clean_details(reference=reference),
        )
    logger.info("Reserved %s x%s by %s", product_id, quantity, actor.actor_id)
    return StockMutation(product=product, event=event)


def release(
    db: Session,
    product_id: int,
    quantity: int,
    *,
    actor: ActorContext,
    reference: str = "",
) -> StockMutation:
    with _locked(db, product_id):
        product = load_product(db, product_id, for_update=True, actor=actor)
        before = product.stock_record
        after = before.with_release(quantity)
        product.apply_stock(after)
        event = ledger_service.append_event(
            db,
            product=product,
            action=ActionKind.RELEASE,
            actor=actor,
            quantity_before=before.reserved,
            quantity_after=after.reserved,
            details=_clean_details(reference=reference),
        )
    logger.info("Released %s x%s by %s", product_id, quantity, actor.actor_id)
    return StockMutation(product=product, event=event)


def change_price(
    db: Session,
    product_id: int,
    new_price: float,
    *,
    actor: ActorContext,
) -> StockMutation:
    """Set a new list price, logging ``PriceChange``; unchanged prices log nothing."""
    new_price = float(new_price)
    if new_price < 0:
        raise InvalidStockOperation("price must be non-negative")

    with _locked(db, product_id):
        product = load_product(db, product_id, for_update=True, actor=actor)
        old_price = float(product.price) if product.price is not None else 0.0
        if old_price == new_price:
            return StockMutation(product=product, event=None)
        changed_at = utc_now()
        product.price = new_price
        product.last_price_update = changed_at
        event = ledger_service.append_event(
            db,
            product=product,
            action=ActionKind.PRICE_CHANGE,
            actor=actor,
            details={"old_price": old_price, "new_price": new_price},
        )

    logger.info("Price of product %s changed %.2f -> %.2f by %s", product_id, old_price, new_price, actor.actor_id)
    return StockMutation(product=product, event=event)


__all__ = [
    "BulkLineResult",
    "BulkReduceLine",
    "BulkReduceResult",
    "StockMutation",
    "bulk_reduce",
    "change_price",
    "consume",
    "create_stock",
    "load_product",
    "move_stock",
    "release",
    "reserve",
    "restock",
    "reverse",
]
