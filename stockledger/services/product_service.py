import logging
from datetime import date, datetime, timezone
from typing import Optional, cast

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockledger.config import get_settings
from stockledger.core.constants import Location
from stockledger.core.dates import normalize_date, utc_now
from stockledger.core.exceptions import CategoryNotFound, InvalidStockOperation, ProductNotFound
from stockledger.core.locks import product_locks
from stockledger.core.security import ActorContext
from stockledger.models.alert import Alert
from stockledger.models.category import Category
from stockledger.models.product import Product
from stockledger.services import alert_service, stock_service

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------
def create_category(db: Session, name: str, *, actor: ActorContext) -> Category:
    name = (name or "").strip()
    if not name:
        raise InvalidStockOperation("category name must not be empty")
    category = Category(name=name, shop_id=actor.shop_id)
    db.add(category)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise InvalidStockOperation("category {!r} already exists".format(name)) from exc
    return category


def list_categories(db: Session, *, actor: Optional[ActorContext] = None) -> list[Category]:
    stmt = select(Category).order_by(Category.name)
    if actor is not None and actor.shop_id is not None:
        stmt = stmt.where(Category.shop_id == actor.shop_id)
    return cast(list[Category], list(db.execute(stmt).scalars().all()))


def get_category(db: Session, category_id: int, *, actor: Optional[ActorContext] = None) -> Category:
    category = db.get(Category, category_id)
    if category is None or (actor is not None and actor.shop_id is not None and category.shop_id != actor.shop_id):
        raise CategoryNotFound(category_id)
    return category


# ----------------------------------------------------------------------
# Products
# ----------------------------------------------------------------------
def calculate_days_active(created_at: datetime | None) -> int | None:
    if created_at is None:
        return None
    return (datetime.now(timezone.utc).date() - created_at.date()).days


def get_product(db: Session, product_id: int, *, actor: Optional[ActorContext] = None) -> Product:
    product = db.get(Product, product_id)
    if product is None or (actor is not None and actor.shop_id is not None and product.shop_id != actor.shop_id):
        raise ProductNotFound(product_id)
    return product


def list_products(
    db: Session,
    *,
    actor: Optional[ActorContext] = None,
    category_id: Optional[int] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Product]:
    stmt = select(Product).order_by(Product.id)
    if actor is not None and actor.shop_id is not None:
        stmt = stmt.where(Product.shop_id == actor.shop_id)
    if category_id is not None:
        stmt = stmt.where(Product.category_id == category_id)
    stmt = stmt.offset(offset).limit(limit)
    return cast(list[Product], list(db.execute(stmt).scalars().unique().all()))


def create_product(
    db: Session,
    *,
    actor: ActorContext,
    sku: str,
    name: str,
    price: float = 0.0,
    cost_price: Optional[float] = None,
    category_id: Optional[int] = None,
    low_stock_threshold: Optional[int] = None,
    expiration_date=None,
    initial_godown: Optional[int] = None,
    initial_store: Optional[int] = None,
    initial_quantity: Optional[int] = None,
) -> Product:
    """Add a product and its opening stock in one ``Create`` ledger entry.

    Without an explicit split the whole ``initial_quantity`` goes to the
    godown.
    """
    if price is None or float(price) < 0:
        raise InvalidStockOperation("price must be non-negative")
    if cost_price is not None and float(cost_price) < 0:
        raise InvalidStockOperation("cost_price must be non-negative")
    if category_id is not None:
        get_category(db, category_id, actor=actor)

    if initial_godown is None and initial_store is None:
        initial_godown, initial_store = initial_quantity or 0, 0
    threshold = low_stock_threshold
    if threshold is None:
        threshold = get_settings().DEFAULT_LOW_STOCK_THRESHOLD
    if threshold < 0:
        raise InvalidStockOperation("low_stock_threshold must be non-negative")

    product = Product(
        shop_id=actor.shop_id,
        sku=sku.strip(),
        name=name.strip(),
        category_id=category_id,
        price=float(price),
        cost_price=float(cost_price) if cost_price is not None else None,
        low_stock_threshold=threshold,
        expiration_date=normalize_date(expiration_date),
        last_price_update=utc_now(),
    )
    db.add(product)
    try:
        stock_service.create_stock(
            db,
            product,
            initial_godown or 0,
            initial_store or 0,
            actor=actor,
        )
    except IntegrityError as exc:
        raise InvalidStockOperation("product with sku {!r} already exists".format(sku)) from exc
    db.refresh(product)
    return product


def update_product(
    db: Session,
    product_id: int,
    *,
    actor: ActorContext,
    name: Optional[str] = None,
    category_id: Optional[int] = None,
    cost_price: Optional[float] = None,
    low_stock_threshold: Optional[int] = None,
    expiration_date=None,
) -> Product:
    """Update catalog fields; price goes through ``stock_service.change_price``."""
    product = get_product(db, product_id, actor=actor)
    if name is not None:
        product.name = name.strip()
    if category_id is not None:
        get_category(db, category_id, actor=actor)
        product.category_id = category_id
    if cost_price is not None:
        if cost_price < 0:
            raise InvalidStockOperation("cost_price must be non-negative")
        product.cost_price = float(cost_price)
    if low_stock_threshold is not None:
        if low_stock_threshold < 0:
            raise InvalidStockOperation("low_stock_threshold must be non-negative")
        product.low_stock_threshold = low_stock_threshold
    if expiration_date is not None:
        product.expiration_date = normalize_date(expiration_date)
    db.commit()
    db.refresh(product)

    alert_service.evaluate_stock_alerts(db, product)
    alert_service.evaluate_expiry_alerts(db, product)
    return product


def delete_product(db: Session, product_id: int, *, actor: ActorContext) -> None:
    """Remove the product row; its ledger entries stay for analytics."""
    timeout = get_settings().STOCK_LOCK_TIMEOUT_SECONDS
    with product_locks.hold(product_id, timeout=timeout):
        product = get_product(db, product_id, actor=actor)
        now = utc_now()
        open_alerts = db.execute(
            select(Alert).where(Alert.product_id == product_id, Alert.is_resolved.is_(False))
        ).scalars()
        for alert in open_alerts:
            alert.is_resolved = True
            alert.resolved_at = now
            alert.resolved_by = actor.actor_id
        db.delete(product)
        db.commit()
    product_locks.forget(product_id)
    logger.info("Deleted product %s by %s", product_id, actor.actor_id)


def serialize_product(product: Product, today: Optional[date] = None) -> dict:
    """Flat view of a product and its derived stock status."""
    settings = get_settings()
    record = product.stock_record
    return {
        "id": product.id,
        "shop_id": product.shop_id,
        "sku": product.sku,
        "name": product.name,
        "category_id": product.category_id,
        "category": product.category_name,
        "price": float(product.price or 0),
        "cost_price": float(product.cost_price) if product.cost_price is not None else None,
        "low_stock_threshold": record.low_stock_threshold,
        "expiration_date": record.expiration_date,
        "stock": {
            Location.GODOWN.value: record.godown,
            Location.STORE.value: record.store,
            "reserved": record.reserved,
            "total": record.total,
            "available": record.available(),
        },
        "stock_status": record.stock_status().value,
        "is_low_stock": record.is_low_stock(),
        "is_out_of_stock": record.is_out_of_stock(),
        "days_until_expiry": record.days_until_expiry(today),
        "is_expired": record.is_expired(today),
        "is_expiring_soon": record.is_expiring_soon(settings.EXPIRY_WINDOW_DAYS, today),
        "days_active": calculate_days_active(product.created_at),
        "last_price_update": product.last_price_update,
        "created_at": product.created_at,
        "updated_at": product.updated_at,
    }


__all__ = [
    "calculate_days_active",
    "create_category",
    "create_product",
    "delete_product",
    "get_category",
    "get_product",
    "list_categories",
    "list_products",
    "serialize_product",
    "update_product",
]
