"""Stock and expiry alerts.

Alerts are derived from product state: the stock check runs after every
committed mutation and the expiry sweep runs daily from the scheduler. At
most one unresolved alert exists per ``(product_id, kind)``; the partial
unique index on ``alerts`` backs that up when two writers race.
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockledger.config import get_settings
from stockledger.core.constants import (
    ALERT_TYPE_WEIGHTS,
    MAX_AGE_SCORE,
    SEVERITY_WEIGHTS,
    AlertKind,
    Severity,
)
from stockledger.core.dates import as_utc, utc_now
from stockledger.core.exceptions import AlertNotFound
from stockledger.core.security import ActorContext
from stockledger.database.session import session_scope
from stockledger.models.alert import Alert
from stockledger.models.product import Product

logger = logging.getLogger(__name__)

_STOCK_KINDS = (AlertKind.OUT_OF_STOCK, AlertKind.LOW_STOCK)
_EXPIRY_KINDS = (AlertKind.EXPIRED, AlertKind.EXPIRING_SOON)


def urgency_score(alert: Alert, now=None) -> float:
    now = as_utc(now) if now is not None else utc_now()
    created = as_utc(alert.created_at) or now
    age_hours = round(max(0.0, (now - created).total_seconds()) / 3600)
    age_score = min(age_hours / 24, MAX_AGE_SCORE)
    severity = SEVERITY_WEIGHTS.get(Severity(alert.severity), 0)
    kind = ALERT_TYPE_WEIGHTS.get(AlertKind(alert.kind), 0)
    return severity + kind + age_score


def _open_alert(db: Session, product_id: int, kind: AlertKind) -> Optional[Alert]:
    stmt = select(Alert).where(
        Alert.product_id == product_id,
        Alert.kind == kind.value,
        Alert.is_resolved.is_(False),
    )
    return db.execute(stmt).scalars().first()


def _raise_alert(
    db: Session,
    product: Product,
    kind: AlertKind,
    severity: Severity,
    title: str,
    message: str,
    context: dict,
) -> Optional[Alert]:
    """Create the alert unless an open one exists; refresh that one instead.

    Returns the newly created alert, or ``None`` when deduplicated.
    """
    existing = _open_alert(db, product.id, kind)
    if existing is not None:
        if existing.severity != severity.value or existing.message != message:
            existing.severity = severity.value
            existing.message = message
            existing.context = context
        return None

    alert = Alert(
        kind=kind.value,
        severity=severity.value,
        title=title,
        message=message,
        product_id=product.id,
        shop_id=product.shop_id,
        context=context,
        created_at=utc_now(),
    )
    try:
        with db.begin_nested():
            db.add(alert)
    except IntegrityError:
        logger.info("Open %s alert for product %s already raised concurrently", kind.value, product.id)
        return None
    logger.info("Raised %s alert (%s) for product %s", kind.value, severity.value, product.id)
    return alert


def _auto_resolve(db: Session, product: Product, kinds, *, actor_id: str = "system") -> int:
    if not get_settings().ALERT_AUTO_RESOLVE:
        return 0
    now = utc_now()
    resolved = 0
    for kind in kinds:
        alert = _open_alert(db, product.id, kind)
        if alert is None:
            continue
        alert.is_resolved = True
        alert.resolved_at = now
        alert.resolved_by = actor_id
        resolved += 1
        logger.info("Auto-resolved %s alert %s for product %s", kind.value, alert.id, product.id)
    return resolved


def _check_stock(db: Session, product: Product) -> dict:
    record = product.stock_record
    stats = {"created": 0, "resolved": 0}
    context = {
        "total": record.total,
        "godown": record.godown,
        "store": record.store,
        "threshold": record.low_stock_threshold,
    }
    if record.is_out_of_stock():
        created = _raise_alert(
            db,
            product,
            AlertKind.OUT_OF_STOCK,
            Severity.ERROR,
            "Out of stock: {}".format(product.name),
            "{} is out of stock".format(product.name),
            context,
        )
        stats["resolved"] += _auto_resolve(db, product, [AlertKind.LOW_STOCK])
    elif record.is_low_stock():
        created = _raise_alert(
            db,
            product,
            AlertKind.LOW_STOCK,
            Severity.WARNING,
            "Low stock: {}".format(product.name),
            "{} is running low ({} left, threshold {})".format(
                product.name, record.total, record.low_stock_threshold
            ),
            context,
        )
        stats["resolved"] += _auto_resolve(db, product, [AlertKind.OUT_OF_STOCK])
    else:
        created = None
        stats["resolved"] += _auto_resolve(db, product, _STOCK_KINDS)
    if created is not None:
        stats["created"] += 1
    return stats


def _check_expiry(db: Session, product: Product, today: date) -> dict:
    settings = get_settings()
    record = product.stock_record
    stats = {"created": 0, "resolved": 0}
    days = record.days_until_expiry(today)
    if days is None:
        stats["resolved"] += _auto_resolve(db, product, _EXPIRY_KINDS)
        return stats

    context = {"expiration_date": record.expiration_date.isoformat(), "days_until_expiry": days}
    if record.is_expired(today):
        created = _raise_alert(
            db,
            product,
            AlertKind.EXPIRED,
            Severity.ERROR,
            "Expired: {}".format(product.name),
            "{} expired on {}".format(product.name, record.expiration_date.isoformat()),
            context,
        )
        stats["resolved"] += _auto_resolve(db, product, [AlertKind.EXPIRING_SOON])
    elif record.is_expiring_soon(settings.EXPIRY_WINDOW_DAYS, today):
        severity = Severity.WARNING if days <= settings.EXPIRY_WARNING_DAYS else Severity.INFO
        created = _raise_alert(
            db,
            product,
            AlertKind.EXPIRING_SOON,
            severity,
            "Expiring soon: {}".format(product.name),
            "{} expires in {} day{}".format(product.name, days, "" if days == 1 else "s"),
            context,
        )
    else:
        created = None
        stats["resolved"] += _auto_resolve(db, product, _EXPIRY_KINDS)
    if created is not None:
        stats["created"] += 1
    return stats


def evaluate_stock_alerts(db: Session, product: Product) -> dict:
    """Re-check low/out-of-stock for one product and commit the outcome."""
    stats = _check_stock(db, product)
    db.commit()
    return stats


def evaluate_expiry_alerts(db: Session, product: Product, today: Optional[date] = None) -> dict:
    stats = _check_expiry(db, product, today or utc_now().date())
    db.commit()
    return stats


def run_expiry_sweep(db: Optional[Session] = None, *, today: Optional[date] = None, shop_id=None) -> dict:
    """Check every product for expiry and stock thresholds.

    Returns counters that the scheduler stores on its job log.
    """
    today = today or utc_now().date()
    stats = {"products": 0, "created": 0, "resolved": 0}
    with session_scope(db) as session:
        stmt = select(Product).order_by(Product.id)
        if shop_id is not None:
            stmt = stmt.where(Product.shop_id == shop_id)
        products = session.execute(stmt).scalars().all()
        for product in products:
            stats["products"] += 1
            for result in (_check_expiry(session, product, today), _check_stock(session, product)):
                stats["created"] += result["created"]
                stats["resolved"] += result["resolved"]
        session.commit()

    logger.info(
        "Expiry sweep for %s: %s products, %s alerts created, %s resolved",
        today.isoformat(),
        stats["products"],
        stats["created"],
        stats["resolved"],
    )
    return stats


def create_custom_alert(
    db: Session,
    *,
    title: str,
    message: str,
    severity=Severity.INFO,
    product_id: Optional[int] = None,
    shop_id: Optional[int] = None,
    user_id: Optional[str] = None,
    context: Optional[dict] = None,
) -> Alert:
    """Raise a free-form alert.

    A product keeps at most one open custom alert; raising another refreshes
    the open one in place.
    """
    severity = Severity(severity).value
    context = dict(context or {})
    existing = _open_alert(db, product_id, AlertKind.CUSTOM) if product_id is not None else None
    if existing is None:
        alert = Alert(
            kind=AlertKind.CUSTOM.value,
            severity=severity,
            title=title,
            message=message,
            product_id=product_id,
            shop_id=shop_id,
            user_id=user_id,
            context=context,
            created_at=utc_now(),
        )
        try:
            with db.begin_nested():
                db.add(alert)
        except IntegrityError:
            existing = _open_alert(db, product_id, AlertKind.CUSTOM)
            if existing is None:
                db.rollback()
                raise
        else:
            db.commit()
            return alert

    existing.title = title
    existing.message = message
    existing.severity = severity
    existing.context = context
    existing.is_read = False
    db.commit()
    return existing


# ----------------------------------------------------------------------
# Read side
# ----------------------------------------------------------------------
def _scoped(stmt, actor: Optional[ActorContext]):
    if actor is not None and actor.shop_id is not None:
        stmt = stmt.where(Alert.shop_id == actor.shop_id)
    return stmt


def get_alert(db: Session, alert_id: int, actor: Optional[ActorContext] = None) -> Alert:
    stmt = _scoped(select(Alert).where(Alert.id == alert_id), actor)
    alert = db.execute(stmt).scalars().first()
    if alert is None:
        raise AlertNotFound(alert_id)
    return alert


def _summary(db: Session, actor: Optional[ActorContext]) -> dict:
    def count(*conditions):
        stmt = _scoped(select(func.count(Alert.id)), actor)
        if conditions:
            stmt = stmt.where(*conditions)
        return int(db.execute(stmt).scalar_one())

    return {
        "total": count(),
        "unread": count(Alert.is_read.is_(False)),
        "unresolved": count(Alert.is_resolved.is_(False)),
        "critical": count(Alert.severity == Severity.CRITICAL.value, Alert.is_resolved.is_(False)),
    }


def list_alerts(
    db: Session,
    *,
    actor: Optional[ActorContext] = None,
    kind=None,
    severity=None,
    is_read: Optional[bool] = None,
    is_resolved: Optional[bool] = None,
    product_id: Optional[int] = None,
    sort: str = "created_at",
    page: int = 1,
    limit: int = 20,
    now=None,
) -> dict:
    page = max(1, int(page))
    limit = max(1, int(limit))
    now = as_utc(now) if now is not None else utc_now()

    stmt = _scoped(select(Alert), actor)
    if kind is not None:
        stmt = stmt.where(Alert.kind == AlertKind(kind).value)
    if severity is not None:
        stmt = stmt.where(Alert.severity == Severity(severity).value)
    if is_read is not None:
        stmt = stmt.where(Alert.is_read.is_(is_read))
    if is_resolved is not None:
        stmt = stmt.where(Alert.is_resolved.is_(is_resolved))
    if product_id is not None:
        stmt = stmt.where(Alert.product_id == product_id)

    if sort == "urgency":
        # The score depends on "now", so ordering happens in Python.
        alerts = db.execute(stmt).scalars().all()
        ranked = sorted(
            alerts,
            key=lambda item: (urgency_score(item, now), as_utc(item.created_at), item.id),
            reverse=True,
        )
        total = len(ranked)
        items = ranked[(page - 1) * limit : page * limit]
    else:
        total = int(db.execute(stmt.with_only_columns(func.count(Alert.id))).scalar_one())
        items = (
            db.execute(stmt.order_by(Alert.created_at.desc(), Alert.id.desc()).offset((page - 1) * limit).limit(limit))
            .scalars()
            .all()
        )

    return {
        "items": [(alert, urgency_score(alert, now)) for alert in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
        "summary": _summary(db, actor),
    }


def mark_read(db: Session, alert_id: int, actor: Optional[ActorContext] = None) -> Alert:
    alert = get_alert(db, alert_id, actor)
    if not alert.is_read:
        alert.is_read = True
        alert.read_at = utc_now()
        db.commit()
    return alert


def mark_all_read(db: Session, actor: Optional[ActorContext] = None) -> int:
    now = utc_now()
    unread = db.execute(_scoped(select(Alert).where(Alert.is_read.is_(False)), actor)).scalars().all()
    for alert in unread:
        alert.is_read = True
        alert.read_at = now
    db.commit()
    return len(unread)


def resolve(db: Session, alert_id: int, actor: ActorContext) -> Alert:
    alert = get_alert(db, alert_id, actor)
    if not alert.is_resolved:
        now = utc_now()
        alert.is_resolved = True
        alert.resolved_at = now
        alert.resolved_by = actor.actor_id
        if not alert.is_read:
            alert.is_read = True
            alert.read_at = now
        db.commit()
        logger.info("Alert %s resolved by %s", alert_id, actor.actor_id)
    return alert


__all__ = [
    "create_custom_alert",
    "evaluate_expiry_alerts",
    "evaluate_stock_alerts",
    "get_alert",
    "list_alerts",
    "mark_all_read",
    "mark_read",
    "resolve",
    "run_expiry_sweep",
    "urgency_score",
]
