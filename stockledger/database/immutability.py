"""ORM guard that keeps ledger entries append-only.

A ``before_flush`` listener inspects every pending ``StockEvent`` update and
delete. The reversal toggle (``reversed`` flipping from false to true, with
its ``reversed_at``/``reversed_by`` stamp) is the only permitted change;
anything else raises ``LedgerImmutabilityError`` before SQL is emitted and
the flush is aborted.

Bulk ``update()``/``delete()`` statements bypass ORM events and are not
covered here.
"""
import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from stockledger.core.exceptions import LedgerImmutabilityError

logger = logging.getLogger(__name__)

REVERSAL_FIELDS = frozenset({"reversed", "reversed_at", "reversed_by"})


def _changed_fields(target) -> set:
    state = inspect(target)
    changed = set()
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.has_changes():
            changed.add(attr.key)
    return changed


def _is_reversal_toggle(target, changed: set) -> bool:
    if not changed <= REVERSAL_FIELDS or "reversed" not in changed:
        return False
    history = inspect(target).attrs["reversed"].history
    previous = history.deleted[0] if history.deleted else None
    return not previous and bool(target.reversed)


def _check_stock_events_before_flush(session, _flush_context, _instances):
    from stockledger.models.stock_event import StockEvent

    for obj in list(session.deleted):
        if isinstance(obj, StockEvent):
            logger.error("Blocked delete of ledger entry %s", obj.id)
            raise LedgerImmutabilityError(obj.id)

    for obj in list(session.dirty):
        if not isinstance(obj, StockEvent):
            continue
        if not session.is_modified(obj, include_collections=False):
            continue
        changed = _changed_fields(obj)
        if not changed or _is_reversal_toggle(obj, changed):
            continue
        logger.error("Blocked update of ledger entry %s (fields: %s)", obj.id, sorted(changed))
        raise LedgerImmutabilityError(obj.id, changed)


def register_immutability_listeners() -> None:
    if not event.contains(Session, "before_flush", _check_stock_events_before_flush):
        event.listen(Session, "before_flush", _check_stock_events_before_flush)


def unregister_immutability_listeners() -> None:
    if event.contains(Session, "before_flush", _check_stock_events_before_flush):
        event.remove(Session, "before_flush", _check_stock_events_before_flush)


__all__ = [
    "REVERSAL_FIELDS",
    "register_immutability_listeners",
    "unregister_immutability_listeners",
]
