from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.core.constants import ActionKind
from stockledger.core.exceptions import LedgerEntryNotFound
from stockledger.core.security import ActorContext
from stockledger.dependencies import get_actor, get_db
from stockledger.schemas.ledger import LedgerPage, StockEventRead
from stockledger.services import ledger_service

router = APIRouter(prefix="/ledger", tags=["Ledger"])


@router.get("", response_model=LedgerPage)
def list_entries(
    product_id: Optional[int] = Query(None),
    action: Optional[List[ActionKind]] = Query(None, description="Action kinds (repeatable)"),
    start: Optional[datetime] = Query(None, description="Inclusive window start"),
    end: Optional[datetime] = Query(None, description="Exclusive window end"),
    reversed: Optional[bool] = Query(None),
    newest_first: bool = Query(True),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    filters = dict(
        product_id=product_id,
        shop_id=actor.shop_id,
        start=start,
        end=end,
        actions=action,
        reversed=reversed,
    )
    items = ledger_service.query_events(
        db, newest_first=newest_first, limit=limit, offset=offset, **filters
    )
    return LedgerPage(
        items=[StockEventRead.model_validate(item) for item in items],
        total=ledger_service.count_events(db, **filters),
        limit=limit,
        offset=offset,
    )


@router.get("/{event_id}", response_model=StockEventRead)
def get_entry(event_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    event = ledger_service.get_event(db, event_id)
    if actor.shop_id is not None and event.shop_id != actor.shop_id:
        raise LedgerEntryNotFound(event_id)
    return event


__all__ = ["router"]
