from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.core.constants import AlertKind, Severity
from stockledger.core.security import ActorContext
from stockledger.dependencies import get_actor, get_db
from stockledger.schemas.alert import (
    AlertListResponse,
    AlertRead,
    AlertSweepResult,
    MarkAllReadResult,
)
from stockledger.services import alert_service

router = APIRouter(prefix="/alerts", tags=["Alerts"])


def _alert_read(alert, score: Optional[float] = None) -> AlertRead:
    if score is None:
        score = alert_service.urgency_score(alert)
    return AlertRead.model_validate(alert).model_copy(update={"urgency_score": round(score, 2)})


@router.get("", response_model=AlertListResponse)
def list_alerts(
    kind: Optional[AlertKind] = Query(None),
    severity: Optional[Severity] = Query(None),
    is_read: Optional[bool] = Query(None),
    is_resolved: Optional[bool] = Query(None),
    product_id: Optional[int] = Query(None),
    sort: str = Query("created_at", pattern="^(created_at|urgency)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    result = alert_service.list_alerts(
        db,
        actor=actor,
        kind=kind,
        severity=severity,
        is_read=is_read,
        is_resolved=is_resolved,
        product_id=product_id,
        sort=sort,
        page=page,
        limit=limit,
    )
    return AlertListResponse(
        items=[_alert_read(alert, score) for alert, score in result["items"]],
        pagination=result["pagination"],
        summary=result["summary"],
    )


@router.post("/read-all", response_model=MarkAllReadResult)
def mark_all_read(db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return MarkAllReadResult(updated=alert_service.mark_all_read(db, actor))


@router.post("/sweep", response_model=AlertSweepResult)
def run_sweep(
    today: Optional[date] = Query(None, description="Override the sweep date"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return alert_service.run_expiry_sweep(db, today=today, shop_id=actor.shop_id)


@router.post("/{alert_id}/read", response_model=AlertRead)
def mark_read(alert_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return _alert_read(alert_service.mark_read(db, alert_id, actor))


@router.post("/{alert_id}/resolve", response_model=AlertRead)
def resolve(alert_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return _alert_read(alert_service.resolve(db, alert_id, actor))


__all__ = ["router"]
