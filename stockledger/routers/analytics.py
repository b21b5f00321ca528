from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.core.security import ActorContext
from stockledger.dependencies import get_actor, get_db
from stockledger.schemas.analytics import (
    AnalyticsDetailRead,
    CategoryPerformanceRead,
    MovementRead,
    PriceChangesRead,
    PromotionImpactRead,
    SalesSummaryRead,
    SalesTrendPoint,
    StockAddedRead,
    StockOverviewRead,
    TopProductRead,
)
from stockledger.services import analytics_service

router = APIRouter(prefix="/analytics", tags=["Analytics"])


class Window:
    """``[start, end)`` query parameters; both default to today so far (UTC)."""

    def __init__(
        self,
        start: Optional[datetime] = Query(None, description="Inclusive window start"),
        end: Optional[datetime] = Query(None, description="Exclusive window end"),
    ):
        self.start = start
        self.end = end


@router.get("/sales", response_model=SalesSummaryRead)
def sales(
    window: Window = Depends(),
    group_by: str = Query("none", description="none|product|category|hour|day|week|month"),
    top_n: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return analytics_service.sales_summary(
        db, start=window.start, end=window.end, group_by=group_by, top_n=top_n, shop_id=actor.shop_id
    )


@router.get("/top-products", response_model=List[TopProductRead])
def top_products(
    window: Window = Depends(),
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return analytics_service.top_products(
        db, start=window.start, end=window.end, limit=limit, shop_id=actor.shop_id
    )


@router.get("/categories", response_model=List[CategoryPerformanceRead])
def categories(
    window: Window = Depends(),
    top_n: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return analytics_service.category_performance(
        db, start=window.start, end=window.end, top_n=top_n, shop_id=actor.shop_id
    )


@router.get("/stock-added", response_model=StockAddedRead)
def stock_added(window: Window = Depends(), db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return analytics_service.stock_added(db, start=window.start, end=window.end, shop_id=actor.shop_id)


@router.get("/movements", response_model=List[MovementRead])
def movements(window: Window = Depends(), db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return analytics_service.movement_summary(db, start=window.start, end=window.end, shop_id=actor.shop_id)


@router.get("/promotions", response_model=PromotionImpactRead)
def promotions(window: Window = Depends(), db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return analytics_service.promotion_impact(db, start=window.start, end=window.end, shop_id=actor.shop_id)


@router.get("/price-changes", response_model=PriceChangesRead)
def price_changes(
    window: Window = Depends(),
    recent: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return analytics_service.price_changes(
        db, start=window.start, end=window.end, recent=recent, shop_id=actor.shop_id
    )


@router.get("/detail", response_model=AnalyticsDetailRead)
def detail(window: Window = Depends(), db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return analytics_service.detail(db, start=window.start, end=window.end, shop_id=actor.shop_id)


@router.get("/overview", response_model=StockOverviewRead)
def overview(db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return analytics_service.stock_overview(db, shop_id=actor.shop_id)


@router.get("/trend", response_model=List[SalesTrendPoint])
def trend(
    period: str = Query("day", description="hour|day|week|month"),
    days: int = Query(30, ge=1, le=366),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return analytics_service.sales_trend(db, period=period, days=days, shop_id=actor.shop_id)


__all__ = ["router"]
