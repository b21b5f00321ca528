from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.core.exceptions import LedgerEntryNotFound
from stockledger.core.security import ActorContext
from stockledger.dependencies import get_actor, get_db
from stockledger.schemas.ledger import StockEventRead
from stockledger.schemas.product import ProductRead
from stockledger.schemas.stock import (
    BulkReduceLineRead,
    BulkReduceRequest,
    BulkReduceResponse,
    ConsumeRequest,
    MoveRequest,
    ReservationRequest,
    RestockRequest,
    StockMutationRead,
    StockVerificationRead,
)
from stockledger.services import ledger_service, product_service, stock_service

router = APIRouter(prefix="/stock", tags=["Stock"])


def mutation_response(result: stock_service.StockMutation) -> StockMutationRead:
    return StockMutationRead(
        product=ProductRead(**product_service.serialize_product(result.product)),
        event=StockEventRead.model_validate(result.event) if result.event is not None else None,
    )


@router.post("/{product_id}/restock", response_model=StockMutationRead)
def restock(
    product_id: int,
    payload: RestockRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    result = stock_service.restock(
        db,
        product_id,
        payload.location,
        payload.quantity,
        actor=actor,
        reason=payload.reason,
        reference=payload.reference,
    )
    return mutation_response(result)


@router.post("/{product_id}/consume", response_model=StockMutationRead)
def consume(
    product_id: int,
    payload: ConsumeRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    result = stock_service.consume(
        db,
        product_id,
        payload.location,
        payload.quantity,
        actor=actor,
        sale_price=payload.sale_price,
        reason=payload.reason,
        reference=payload.reference,
    )
    return mutation_response(result)


@router.post("/{product_id}/move", response_model=StockMutationRead)
def move(
    product_id: int,
    payload: MoveRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    result = stock_service.move_stock(
        db,
        product_id,
        payload.source,
        payload.destination,
        payload.quantity,
        actor=actor,
        reason=payload.reason,
    )
    return mutation_response(result)


@router.post("/{product_id}/reserve", response_model=StockMutationRead)
def reserve(
    product_id: int,
    payload: ReservationRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    result = stock_service.reserve(db, product_id, payload.quantity, actor=actor, reference=payload.reference)
    return mutation_response(result)


@router.post("/{product_id}/release", response_model=StockMutationRead)
def release(
    product_id: int,
    payload: ReservationRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    result = stock_service.release(db, product_id, payload.quantity, actor=actor, reference=payload.reference)
    return mutation_response(result)


@router.post("/bulk-reduce", response_model=BulkReduceResponse)
def bulk_reduce(
    payload: BulkReduceRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    lines = [
        stock_service.BulkReduceLine(
            product_id=line.product_id,
            quantity=line.quantity,
            location=line.location,
            sale_price=line.sale_price,
        )
        for line in payload.lines
    ]
    result = stock_service.bulk_reduce(
        db, lines, actor=actor, reason=payload.reason, reference=payload.reference
    )
    return BulkReduceResponse(
        succeeded=result.succeeded,
        failed=result.failed,
        lines=[BulkReduceLineRead.model_validate(line) for line in result.lines],
    )


@router.post("/reverse/{event_id}", response_model=StockMutationRead)
def reverse(event_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    event = ledger_service.get_event(db, event_id)
    if actor.shop_id is not None and event.shop_id != actor.shop_id:
        raise LedgerEntryNotFound(event_id)
    return mutation_response(stock_service.reverse(db, event_id, actor=actor))


@router.get("/{product_id}/verify", response_model=StockVerificationRead)
def verify(product_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    product = product_service.get_product(db, product_id, actor=actor)
    return ledger_service.verify_stock(db, product)


__all__ = ["mutation_response", "router"]
