from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from stockledger.core.security import ActorContext
from stockledger.dependencies import get_actor, get_db
from stockledger.schemas.product import (
    CategoryCreate,
    CategoryRead,
    PriceChangeRequest,
    ProductCreate,
    ProductRead,
    ProductUpdate,
)
from stockledger.routers.stock import mutation_response
from stockledger.schemas.stock import StockMutationRead
from stockledger.services import product_service, stock_service

router = APIRouter(tags=["Products"])


@router.post("/categories", response_model=CategoryRead, status_code=201)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return product_service.create_category(db, payload.name, actor=actor)


@router.get("/categories", response_model=list[CategoryRead])
def list_categories(db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return product_service.list_categories(db, actor=actor)


@router.post("/products", response_model=ProductRead, status_code=201)
def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    product = product_service.create_product(db, actor=actor, **payload.model_dump())
    return ProductRead(**product_service.serialize_product(product))


@router.get("/products", response_model=list[ProductRead])
def list_products(
    category_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    products = product_service.list_products(
        db, actor=actor, category_id=category_id, limit=limit, offset=offset
    )
    return [ProductRead(**product_service.serialize_product(product)) for product in products]


@router.get("/products/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    product = product_service.get_product(db, product_id, actor=actor)
    return ProductRead(**product_service.serialize_product(product))


@router.patch("/products/{product_id}", response_model=ProductRead)
def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    product = product_service.update_product(
        db, product_id, actor=actor, **payload.model_dump(exclude_unset=True)
    )
    return ProductRead(**product_service.serialize_product(product))


@router.delete("/products/{product_id}", status_code=204)
def delete_product(product_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    product_service.delete_product(db, product_id, actor=actor)
    return Response(status_code=204)


@router.post("/products/{product_id}/price", response_model=StockMutationRead)
def change_price(
    product_id: int,
    payload: PriceChangeRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return mutation_response(stock_service.change_price(db, product_id, payload.price, actor=actor))


__all__ = ["router"]
