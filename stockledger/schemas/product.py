from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)


class CategoryRead(BaseModel):
    id: int
    shop_id: Optional[int] = None
    name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductBase(BaseModel):
    sku: str = Field(min_length=1)
    name: str = Field(min_length=1)
    price: float = 0.0
    cost_price: Optional[float] = None
    category_id: Optional[int] = None
    low_stock_threshold: Optional[int] = None
    expiration_date: Optional[date] = None


class ProductCreate(ProductBase):
    initial_godown: Optional[int] = None
    initial_store: Optional[int] = None
    initial_quantity: Optional[int] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    cost_price: Optional[float] = None
    category_id: Optional[int] = None
    low_stock_threshold: Optional[int] = None
    expiration_date: Optional[date] = None


class PriceChangeRequest(BaseModel):
    price: float


class StockLevelsRead(BaseModel):
    godown: int
    store: int
    reserved: int
    total: int
    available: int


class ProductRead(BaseModel):
    id: int
    shop_id: Optional[int] = None
    sku: str
    name: str
    category_id: Optional[int] = None
    category: str
    price: float
    cost_price: Optional[float] = None
    low_stock_threshold: int
    expiration_date: Optional[date] = None
    stock: StockLevelsRead
    stock_status: str
    is_low_stock: bool
    is_out_of_stock: bool
    days_until_expiry: Optional[int] = None
    is_expired: bool
    is_expiring_soon: bool
    days_active: Optional[int] = None
    last_price_update: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
