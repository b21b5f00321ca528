from datetime import datetime
from typing import List, Union

from pydantic import BaseModel


class SalesTotals(BaseModel):
    units_sold: int
    revenue: float
    cost: float
    transactions: int


class SalesRow(SalesTotals):
    key: Union[int, str]
    label: str


class SalesSummaryRead(BaseModel):
    start: datetime
    end: datetime
    group_by: str
    totals: SalesTotals
    rows: List[SalesRow]


class TopProductRead(BaseModel):
    product_id: int
    name: str
    units_sold: int
    revenue: float
    transactions: int


class CategoryPerformanceRead(BaseModel):
    category: str
    units_sold: int
    revenue: float
    cost: float
    margin: float
    transactions: int


class StockAddedRead(BaseModel):
    units: int
    cost: float
    count: int


class MovementRead(BaseModel):
    action: str
    count: int
    units: int
    value: float


class PromotionBucket(BaseModel):
    units_sold: int
    revenue: float
    transactions: int


class PromotionImpactRead(BaseModel):
    promo: PromotionBucket
    regular: PromotionBucket


class PriceChangeRead(BaseModel):
    event_id: int
    product_id: int
    name: str
    old_price: float
    new_price: float
    delta: float
    percent_change: float
    timestamp: datetime
    actor_id: str


class PriceChangesRead(BaseModel):
    count: int
    recent: List[PriceChangeRead]


class AnalyticsDetailRead(BaseModel):
    start: datetime
    end: datetime
    sales: SalesTotals
    top_products: List[TopProductRead]
    categories: List[CategoryPerformanceRead]
    stock_added: StockAddedRead
    movements: List[MovementRead]
    promotions: PromotionImpactRead
    price_changes: PriceChangesRead


class StockLocationsRead(BaseModel):
    godown: int
    store: int


class StockOverviewRead(BaseModel):
    products: int
    total_units: int
    reserved_units: int
    available_units: int
    locations: StockLocationsRead
    low_stock: int
    out_of_stock: int
    stock_value: float


class SalesTrendPoint(BaseModel):
    period: str
    units_sold: int
    revenue: float
    transactions: int
