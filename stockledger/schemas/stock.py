from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from stockledger.core.constants import Location
from stockledger.schemas.ledger import StockEventRead
from stockledger.schemas.product import ProductRead


class RestockRequest(BaseModel):
    location: Location
    quantity: int
    reason: str = ""
    reference: str = ""


class ConsumeRequest(RestockRequest):
    sale_price: Optional[float] = None


class MoveRequest(BaseModel):
    source: Location = Field(alias="from")
    destination: Location = Field(alias="to")
    quantity: int
    reason: str = ""

    model_config = ConfigDict(populate_by_name=True)


class ReservationRequest(BaseModel):
    quantity: int
    reference: str = ""


class BulkReduceLineIn(BaseModel):
    product_id: int
    quantity: int
    location: Location = Location.STORE
    sale_price: Optional[float] = None


class BulkReduceRequest(BaseModel):
    lines: List[BulkReduceLineIn] = Field(min_length=1)
    reason: str = ""
    reference: str = ""


class BulkReduceLineRead(BaseModel):
    product_id: int
    quantity: int
    success: bool
    event_id: Optional[int] = None
    error: Optional[str] = None
    code: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BulkReduceResponse(BaseModel):
    succeeded: int
    failed: int
    lines: List[BulkReduceLineRead]


class StockMutationRead(BaseModel):
    product: ProductRead
    event: Optional[StockEventRead] = None


class StockCountsRead(BaseModel):
    godown: int
    store: int
    reserved: int
    total: int
    available: int


class StockVerificationRead(BaseModel):
    product_id: int
    consistent: bool
    stored: StockCountsRead
    replayed: Optional[StockCountsRead] = None
    error: Optional[str] = None
