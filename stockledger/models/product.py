from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from stockledger.core.constants import UNCATEGORIZED
from stockledger.core.stock_rules import StockRecord
from stockledger.database.base import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    shop_id = Column(Integer)

    sku = Column(String, nullable=False)
    name = Column(String, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"))

    price = Column(Float, nullable=False, default=0)
    cost_price = Column(Float)
    low_stock_threshold = Column(Integer, nullable=False, default=5)
    expiration_date = Column(Date)

    # Embedded stock record; written only by the stock service.
    godown = Column(Integer, nullable=False, default=0)
    store = Column(Integer, nullable=False, default=0)
    reserved = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    last_price_update = Column(DateTime(timezone=True))

    category = relationship("Category", lazy="joined")

    __table_args__ = (
        UniqueConstraint("shop_id", "sku", name="uq_products_shop_sku"),
        CheckConstraint("godown >= 0", name="ck_products_godown_non_negative"),
        CheckConstraint("store >= 0", name="ck_products_store_non_negative"),
        CheckConstraint("reserved >= 0", name="ck_products_reserved_non_negative"),
        CheckConstraint("total = godown + store", name="ck_products_total_matches"),
        CheckConstraint("reserved <= total", name="ck_products_available_non_negative"),
        Index("idx_products_shop", "shop_id"),
        Index("idx_products_expiration", "expiration_date"),
        # Ledger rows outlive their product; ids must never be reused.
        {"sqlite_autoincrement": True},
    )

    @property
    def category_name(self) -> str:
        if self.category is None:
            return UNCATEGORIZED
        return self.category.name

    @property
    def stock_record(self) -> StockRecord:
        return StockRecord(
            godown=self.godown or 0,
            store=self.store or 0,
            reserved=self.reserved or 0,
            low_stock_threshold=self.low_stock_threshold or 0,
            expiration_date=self.expiration_date,
        )

    def apply_stock(self, record: StockRecord) -> None:
        self.godown = record.godown
        self.store = record.store
        self.reserved = record.reserved
        self.total = record.total


__all__ = ["Product"]
