from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String

from stockledger.core.constants import ActionKind
from stockledger.database.base import Base


class StockEvent(Base):
    """One immutable ledger entry.

    ``product_id`` is deliberately not a foreign key: entries outlive the
    product they describe.
    """

    __tablename__ = "stock_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, nullable=False)
    shop_id = Column(Integer)

    action_kind = Column(String(20), nullable=False)
    location = Column(String(10))
    quantity_before = Column(Integer)
    quantity_after = Column(Integer)
    change = Column(Integer, nullable=False, default=0)

    reversed = Column(Boolean, nullable=False, default=False)
    reversed_at = Column(DateTime(timezone=True))
    reversed_by = Column(String)

    timestamp = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    actor_id = Column(String, nullable=False)
    details = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("idx_stock_events_product_ts", "product_id", "timestamp"),
        Index("idx_stock_events_shop_ts", "shop_id", "timestamp"),
        Index("idx_stock_events_action", "action_kind"),
        Index("idx_stock_events_reversed", "reversed"),
    )

    @property
    def action(self) -> ActionKind:
        return ActionKind(self.action_kind)


__all__ = ["StockEvent"]
