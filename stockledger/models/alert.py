from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, text

from stockledger.core.constants import AlertKind, Severity
from stockledger.database.base import Base


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True)
    kind = Column(String(20), nullable=False)
    severity = Column(String(10), nullable=False, default=Severity.INFO.value)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)

    product_id = Column(Integer)
    shop_id = Column(Integer)
    user_id = Column(String)

    is_read = Column(Boolean, nullable=False, default=False)
    is_resolved = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True))
    resolved_at = Column(DateTime(timezone=True))
    resolved_by = Column(String)

    context = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index(
            "uq_alerts_open_product_kind",
            "product_id",
            "kind",
            unique=True,
            sqlite_where=text("is_resolved = 0"),
            postgresql_where=text("is_resolved = false"),
        ),
        Index("idx_alerts_shop_read_created", "shop_id", "is_read", "created_at"),
        Index("idx_alerts_resolved_created", "is_resolved", "created_at"),
    )

    @property
    def alert_kind(self) -> AlertKind:
        return AlertKind(self.kind)

    @property
    def alert_severity(self) -> Severity:
        return Severity(self.severity)


__all__ = ["Alert"]
