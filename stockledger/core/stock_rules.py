"""Stock record value type and the status rules derived from it.

All quantity arithmetic and every "is this product low / out / expiring"
decision lives here so routers, the mutation engine and the alert evaluator
agree on one definition.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Optional

from stockledger.core.constants import Location, StockStatus
from stockledger.core.dates import days_until
from stockledger.core.exceptions import InvalidStockOperation


def _require_quantity(value, *, name: str = "quantity", allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidStockOperation("{} must be an integer, got {!r}".format(name, value))
    if value < 0 or (value == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise InvalidStockOperation("{} must be {}, got {}".format(name, qualifier, value))
    return value


def parse_location(value) -> Location:
    if isinstance(value, Location):
        return value
    try:
        return Location(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidStockOperation("Unknown stock location: {!r}".format(value)) from exc


@dataclass(frozen=True)
class StockRecord:
    godown: int = 0
    store: int = 0
    reserved: int = 0
    low_stock_threshold: int = 0
    expiration_date: Optional[date] = None

    def __post_init__(self):
        for name in ("godown", "store", "reserved"):
            _require_quantity(getattr(self, name), name=name, allow_zero=True)
        if self.reserved > self.total:
            raise InvalidStockOperation(
                "reserved ({}) exceeds total stock ({})".format(self.reserved, self.total),
                requested=self.reserved,
                available=self.total,
            )

    @classmethod
    def initialize(
        cls,
        godown0: int = 0,
        store0: int = 0,
        *,
        reserved: int = 0,
        low_stock_threshold: int = 0,
        expiration_date: Optional[date] = None,
    ) -> "StockRecord":
        return cls(
            godown=godown0,
            store=store0,
            reserved=reserved,
            low_stock_threshold=low_stock_threshold,
            expiration_date=expiration_date,
        )

    @property
    def total(self) -> int:
        return self.godown + self.store

    def available(self) -> int:
        return self.total - self.reserved

    def quantity_at(self, location) -> int:
        location = parse_location(location)
        return self.godown if location is Location.GODOWN else self.store

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def is_out_of_stock(self) -> bool:
        return self.total == 0

    def is_low_stock(self) -> bool:
        return 0 < self.total <= self.low_stock_threshold

    def stock_status(self) -> StockStatus:
        if self.is_out_of_stock():
            return StockStatus.OUT_OF_STOCK
        if self.is_low_stock():
            return StockStatus.LOW_STOCK
        return StockStatus.IN_STOCK

    def days_until_expiry(self, today=None) -> Optional[int]:
        return days_until(self.expiration_date, today)

    def is_expired(self, today=None) -> bool:
        days = self.days_until_expiry(today)
        return days is not None and days <= 0

    def is_expiring_soon(self, window_days: int, today=None) -> bool:
        days = self.days_until_expiry(today)
        return days is not None and 0 < days <= window_days

    # ------------------------------------------------------------------
    # Transitions (each returns a new, validated record)
    # ------------------------------------------------------------------
    def _with_location(self, location: Location, quantity: int) -> "StockRecord":
        if location is Location.GODOWN:
            return replace(self, godown=quantity)
        return replace(self, store=quantity)

    def with_increase(self, location, qty: int) -> "StockRecord":
        location = parse_location(location)
        qty = _require_quantity(qty)
        return self._with_location(location, self.quantity_at(location) + qty)

    def with_decrease(self, location, qty: int) -> "StockRecord":
        location = parse_location(location)
        qty = _require_quantity(qty)
        on_hand = self.quantity_at(location)
        if qty > on_hand:
            raise InvalidStockOperation(
                "Insufficient stock in {}. Available: {}, Requested: {}".format(
                    location.value, on_hand, qty
                ),
                requested=qty,
                available=on_hand,
            )
        if qty > self.available():
            raise InvalidStockOperation(
                "Insufficient unreserved stock. Available: {}, Requested: {}".format(
                    self.available(), qty
                ),
                requested=qty,
                available=self.available(),
            )
        return self._with_location(location, on_hand - qty)

    def with_move(self, source, destination, qty: int) -> "StockRecord":
        source = parse_location(source)
        destination = parse_location(destination)
        if source is destination:
            raise InvalidStockOperation("Source and destination locations must differ")
        qty = _require_quantity(qty)
        on_hand = self.quantity_at(source)
        if qty > on_hand:
            raise InvalidStockOperation(
                "Insufficient stock in {}. Available: {}, Requested: {}".format(
                    source.value, on_hand, qty
                ),
                requested=qty,
                available=on_hand,
            )
        moved = self._with_location(source, on_hand - qty)
        return moved._with_location(destination, moved.quantity_at(destination) + qty)

    def with_reserve(self, qty: int) -> "StockRecord":
        qty = _require_quantity(qty)
        if qty > self.available():
            raise InvalidStockOperation(
                "Cannot reserve {} units; only {} available".format(qty, self.available()),
                requested=qty,
                available=self.available(),
            )
        return replace(self, reserved=self.reserved + qty)

    def with_release(self, qty: int) -> "StockRecord":
        qty = _require_quantity(qty)
        if qty > self.reserved:
            raise InvalidStockOperation(
                "Cannot release {} units; only {} reserved".format(qty, self.reserved),
                requested=qty,
                available=self.reserved,
            )
        return replace(self, reserved=self.reserved - qty)


__all__ = ["StockRecord", "parse_location"]
