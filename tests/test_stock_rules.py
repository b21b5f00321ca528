import unittest
from datetime import date, timedelta

from stockledger.core.constants import Location, StockStatus
from stockledger.core.exceptions import InvalidStockOperation
from stockledger.core.stock_rules import StockRecord, parse_location


class StockRecordTest(unittest.TestCase):
    def test_initialize_derives_total_and_available(self):
        record = StockRecord.initialize(100, 20, reserved=15)

        self.assertEqual(record.total, 120)
        self.assertEqual(record.available(), 105)

    def test_negative_or_overreserved_record_is_rejected(self):
        with self.assertRaises(InvalidStockOperation):
            StockRecord(godown=-1)
        with self.assertRaises(InvalidStockOperation):
            StockRecord(godown=2, store=1, reserved=4)

    def test_low_stock_is_inclusive_and_excludes_zero(self):
        self.assertTrue(StockRecord(store=5, low_stock_threshold=5).is_low_stock())
        self.assertFalse(StockRecord(store=6, low_stock_threshold=5).is_low_stock())
        self.assertFalse(StockRecord(low_stock_threshold=5).is_low_stock())
        self.assertTrue(StockRecord(low_stock_threshold=5).is_out_of_stock())

    def test_low_stock_counts_both_locations(self):
        record = StockRecord(godown=4, store=3, low_stock_threshold=5)

        self.assertFalse(record.is_low_stock())
        self.assertEqual(record.stock_status(), StockStatus.IN_STOCK)

    def test_stock_status(self):
        self.assertEqual(StockRecord(low_stock_threshold=5).stock_status(), StockStatus.OUT_OF_STOCK)
        self.assertEqual(StockRecord(store=2, low_stock_threshold=5).stock_status(), StockStatus.LOW_STOCK)

    def test_expiry_windows(self):
        today = date(2026, 3, 10)
        expired = StockRecord(expiration_date=today)
        soon = StockRecord(expiration_date=today + timedelta(days=7))
        later = StockRecord(expiration_date=today + timedelta(days=8))

        self.assertTrue(expired.is_expired(today))
        self.assertFalse(expired.is_expiring_soon(7, today))
        self.assertTrue(soon.is_expiring_soon(7, today))
        self.assertFalse(later.is_expiring_soon(7, today))
        self.assertFalse(StockRecord().is_expired(today))
        self.assertIsNone(StockRecord().days_until_expiry(today))

    def test_decrease_checks_location_and_reservations(self):
        record = StockRecord(godown=60, store=10, reserved=65)

        with self.assertRaises(InvalidStockOperation) as ctx:
            record.with_decrease(Location.STORE, 11)
        self.assertEqual(ctx.exception.available, 10)
        with self.assertRaises(InvalidStockOperation):
            record.with_decrease(Location.STORE, 6)

        self.assertEqual(record.with_decrease(Location.STORE, 5).store, 5)

    def test_quantities_must_be_positive_integers(self):
        record = StockRecord(godown=10)
        for bad in (0, -3, 2.5, True):
            with self.assertRaises(InvalidStockOperation):
                record.with_increase(Location.GODOWN, bad)

    def test_move_keeps_total(self):
        record = StockRecord(godown=100)
        moved = record.with_move(Location.GODOWN, Location.STORE, 40)

        self.assertEqual((moved.godown, moved.store, moved.total), (60, 40, 100))
        self.assertEqual(record.godown, 100)

    def test_move_to_same_location_is_rejected(self):
        with self.assertRaises(InvalidStockOperation):
            StockRecord(store=3).with_move("store", "store", 1)

    def test_reserve_and_release(self):
        record = StockRecord(store=10).with_reserve(4)

        self.assertEqual(record.available(), 6)
        with self.assertRaises(InvalidStockOperation):
            record.with_reserve(7)
        with self.assertRaises(InvalidStockOperation):
            record.with_release(5)
        self.assertEqual(record.with_release(4).reserved, 0)

    def test_parse_location(self):
        self.assertIs(parse_location(" Store "), Location.STORE)
        with self.assertRaises(InvalidStockOperation):
            parse_location("attic")


if __name__ == "__main__":
    unittest.main()
