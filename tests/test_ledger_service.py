import unittest
from datetime import timedelta

from sqlalchemy.orm import sessionmaker

from stockledger.core.constants import ActionKind
from stockledger.core.dates import utc_now
from stockledger.core.exceptions import LedgerEntryNotFound, LedgerImmutabilityError
from stockledger.core.security import ActorContext
from stockledger.database import create_schema
from stockledger.database.engine import build_engine
from stockledger.models.product import Product
from stockledger.models.stock_event import StockEvent
from stockledger.services import ledger_service, product_service, stock_service

ACTOR = ActorContext(actor_id="auditor", shop_id=3)


class LedgerServiceTest(unittest.TestCase):
    def setUp(self):
        self.engine = build_engine("sqlite://")
        create_schema(self.engine)
        self.db = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)()
        self.product = product_service.create_product(
            self.db, actor=ACTOR, sku="TEA", name="Green Tea", price=4.0, initial_godown=20, initial_store=20
        )
        self.sale = stock_service.consume(self.db, self.product.id, "store", 2, actor=ACTOR)
        stock_service.restock(self.db, self.product.id, "godown", 5, actor=ACTOR)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_entries_cannot_be_edited(self):
        event = ledger_service.get_event(self.db, self.sale.event.id)
        event.change = -200

        with self.assertRaises(LedgerImmutabilityError):
            self.db.commit()
        self.db.rollback()
        self.assertEqual(ledger_service.get_event(self.db, self.sale.event.id, for_update=True).change, -2)

    def test_entries_cannot_be_deleted(self):
        event = ledger_service.get_event(self.db, self.sale.event.id)
        self.db.delete(event)

        with self.assertRaises(LedgerImmutabilityError):
            self.db.commit()
        self.db.rollback()

    def test_reversed_flag_cannot_be_cleared(self):
        stock_service.reverse(self.db, self.sale.event.id, actor=ACTOR)
        event = ledger_service.get_event(self.db, self.sale.event.id)
        event.reversed = False

        with self.assertRaises(LedgerImmutabilityError):
            self.db.commit()
        self.db.rollback()

    def test_entries_survive_product_deletion(self):
        product_service.delete_product(self.db, self.product.id, actor=ACTOR)

        self.assertIsNone(self.db.get(Product, self.product.id))
        self.assertEqual(len(ledger_service.query_events(self.db, product_id=self.product.id)), 3)

    def test_query_filters_and_ordering(self):
        newest = ledger_service.query_events(self.db, product_id=self.product.id, newest_first=True)
        self.assertEqual(
            [event.action for event in newest],
            [ActionKind.INCREASE, ActionKind.REDUCE, ActionKind.CREATE],
        )

        sales = ledger_service.query_events(self.db, shop_id=3, actions=[ActionKind.REDUCE])
        self.assertEqual([event.id for event in sales], [self.sale.event.id])
        self.assertEqual(ledger_service.count_events(self.db, shop_id=3), 3)
        self.assertEqual(ledger_service.count_events(self.db, shop_id=4), 0)

        future = utc_now() + timedelta(hours=1)
        self.assertEqual(ledger_service.query_events(self.db, start=future), [])
        self.assertEqual(len(ledger_service.query_events(self.db, end=future, limit=2)), 2)

    def test_reversed_filter(self):
        stock_service.reverse(self.db, self.sale.event.id, actor=ACTOR)

        self.assertEqual(ledger_service.count_events(self.db, reversed=True), 1)
        self.assertEqual(ledger_service.count_events(self.db, reversed=False), 2)

    def test_unknown_entry(self):
        with self.assertRaises(LedgerEntryNotFound):
            ledger_service.get_event(self.db, 12345)

    def test_verify_detects_drift(self):
        product = self.db.get(Product, self.product.id)
        product.store = 30
        product.total = product.godown + product.store
        self.db.commit()

        check = ledger_service.verify_stock(self.db, product)

        self.assertFalse(check["consistent"])
        self.assertEqual(check["replayed"]["store"], 18)

    def test_replay_uses_change_when_before_after_missing(self):
        legacy = StockEvent(
            product_id=self.product.id,
            shop_id=3,
            action_kind=ActionKind.REDUCE.value,
            location="store",
            change=-1,
            reversed=False,
            timestamp=utc_now(),
            actor_id="import",
            details={},
        )
        self.db.add(legacy)
        self.db.commit()

        self.assertEqual(ledger_service.replay_stock(self.db, self.product.id).store, 17)


if __name__ == "__main__":
    unittest.main()
