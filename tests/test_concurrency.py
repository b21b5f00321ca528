import os
import tempfile
import threading
import unittest

from sqlalchemy.orm import sessionmaker

from stockledger.core.constants import ActionKind
from stockledger.core.exceptions import InvalidStockOperation
from stockledger.core.security import ActorContext
from stockledger.database import create_schema
from stockledger.database.engine import build_engine
from stockledger.models.product import Product
from stockledger.services import ledger_service, product_service, stock_service

ACTOR = ActorContext(actor_id="till", shop_id=1)


class ConcurrentConsumeTest(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        path = os.path.join(self.tmpdir.name, "ledger.db")
        self.engine = build_engine("sqlite:///{}".format(path))
        create_schema(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

        db = self.Session()
        try:
            self.product_id = product_service.create_product(
                db, actor=ACTOR, sku="GUM", name="Gum", price=1.0, initial_godown=0, initial_store=10
            ).id
        finally:
            db.close()

    def tearDown(self):
        self.engine.dispose()
        self.tmpdir.cleanup()

    def test_same_product_never_oversells(self):
        workers = 16
        barrier = threading.Barrier(workers)
        outcomes = []
        outcomes_lock = threading.Lock()

        def consume_one():
            db = self.Session()
            try:
                barrier.wait()
                try:
                    stock_service.consume(db, self.product_id, "store", 1, actor=ACTOR)
                    outcome = "ok"
                except InvalidStockOperation:
                    outcome = "rejected"
            finally:
                db.close()
            with outcomes_lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=consume_one) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        self.assertEqual(outcomes.count("ok"), 10)
        self.assertEqual(outcomes.count("rejected"), 6)

        db = self.Session()
        try:
            product = db.get(Product, self.product_id)
            self.assertEqual((product.store, product.total), (0, 0))
            sales = ledger_service.query_events(db, product_id=self.product_id, actions=[ActionKind.REDUCE])
            self.assertEqual(len(sales), 10)
            self.assertEqual(
                [event.quantity_before for event in sales],
                list(range(10, 0, -1)),
            )
            self.assertTrue(ledger_service.verify_stock(db, product)["consistent"])
        finally:
            db.close()


if __name__ == "__main__":
    unittest.main()
