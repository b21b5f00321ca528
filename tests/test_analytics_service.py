import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import sessionmaker

from stockledger.core.constants import ActionKind
from stockledger.core.dates import utc_now
from stockledger.core.exceptions import InvalidStockOperation
from stockledger.core.security import ActorContext
from stockledger.database import create_schema
from stockledger.database.engine import build_engine
from stockledger.models.stock_event import StockEvent
from stockledger.services import analytics_service, product_service, stock_service

ACTOR = ActorContext(actor_id="cashier", shop_id=1)


class AnalyticsServiceTest(unittest.TestCase):
    def setUp(self):
        self.engine = build_engine("sqlite://")
        create_schema(self.engine)
        self.db = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)()
        self.start = utc_now() - timedelta(hours=1)
        self.dairy = product_service.create_category(self.db, "Dairy", actor=ACTOR)
        self.cheese = product_service.create_product(
            self.db,
            actor=ACTOR,
            sku="CHEESE",
            name="Cheddar",
            price=10.0,
            cost_price=6.0,
            category_id=self.dairy.id,
            initial_godown=50,
            initial_store=50,
        )

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _window(self):
        return dict(start=self.start, end=utc_now() + timedelta(hours=1))

    def _sell(self, *quantities, product=None, **kwargs):
        product = product or self.cheese
        return [
            stock_service.consume(self.db, product.id, "store", quantity, actor=ACTOR, **kwargs).event
            for quantity in quantities
        ]

    def test_sales_summary_totals(self):
        self._sell(2, 3, 5)

        totals = analytics_service.sales_summary(self.db, **self._window())["totals"]

        self.assertEqual(totals["units_sold"], 10)
        self.assertEqual(totals["revenue"], 100.0)
        self.assertEqual(totals["cost"], 60.0)
        self.assertEqual(totals["transactions"], 3)

    def test_reversed_sale_drops_out(self):
        events = self._sell(2, 3, 5)
        stock_service.reverse(self.db, events[2].id, actor=ACTOR)

        totals = analytics_service.sales_summary(self.db, **self._window())["totals"]

        self.assertEqual(totals["units_sold"], 5)
        self.assertEqual(totals["revenue"], 50.0)
        self.assertEqual(totals["transactions"], 2)

    def test_empty_window_returns_zeros(self):
        later = utc_now() + timedelta(days=1)
        summary = analytics_service.sales_summary(self.db, start=later, end=later + timedelta(days=1))

        self.assertEqual(summary["totals"], {"units_sold": 0, "revenue": 0.0, "cost": 0.0, "transactions": 0})
        self.assertEqual(summary["rows"], [])
        self.assertEqual(analytics_service.promotion_impact(self.db, start=later)["promo"]["units_sold"], 0)

    def test_sale_without_before_after_counts_one_unit(self):
        self.db.add(
            StockEvent(
                product_id=self.cheese.id,
                shop_id=1,
                action_kind=ActionKind.BULK_REDUCE.value,
                location="store",
                change=-4,
                reversed=False,
                timestamp=utc_now(),
                actor_id="import",
                details={},
            )
        )
        self.db.commit()

        totals = analytics_service.sales_summary(self.db, **self._window())["totals"]

        self.assertEqual(totals["units_sold"], 1)
        self.assertEqual(totals["revenue"], 10.0)

    def test_group_by_product_and_category(self):
        bread = product_service.create_product(
            self.db, actor=ACTOR, sku="BREAD", name="Bread", price=3.0, initial_store=40
        )
        self._sell(2)
        self._sell(6, product=bread)

        by_product = analytics_service.sales_summary(self.db, group_by="product", **self._window())["rows"]
        self.assertEqual([row["label"] for row in by_product], ["Cheddar", "Bread"])

        categories = analytics_service.category_performance(self.db, **self._window())
        self.assertEqual([row["category"] for row in categories], ["Dairy", "Uncategorized"])
        self.assertEqual(categories[0]["margin"], 8.0)

        top = analytics_service.top_products(self.db, limit=1, **self._window())
        self.assertEqual(top[0]["name"], "Bread")

    def test_deleted_product_counts_at_zero_price(self):
        self._sell(4)
        product_service.delete_product(self.db, self.cheese.id, actor=ACTOR)

        summary = analytics_service.sales_summary(self.db, group_by="category", **self._window())

        self.assertEqual(summary["totals"]["units_sold"], 4)
        self.assertEqual(summary["totals"]["revenue"], 0.0)
        self.assertEqual(summary["rows"][0]["key"], "Uncategorized")

    def test_new_product_does_not_inherit_deleted_history(self):
        self._sell(20)
        old_id = self.cheese.id
        product_service.delete_product(self.db, old_id, actor=ACTOR)

        fresh = product_service.create_product(
            self.db, actor=ACTOR, sku="NEW", name="New", price=99.0, initial_store=5
        )

        self.assertNotEqual(fresh.id, old_id)
        rows = analytics_service.sales_summary(self.db, group_by="category", **self._window())["rows"]
        self.assertEqual([(row["key"], row["units_sold"], row["revenue"]) for row in rows], [("Uncategorized", 20, 0.0)])

        sale = self._sell(1, product=fresh)[0]
        reversed_sale = stock_service.reverse(self.db, sale.id, actor=ACTOR)
        self.assertEqual(reversed_sale.product.store, 5)

    def test_time_buckets(self):
        self._sell(1)
        day = analytics_service.sales_summary(self.db, group_by="day", **self._window())["rows"]

        self.assertEqual(day[0]["key"], utc_now().strftime("%Y-%m-%d"))
        with self.assertRaises(InvalidStockOperation):
            analytics_service.sales_summary(self.db, group_by="fortnight")

    def test_stock_added_and_movements(self):
        stock_service.restock(self.db, self.cheese.id, "godown", 20, actor=ACTOR)
        stock_service.move_stock(self.db, self.cheese.id, "godown", "store", 5, actor=ACTOR)
        self._sell(3)

        added = analytics_service.stock_added(self.db, **self._window())
        self.assertEqual(added, {"units": 120, "cost": 720.0, "count": 2})

        movements = {row["action"]: row for row in analytics_service.movement_summary(self.db, **self._window())}
        self.assertEqual(movements["Move"]["units"], 5)
        self.assertEqual(movements["Reduce"]["value"], 30.0)
        self.assertEqual(movements["Create"]["count"], 1)

    def test_promotion_impact_uses_price_at_time_of_sale(self):
        self._sell(2, sale_price=8.0)
        self._sell(1)
        self._sell(1, sale_price=11.0)
        stock_service.change_price(self.db, self.cheese.id, 12.0, actor=ACTOR)
        self._sell(3, sale_price=11.0)

        impact = analytics_service.promotion_impact(self.db, **self._window())

        self.assertEqual(impact["promo"], {"units_sold": 5, "revenue": 49.0, "transactions": 2})
        self.assertEqual(impact["regular"], {"units_sold": 2, "revenue": 21.0, "transactions": 2})

    def test_price_changes(self):
        stock_service.change_price(self.db, self.cheese.id, 12.0, actor=ACTOR)
        stock_service.change_price(self.db, self.cheese.id, 9.0, actor=ACTOR)

        changes = analytics_service.price_changes(self.db, recent=1, **self._window())

        self.assertEqual(changes["count"], 2)
        self.assertEqual(len(changes["recent"]), 1)
        self.assertEqual(changes["recent"][0]["delta"], -3.0)
        self.assertEqual(changes["recent"][0]["percent_change"], -25.0)

    def test_price_change_from_zero(self):
        freebie = product_service.create_product(self.db, actor=ACTOR, sku="FREE", name="Sample", price=0)
        stock_service.change_price(self.db, freebie.id, 2.0, actor=ACTOR)

        change = analytics_service.price_changes(self.db, **self._window())["recent"][0]

        self.assertEqual(change["percent_change"], 0.0)
        self.assertEqual(change["delta"], 2.0)

    def test_overview_and_trend(self):
        product_service.create_product(self.db, actor=ACTOR, sku="LOW", name="Low", price=1.0, initial_store=2)
        product_service.create_product(self.db, actor=ACTOR, sku="OUT", name="Out", price=1.0)
        self._sell(10)

        overview = analytics_service.stock_overview(self.db, shop_id=1)
        self.assertEqual(overview["products"], 3)
        self.assertEqual(overview["total_units"], 92)
        self.assertEqual(overview["locations"], {"godown": 50, "store": 42})
        self.assertEqual((overview["low_stock"], overview["out_of_stock"]), (1, 1))

        trend = analytics_service.sales_trend(self.db, period="day", days=2)
        self.assertEqual(sum(point["units_sold"] for point in trend), 10)

    def test_detail_bundles_reports(self):
        self._sell(1)
        report = analytics_service.detail(
            self.db,
            start=datetime.now(timezone.utc) - timedelta(hours=1),
            end=datetime.now(timezone.utc) + timedelta(hours=1),
        )

        self.assertEqual(report["sales"]["units_sold"], 1)
        self.assertIn("promotions", report)
        self.assertEqual(report["stock_added"]["count"], 1)


if __name__ == "__main__":
    unittest.main()
