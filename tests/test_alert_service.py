import unittest
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from stockledger.core.constants import AlertKind, Severity
from stockledger.core.dates import utc_now
from stockledger.core.exceptions import AlertNotFound
from stockledger.core.security import ActorContext
from stockledger.database import create_schema
from stockledger.database.engine import build_engine
from stockledger.models.alert import Alert
from stockledger.services import alert_service, product_service, stock_service

ACTOR = ActorContext(actor_id="manager", shop_id=7)


class AlertServiceTest(unittest.TestCase):
    def setUp(self):
        self.engine = build_engine("sqlite://")
        create_schema(self.engine)
        self.db = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)()
        self.today = utc_now().date()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _product(self, sku="YOG", store=8, **kwargs):
        return product_service.create_product(
            self.db,
            actor=ACTOR,
            sku=sku,
            name="Yoghurt {}".format(sku),
            price=3.0,
            low_stock_threshold=kwargs.pop("low_stock_threshold", 5),
            initial_godown=0,
            initial_store=store,
            **kwargs,
        )

    def _alerts(self, kind=None, product_id=None):
        stmt = select(Alert)
        if kind is not None:
            stmt = stmt.where(Alert.kind == kind.value)
        if product_id is not None:
            stmt = stmt.where(Alert.product_id == product_id)
        return self.db.execute(stmt).scalars().all()

    def test_low_stock_alert_is_not_duplicated(self):
        product = self._product(store=8)

        stock_service.consume(self.db, product.id, "store", 3, actor=ACTOR)
        low = self._alerts(AlertKind.LOW_STOCK)
        self.assertEqual(len(low), 1)
        self.assertEqual(low[0].severity, Severity.WARNING.value)

        stock_service.consume(self.db, product.id, "store", 1, actor=ACTOR)
        self.assertEqual(len(self._alerts(AlertKind.LOW_STOCK)), 1)

    def test_out_of_stock_raises_error_and_resolves_low_stock(self):
        product = self._product(store=4)
        self.assertEqual(len(self._alerts(AlertKind.LOW_STOCK)), 1)

        stock_service.consume(self.db, product.id, "store", 4, actor=ACTOR)

        out = self._alerts(AlertKind.OUT_OF_STOCK)
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].severity, Severity.ERROR.value)
        self.assertTrue(self._alerts(AlertKind.LOW_STOCK)[0].is_resolved)

    def test_restock_auto_resolves(self):
        product = self._product(store=2)

        stock_service.restock(self.db, product.id, "godown", 50, actor=ACTOR)

        alert = self._alerts(AlertKind.LOW_STOCK)[0]
        self.assertTrue(alert.is_resolved)
        self.assertEqual(alert.resolved_by, "system")

    def test_new_alert_after_resolution(self):
        product = self._product(store=3)
        stock_service.restock(self.db, product.id, "store", 10, actor=ACTOR)
        stock_service.consume(self.db, product.id, "store", 10, actor=ACTOR)

        alerts = self._alerts(AlertKind.LOW_STOCK)
        self.assertEqual(len(alerts), 2)
        self.assertEqual(sum(1 for alert in alerts if not alert.is_resolved), 1)

    def test_expiry_sweep_severities(self):
        expired = self._product(sku="A", store=50, expiration_date=self.today - timedelta(days=1))
        urgent = self._product(sku="B", store=50, expiration_date=self.today + timedelta(days=3))
        soon = self._product(sku="C", store=50, expiration_date=self.today + timedelta(days=6))
        self._product(sku="D", store=50, expiration_date=self.today + timedelta(days=30))

        stats = alert_service.run_expiry_sweep(self.db, today=self.today)

        self.assertEqual(stats["products"], 4)
        self.assertEqual(stats["created"], 3)
        self.assertEqual(self._alerts(product_id=expired.id)[0].severity, Severity.ERROR.value)
        self.assertEqual(self._alerts(product_id=expired.id)[0].kind, AlertKind.EXPIRED.value)
        self.assertEqual(self._alerts(product_id=urgent.id)[0].severity, Severity.WARNING.value)
        self.assertEqual(self._alerts(product_id=soon.id)[0].severity, Severity.INFO.value)

        again = alert_service.run_expiry_sweep(self.db, today=self.today)
        self.assertEqual(again["created"], 0)

    def test_sweep_escalates_open_expiry_alert(self):
        product = self._product(store=50, expiration_date=self.today + timedelta(days=5))
        alert_service.run_expiry_sweep(self.db, today=self.today)

        alert_service.run_expiry_sweep(self.db, today=self.today + timedelta(days=3))

        alerts = self._alerts(AlertKind.EXPIRING_SOON, product.id)
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].severity, Severity.WARNING.value)

    def test_urgency_score(self):
        now = utc_now()
        fresh = Alert(kind="OutOfStock", severity="error", created_at=now)
        two_days = Alert(kind="LowStock", severity="warning", created_at=now - timedelta(hours=47, minutes=40))
        old = Alert(kind="Custom", severity="critical", created_at=now - timedelta(days=10))

        self.assertEqual(alert_service.urgency_score(fresh, now), 6)
        self.assertEqual(alert_service.urgency_score(two_days, now), 6)
        self.assertEqual(alert_service.urgency_score(old, now), 8)

    def test_list_mark_and_resolve(self):
        first = self._product(sku="A", store=1)
        self._product(sku="B", store=0)
        alert_service.create_custom_alert(
            self.db, title="Audit", message="Shelf audit due", severity=Severity.CRITICAL, shop_id=7
        )

        listing = alert_service.list_alerts(self.db, actor=ACTOR, sort="urgency")
        self.assertEqual(listing["pagination"]["total"], 3)
        self.assertEqual(listing["summary"]["unread"], 3)
        self.assertEqual(listing["summary"]["critical"], 1)
        scores = [score for _alert, score in listing["items"]]
        self.assertEqual(scores, sorted(scores, reverse=True))

        low = self._alerts(AlertKind.LOW_STOCK, first.id)[0]
        alert_service.mark_read(self.db, low.id, ACTOR)
        self.assertEqual(alert_service.list_alerts(self.db, actor=ACTOR, is_read=False)["pagination"]["total"], 2)

        resolved = alert_service.resolve(self.db, low.id, ACTOR)
        self.assertTrue(resolved.is_resolved)
        self.assertEqual(resolved.resolved_by, "manager")

        self.assertEqual(alert_service.mark_all_read(self.db, ACTOR), 2)
        self.assertEqual(alert_service.list_alerts(self.db, actor=ACTOR)["summary"]["unread"], 0)

    def test_custom_alert_for_product_is_refreshed_not_duplicated(self):
        product = self._product(store=50)

        first = alert_service.create_custom_alert(
            self.db, title="Recall", message="Batch 12 recalled", product_id=product.id, shop_id=7
        )
        second = alert_service.create_custom_alert(
            self.db,
            title="Recall",
            message="Batch 12 and 13 recalled",
            severity=Severity.ERROR,
            product_id=product.id,
            shop_id=7,
        )

        self.assertEqual(first.id, second.id)
        custom = self._alerts(AlertKind.CUSTOM, product.id)
        self.assertEqual(len(custom), 1)
        self.assertEqual(custom[0].message, "Batch 12 and 13 recalled")
        self.assertEqual(custom[0].severity, Severity.ERROR.value)

        alert_service.resolve(self.db, first.id, ACTOR)
        third = alert_service.create_custom_alert(
            self.db, title="Recall", message="Batch 14 recalled", product_id=product.id, shop_id=7
        )
        self.assertNotEqual(third.id, first.id)

    def test_other_shop_cannot_see_alert(self):
        self._product(store=1)
        alert = self._alerts(AlertKind.LOW_STOCK)[0]

        with self.assertRaises(AlertNotFound):
            alert_service.mark_read(self.db, alert.id, ActorContext(actor_id="x", shop_id=8))


if __name__ == "__main__":
    unittest.main()
