import argparse
from datetime import timedelta

from sqlalchemy import delete, select

from stockledger.core.dates import utc_now
from stockledger.core.logging import setup_logging
from stockledger.core.security import ActorContext
from stockledger.database import SessionLocal, create_schema
from stockledger.models.alert import Alert
from stockledger.models.category import Category
from stockledger.models.product import Product
from stockledger.services import alert_service, product_service, stock_service

SEED_ACTOR = ActorContext(actor_id="seed-script", shop_id=1, auth_type="system")


def parse_args():
    parser = argparse.ArgumentParser(description="Seed sample products and stock activity.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear products, categories and alerts before seeding (the ledger is kept).",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()
    create_schema()

    db = SessionLocal()
    try:
        if args.reset:
            db.execute(delete(Alert))
            db.execute(delete(Product))
            db.execute(delete(Category))
            db.commit()

        has_product = db.execute(select(Product.id).limit(1)).first()
        if has_product:
            print("Seed skipped: products already exist.")
            return

        dairy = product_service.create_category(db, "Dairy", actor=SEED_ACTOR)
        bakery = product_service.create_category(db, "Bakery", actor=SEED_ACTOR)
        today = utc_now().date()

        milk = product_service.create_product(
            db,
            actor=SEED_ACTOR,
            sku="MILK-1L",
            name="Whole Milk 1L",
            price=1.20,
            cost_price=0.80,
            category_id=dairy.id,
            expiration_date=today + timedelta(days=2),
            initial_godown=100,
        )
        bread = product_service.create_product(
            db,
            actor=SEED_ACTOR,
            sku="BREAD-WHT",
            name="White Bread",
            price=2.50,
            cost_price=1.10,
            category_id=bakery.id,
            expiration_date=today + timedelta(days=6),
            initial_godown=30,
            initial_store=10,
        )

        stock_service.move_stock(db, milk.id, "godown", "store", 40, actor=SEED_ACTOR)
        stock_service.consume(db, milk.id, "store", 12, actor=SEED_ACTOR)
        stock_service.consume(db, bread.id, "store", 6, actor=SEED_ACTOR, sale_price=1.99)
        stock_service.change_price(db, bread.id, 2.75, actor=SEED_ACTOR)
        stats = alert_service.run_expiry_sweep(db)

        print("Seed complete: 2 products, {} alerts raised.".format(stats["created"]))
    finally:
        db.close()


if __name__ == "__main__":
    main()
