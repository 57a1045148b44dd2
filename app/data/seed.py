# app/data/seed.py
from datetime import datetime, timezone, timedelta
from decimal import Decimal

from app.data.database import SessionLocal
from app.data.models import AddressModel, CouponModel, ProductModel
from app.utils.logging import get_logger

logger = get_logger(__name__)


def seed():
    """Dane demo: kilka produktow, adres uzytkownika 1 i kupon WELCOME10."""
    db = SessionLocal()
    try:
        # not forcing: only seed if empty
        if db.query(ProductModel).first():
            return
        now = datetime.now(timezone.utc)
        db.add_all(
            [
                ProductModel(name="Linen shirt", price=Decimal("20.00"), stock=25),
                ProductModel(name="Canvas tote", price=Decimal("15.00"), stock=40),
                ProductModel(name="Wool scarf", price=Decimal("32.50"), stock=10),
                AddressModel(
                    user_id=1,
                    name="Demo User",
                    line1="1 High Street",
                    city="London",
                    postal_code="N1 9GU",
                    country="GB",
                ),
                CouponModel(
                    code="WELCOME10",
                    discount_percent=Decimal("10.00"),
                    start_date=now - timedelta(days=1),
                    end_date=now + timedelta(days=30),
                    usage_limit=100,
                    usage_count=0,
                ),
            ]
        )
        db.commit()
        logger.info("Seed data inserted")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
