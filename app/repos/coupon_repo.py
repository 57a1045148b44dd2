# app/repos/coupon_repo.py
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.data.models.coupon import CouponModel


class CouponRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_coupon(self, coupon_id: int) -> CouponModel | None:
        return self.db.get(CouponModel, coupon_id)

    def get_by_code(self, code: str) -> CouponModel | None:
        return self.db.execute(
            select(CouponModel).where(CouponModel.code == code)
        ).scalar_one_or_none()

    def list_coupons(self) -> list[CouponModel]:
        return list(self.db.execute(select(CouponModel).order_by(CouponModel.id)).scalars().all())

    def create_coupon(self, coupon: CouponModel) -> CouponModel:
        self.db.add(coupon)
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def delete_coupon(self, coupon: CouponModel) -> None:
        self.db.delete(coupon)
        self.db.commit()

    def increment_usage(self, coupon_id: int, now: datetime) -> int:
        """Count one use if the coupon is still inside its window and under its limit."""
        res = self.db.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                CouponModel.start_date <= now,
                CouponModel.end_date > now,
                CouponModel.usage_count < CouponModel.usage_limit,
            )
            .values(usage_count=CouponModel.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
