# app/services/coupon_service.py
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.data.models.coupon import CouponModel
from app.domain.checkout import CouponRejection
from app.domain.errors import CouponRejected, DuplicateCoupon, NotFound
from app.domain.schemas import CouponCreate
from app.repos.coupon_repo import CouponRepo
from app.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ValidCoupon:
    coupon_id: int
    code: str
    discount_percent: Decimal


def _utc(dt: datetime) -> datetime:
    # sqlite zwraca naiwne daty, w bazie trzymamy UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class CouponService:
    def __init__(self, db: Session):
        self.repo = CouponRepo(db)

    def validate(self, code: str, now: datetime | None = None) -> ValidCoupon:
        """
        Sprawdza kupon bez zmiany licznika uzyc.

        Kolejnosc sprawdzen jest stala i pierwsza porazka wygrywa:
        NOT_FOUND, NOT_YET_ACTIVE, EXPIRED, LIMIT_REACHED. Kupon przeterminowany
        i jednoczesnie wyczerpany zwraca wiec EXPIRED.
        """
        now = _utc(now or datetime.now(timezone.utc))
        coupon = self.repo.get_by_code(code)

        if coupon is None:
            raise CouponRejected(CouponRejection.NOT_FOUND.value, code)
        if now < _utc(coupon.start_date):
            raise CouponRejected(CouponRejection.NOT_YET_ACTIVE.value, code)
        if now >= _utc(coupon.end_date):
            raise CouponRejected(CouponRejection.EXPIRED.value, code)
        if coupon.usage_count >= coupon.usage_limit:
            raise CouponRejected(CouponRejection.LIMIT_REACHED.value, code)

        return ValidCoupon(
            coupon_id=coupon.id,
            code=coupon.code,
            discount_percent=Decimal(str(coupon.discount_percent)),
        )

    def list_coupons(self) -> list[CouponModel]:
        return self.repo.list_coupons()

    def create_coupon(self, payload: CouponCreate) -> CouponModel:
        coupon = CouponModel(
            code=payload.code,
            discount_percent=payload.discount_percent,
            start_date=payload.start_date,
            end_date=payload.end_date,
            usage_limit=payload.usage_limit,
            usage_count=0,
        )
        try:
            created = self.repo.create_coupon(coupon)
        except IntegrityError:
            self.repo.db.rollback()
            raise DuplicateCoupon(f"Coupon code {payload.code!r} already exists")
        logger.info(f"Coupon {created.code} created", extra={"coupon_id": created.id})
        return created

    def delete_coupon(self, coupon_id: int) -> None:
        coupon = self.repo.get_coupon(coupon_id)
        if not coupon:
            raise NotFound(f"Coupon {coupon_id} not found")
        self.repo.delete_coupon(coupon)
        logger.info(f"Coupon {coupon_id} deleted")
