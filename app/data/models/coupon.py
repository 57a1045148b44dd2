from sqlalchemy import Column, Integer, String, DateTime, Numeric

from app.data.database import Base


class CouponModel(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    discount_percent = Column(Numeric(5, 2), nullable=False)

    # okno waznosci [start_date, end_date)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)

    usage_limit = Column(Integer, nullable=False)
    usage_count = Column(Integer, nullable=False, default=0)
