# app/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import List, Optional
from decimal import Decimal
from datetime import datetime


# ---- Cart ----
class CartLineIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: int = Field(..., gt=0, description="ID produktu (musi być > 0)")
    quantity: int = Field(..., description="Ilość produktu (walidowana w serwisie, >= 1)")
    size: Optional[str] = Field(None, max_length=20)
    color: Optional[str] = Field(None, max_length=40)


class CartLineQtyIn(BaseModel):
    """Schema dla zmiany ilości pozycji koszyka."""

    quantity: int


class CartLineOut(BaseModel):
    line_id: int
    product_id: int
    name: str
    price: Decimal
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None
    line_total: Decimal


class CartOut(BaseModel):
    """Schema dla koszyka (response)."""

    user_id: int
    cart_id: Optional[int] = None
    items: List[CartLineOut]
    stale_line_ids: List[int] = []
    subtotal: Decimal


class CartClearedOut(BaseModel):
    user_id: int
    cleared: bool = True


# ---- Coupons ----
class CouponCreate(BaseModel):
    """Schema dla tworzenia kuponu (panel admina)."""

    code: str = Field(..., min_length=3, max_length=50)
    # 100% dawaloby intencje na 0.00, ktorej operator nie przyjmie
    discount_percent: Decimal = Field(..., gt=0, lt=100)
    start_date: datetime
    end_date: datetime
    usage_limit: int = Field(..., ge=1)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class CouponOut(BaseModel):
    id: int
    code: str
    discount_percent: Decimal
    start_date: datetime
    end_date: datetime
    usage_limit: int
    usage_count: int

    model_config = ConfigDict(from_attributes=True)


class CouponValidateIn(BaseModel):
    code: str


class CouponValidateOut(BaseModel):
    code: str
    discount_percent: Decimal


# ---- Checkout ----
class IntentIn(BaseModel):
    """Schema dla utworzenia intencji płatności.

    ``client_total`` is what the browser displayed; it is only compared with
    the server total and never charged.
    """

    coupon_code: Optional[str] = None
    client_total: Optional[Decimal] = None


class IntentOut(BaseModel):
    intent_id: str
    status: str
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    dropped_product_ids: List[int] = []
    approve_url: Optional[str] = None


class CaptureIn(BaseModel):
    intent_id: str = Field(..., min_length=1)


class CaptureOut(BaseModel):
    intent_id: str
    capture_id: str
    status: str


class FinalizeIn(BaseModel):
    """Schema dla finalizacji zamówienia po przechwyceniu płatności."""

    address_id: int = Field(..., gt=0)
    payment_id: str = Field(..., min_length=1, description="ID intencji płatności u operatora")
    coupon_code: Optional[str] = None


# ---- Orders ----
class OrderItemOut(BaseModel):
    product_id: int
    product_name: str
    price: Decimal
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Schema dla zamówienia (response)."""

    id: int
    user_id: int
    address_id: int
    coupon_id: Optional[int] = None
    subtotal: Decimal
    discount: Decimal
    total_amount: Decimal
    currency: str
    payment_method: str
    payment_status: str
    payment_intent_id: str
    payment_capture_id: str
    status: str
    created_at: datetime
    items: List[OrderItemOut]

    model_config = ConfigDict(from_attributes=True)


class OrderStatusIn(BaseModel):
    status: str = Field(..., pattern="^(PROCESSING|SHIPPED|DELIVERED)$")
