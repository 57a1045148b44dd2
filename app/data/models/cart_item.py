from sqlalchemy import Column, Integer, ForeignKey, String, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from app.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)

    quantity = Column(Integer, nullable=False)
    size = Column(String(20), nullable=True)
    color = Column(String(40), nullable=True)

    cart = relationship("CartModel", back_populates="items")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "size", "color", name="u_cart_product_variant"),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
    )
