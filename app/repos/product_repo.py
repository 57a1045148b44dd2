# app/repos/product_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.data.models.product import ProductModel


class ProductRepo:
    """Catalog reader plus the one write the checkout needs: the stock decrement."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_products(self, product_ids) -> dict[int, ProductModel]:
        ids = set(product_ids)
        if not ids:
            return {}
        rows = self.db.execute(
            select(ProductModel).where(ProductModel.id.in_(ids))
        ).scalars().all()
        return {p.id: p for p in rows}

    def decrement_stock(self, product_id: int, quantity: int) -> int:
        # warunkowy decrement zamiast read-then-write, 0 wierszy = brak stanu
        res = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.stock >= quantity)
            .values(
                stock=ProductModel.stock - quantity,
                sold_count=ProductModel.sold_count + quantity,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
