# app/repos/cart_repo.py
from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart_by_user(self, user_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.user_id == user_id)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def get_cart_items(self, cart_id: int) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .order_by(CartItemModel.id)
            ).scalars().all()
        )

    def get_line(self, cart_id: int, line_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.id == line_id,
                CartItemModel.cart_id == cart_id,
            )
        ).scalar_one_or_none()

    def find_variant_line(
        self,
        cart_id: int,
        product_id: int,
        size: str | None,
        color: str | None,
    ) -> CartItemModel | None:
        # NULL != NULL w SQL, wiec wariant bez rozmiaru/koloru trzeba porownac przez IS NULL
        size_clause = CartItemModel.size.is_(None) if size is None else CartItemModel.size == size
        color_clause = CartItemModel.color.is_(None) if color is None else CartItemModel.color == color
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
                size_clause,
                color_clause,
            )
        ).scalar_one_or_none()

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, item: CartItemModel) -> None:
        self.db.delete(item)
        self.db.flush()

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        # update carts set version = v+1 where id = :id and version = :v
        res = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def delete_cart(self, cart_id: int, version: int | None = None) -> int:
        """Delete every line and the cart row; returns how many cart rows went away.

        With ``version`` the cart row is only deleted if nobody bumped it since
        it was read, so two transactions cannot both consume the same cart.
        """
        self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        stmt = delete(CartModel).where(CartModel.id == cart_id)
        if version is not None:
            stmt = stmt.where(CartModel.version == version)
        res = self.db.execute(stmt.execution_options(synchronize_session=False))
        return res.rowcount

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
