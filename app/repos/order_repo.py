# app/repos/order_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        # bez commita: zamowienie jest zapisywane w transakcji finalizacji
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == order_id)
        ).scalar_one_or_none()

    def list_orders_for_user(self, user_id: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars().all()
        )

    def list_all_orders(self) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars().all()
        )

    def find_by_intent_id(self, intent_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.payment_intent_id == intent_id)
        ).scalar_one_or_none()

    def find_by_capture_id(self, capture_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.payment_capture_id == capture_id)
        ).scalar_one_or_none()

    def update_order_status(self, order_id: int, status: str) -> OrderModel | None:
        order = self.get_order(order_id)
        if order:
            order.status = status
            self.db.commit()
            self.db.refresh(order)
        return order
