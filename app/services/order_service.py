# app/services/order_service.py
from sqlalchemy.orm import Session

from app.data.models.order import OrderModel
from app.domain.errors import NotFound
from app.repos.order_repo import OrderRepo
from app.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_STATUSES = ("PROCESSING", "SHIPPED", "DELIVERED")


class OrderService:
    """
    Odczyt zamówień (Order Store) i zmiana statusu realizacji.
    Tworzenie zamówień odbywa się wyłącznie w OrderFinalizer.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepo(db)

    def get_order(self, order_id: int, user_id: int) -> OrderModel:
        """
        Use Case: Pobranie zamówienia (Query).
        """
        order = self.repo.get_order(order_id)

        if not order:
            raise NotFound("Zamówienie nie istnieje")

        if order.user_id != user_id:
            raise PermissionError("Brak dostępu do zamówienia")

        return order

    def list_orders(self, user_id: int) -> list[OrderModel]:
        return self.repo.list_orders_for_user(user_id)

    def list_all_orders(self) -> list[OrderModel]:
        return self.repo.list_all_orders()

    def find_by_capture_id(self, capture_id: str) -> OrderModel | None:
        """Lookup used by reconciliation tooling: does this capture have an order?"""
        return self.repo.find_by_capture_id(capture_id)

    def update_status(self, order_id: int, status: str) -> OrderModel:
        if status not in ORDER_STATUSES:
            raise ValueError(f"Unknown order status {status}")

        order = self.repo.update_order_status(order_id, status)
        if not order:
            raise NotFound("Zamówienie nie istnieje")

        logger.info(f"Order {order_id} status changed to {status}")
        return order
