# app/services/checkout_service.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.data.models.order import OrderModel
from app.data.models.order_item import OrderItemModel
from app.domain.checkout import (
    CaptureResult,
    CaptureStatus,
    CheckoutAttempt,
    CheckoutReview,
    CheckoutState,
    PaymentGateway,
    ReviewedLine,
    discount_for,
    money,
)
from app.domain.errors import (
    AddressNotFound,
    CaptureInProgress,
    CaptureLockUnavailable,
    CommitPersistenceFailure,
    EmptyCart,
    GatewayRejected,
    GatewayUnreachable,
    InsufficientStock,
    IntentAmountMismatch,
    NothingToCommit,
    PaymentCapturedOrderNotPersisted,
    PaymentNotCaptured,
)
from app.repos.address_repo import AddressRepo
from app.repos.cart_repo import CartRepo
from app.repos.coupon_repo import CouponRepo
from app.repos.order_repo import OrderRepo
from app.repos.product_repo import ProductRepo
from app.services.coupon_service import CouponService
from app.services.lock_service import LockService
from app.services.notification_service import NotificationService
from app.utils.logging import get_logger
from app.utils.settings import CAPTURE_LOCK_TTL_SECONDS, STORE_CURRENCY

logger = get_logger(__name__)


class OrderFinalizer:
    """
    Zamiana koszyka w oplacone zamowienie (saga: koszyk -> operator platnosci -> baza).

    Kroki: CART_REVIEWED -> INTENT_CREATED -> CAPTURED -> COMMITTED.

    - przeglad koszyka liczy kwote wylacznie po stronie serwera
    - zadne wywolanie operatora nie odbywa sie w otwartej transakcji bazy
    - przed capture nic lokalnie sie nie zmienia, wiec blad capture nie wymaga rollbacku
    - commit to jedna krotka transakcja: zamowienie, stany magazynowe, kupon, koszyk
    - blad po capture nie jest ponawiany, idzie alert do operatora z capture_id
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        lock_service: LockService,
        notifications: NotificationService,
        currency: str = STORE_CURRENCY,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.lock_service = lock_service
        self.notifications = notifications
        self.currency = currency
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.carts = CartRepo(db)
        self.products = ProductRepo(db)
        self.coupons = CouponService(db)
        self.coupon_repo = CouponRepo(db)
        self.addresses = AddressRepo(db)
        self.orders = OrderRepo(db)

    # ---- step 1 ----
    def review(self, user_id: int, coupon_code: str | None = None, attempt: CheckoutAttempt | None = None) -> CheckoutReview:
        """
        Przeglad koszyka: ceny z katalogu, brakujace produkty odrzucone i oznaczone,
        kupon sprawdzony. Odrzucony kupon zostawia stan CART_REVIEWED i nie rusza koszyka.
        """
        attempt = attempt or CheckoutAttempt(user_id=user_id)
        try:
            cart = self.carts.get_cart_by_user(user_id)
            items = self.carts.get_cart_items(cart.id) if cart else []
            catalog = self.products.get_products(i.product_id for i in items)

            lines = []
            dropped_products = []
            dropped_lines = []
            for item in items:
                product = catalog.get(item.product_id)
                if product is None:
                    dropped_products.append(item.product_id)
                    dropped_lines.append(item.id)
                    continue
                lines.append(
                    ReviewedLine(
                        line_id=item.id,
                        product_id=item.product_id,
                        name=product.name,
                        unit_price=money(product.price),
                        quantity=item.quantity,
                        size=item.size,
                        color=item.color,
                    )
                )

            if dropped_products:
                logger.warning(
                    f"Cart of user {user_id} references missing products {dropped_products}, lines dropped",
                    extra={"user_id": user_id},
                )
            if not lines:
                raise EmptyCart("Cart is empty")

            subtotal = sum((line.line_total for line in lines), Decimal("0.00"))

            coupon = self.coupons.validate(coupon_code, self.clock()) if coupon_code else None
            discount = discount_for(subtotal, coupon.discount_percent) if coupon else Decimal("0.00")
        finally:
            # koniec transakcji odczytu, dalej moga byc wywolania sieciowe
            self.db.rollback()

        review = CheckoutReview(
            user_id=user_id,
            lines=lines,
            subtotal=subtotal,
            discount=discount,
            total=money(subtotal - discount),
            currency=self.currency,
            dropped_product_ids=dropped_products,
            dropped_line_ids=dropped_lines,
            coupon_id=coupon.coupon_id if coupon else None,
            coupon_code=coupon.code if coupon else None,
            discount_percent=coupon.discount_percent if coupon else None,
        )
        attempt.review = review
        self._advance(attempt, CheckoutState.CART_REVIEWED)
        return review

    # ---- step 2 ----
    def create_intent(
        self,
        user_id: int,
        coupon_code: str | None = None,
        client_total: Decimal | None = None,
    ) -> CheckoutAttempt:
        attempt = CheckoutAttempt(user_id=user_id)
        review = self.review(user_id, coupon_code, attempt)

        if client_total is not None and money(client_total) != review.total:
            # nieaktualny widok w przegladarce, obciazamy zawsze kwota serwera
            logger.warning(
                f"Client total {money(client_total)} differs from server total {review.total}, using server total",
                extra={"user_id": user_id},
            )

        try:
            intent = self.gateway.create_intent(review.lines, review.total, review.currency, review.discount)
        except (GatewayUnreachable, GatewayRejected):
            self._advance(attempt, CheckoutState.INTENT_FAILED)
            raise

        attempt.intent = intent
        attempt.intent_id = intent.intent_id
        self._advance(attempt, CheckoutState.INTENT_CREATED)
        return attempt

    # ---- step 3 ----
    def capture(self, intent_id: str, attempt: CheckoutAttempt | None = None) -> CaptureResult:
        """
        Capture jednej intencji. Ponowne wywolanie dla juz przechwyconej intencji
        zwraca istniejacy capture (adapter odpytuje operatora), wiec timeout
        mozna bezpiecznie powtorzyc.
        """
        owner = uuid.uuid4().hex
        try:
            acquired = self.lock_service.acquire_capture_lock(intent_id, owner, CAPTURE_LOCK_TTL_SECONDS)
        except RedisError as e:
            # bez locka nie wolno wolac operatora, nic jeszcze nie zostalo pobrane
            logger.error(f"Capture lock for {intent_id} unavailable: {e}")
            raise CaptureLockUnavailable(f"Capture lock for {intent_id} unavailable") from e
        if not acquired:
            raise CaptureInProgress(f"Capture of {intent_id} already in progress")

        try:
            result = self.gateway.capture(intent_id)
        except (GatewayUnreachable, GatewayRejected, PaymentNotCaptured):
            if attempt is not None:
                self._advance(attempt, CheckoutState.CAPTURE_FAILED)
            raise
        finally:
            try:
                self.lock_service.release_capture_lock(intent_id, owner)
            except RedisError as e:
                # lock i tak wygasnie po TTL
                logger.warning(f"Failed to release capture lock for {intent_id}: {e}")

        if attempt is not None:
            attempt.capture = result
            self._advance(attempt, CheckoutState.CAPTURED)
        return result

    # ---- steps 1, 3, 4 ----
    def finalize(
        self,
        user_id: int,
        address_id: int,
        payment_id: str,
        coupon_code: str | None = None,
    ) -> OrderModel:
        attempt = CheckoutAttempt(user_id=user_id, intent_id=payment_id)

        existing = self.orders.find_by_intent_id(payment_id)
        if existing is not None:
            order_id = existing.id if existing.user_id == user_id else None
            self.db.rollback()
            logger.info(f"Payment {payment_id} already finalized as order {existing.id}")
            raise NothingToCommit(f"Payment {payment_id} already finalized", order_id=order_id)

        address = self.addresses.get_address(address_id, user_id)
        self.db.rollback()
        if address is None:
            raise AddressNotFound(f"Address {address_id} not found")

        review = self.review(user_id, coupon_code, attempt)

        intent = self.gateway.get_intent(payment_id)
        if intent.status != CaptureStatus.COMPLETED.value and intent.amount != review.total:
            # koszyk albo kupon inne niz przy intencji, odrzucamy zanim pieniadze sie rusza
            logger.warning(
                f"Intent {payment_id} opened for {intent.amount}, cart now totals {review.total}",
                extra={"user_id": user_id, "intent_id": payment_id},
            )
            raise IntentAmountMismatch(payment_id, intent.amount, review.total)

        capture = self.capture(payment_id, attempt)

        if capture.amount is not None and capture.amount != review.total:
            # intencja przechwycona wczesniej osobnym wywolaniem, pieniadze juz sa pobrane
            self._fail_after_capture(
                attempt,
                PaymentCapturedOrderNotPersisted("AMOUNT_MISMATCH", payment_id, capture.capture_id),
            )

        order = self._commit(attempt, address_id)

        try:
            self.notifications.send_order_notification(user_id, order.id)
        except Exception as e:
            logger.warning(f"Order {order.id} committed but notification not queued: {e}")

        return order

    # ---- step 4 ----
    def _commit(self, attempt: CheckoutAttempt, address_id: int) -> OrderModel:
        review = attempt.review
        capture = attempt.capture
        intent_id = capture.intent_id

        try:
            # linie czytane ponownie w tej transakcji, nie te z przegladu
            cart = self.carts.get_cart_by_user(attempt.user_id)
            items = self.carts.get_cart_items(cart.id) if cart else []
            if not items:
                raise NothingToCommit("Cart already consumed")

            dropped = set(review.dropped_line_ids)
            current = sorted(
                (i.id, i.product_id, i.size, i.color, i.quantity) for i in items if i.id not in dropped
            )
            if current != sorted(line.identity() for line in review.lines):
                raise PaymentCapturedOrderNotPersisted("CART_CHANGED", intent_id, capture.capture_id)

            order = self.orders.add_order(
                OrderModel(
                    user_id=attempt.user_id,
                    address_id=address_id,
                    coupon_id=review.coupon_id,
                    subtotal=review.subtotal,
                    discount=review.discount,
                    total_amount=review.total,
                    currency=review.currency,
                    payment_method="PAYPAL",
                    payment_status="COMPLETED",
                    payment_intent_id=intent_id,
                    payment_capture_id=capture.capture_id,
                    status="PROCESSING",
                    items=[
                        OrderItemModel(
                            product_id=line.product_id,
                            product_name=line.name,
                            price=line.unit_price,
                            quantity=line.quantity,
                            size=line.size,
                            color=line.color,
                        )
                        for line in review.lines
                    ],
                )
            )

            for line in review.lines:
                if self.products.decrement_stock(line.product_id, line.quantity) == 0:
                    raise InsufficientStock(line.product_id, intent_id, capture.capture_id)

            if review.coupon_id is not None:
                # okno waznosci i limit sprawdzane jeszcze raz, w tej samej transakcji
                if self.coupon_repo.increment_usage(review.coupon_id, self.clock()) == 0:
                    raise PaymentCapturedOrderNotPersisted("COUPON_NO_LONGER_VALID", intent_id, capture.capture_id)

            # koszyk dopiero po udanych dekrementacjach; wersja chroni przed rownoleglym commitem
            if self.carts.delete_cart(cart.id, version=cart.version) == 0:
                raise NothingToCommit("Cart consumed by a concurrent checkout")

            self.db.commit()
        except NothingToCommit as e:
            self.db.rollback()
            winner_id = self._order_id_for_capture(capture.capture_id)
            if winner_id is not None:
                # ta sama platnosc sfinalizowana rownolegle, pieniadze maja swoje zamowienie
                self._advance(attempt, CheckoutState.COMMIT_FAILED)
                raise NothingToCommit(f"Payment {intent_id} already finalized", order_id=winner_id) from e
            self._fail_after_capture(attempt, e, reason="NOTHING_TO_COMMIT")
        except PaymentCapturedOrderNotPersisted as e:
            self.db.rollback()
            self._fail_after_capture(attempt, e)
        except IntegrityError as e:
            self.db.rollback()
            winner_id = self._order_id_for_capture(capture.capture_id)
            if winner_id is not None:
                # ta sama platnosc sfinalizowana rownolegle
                self._advance(attempt, CheckoutState.COMMIT_FAILED)
                raise NothingToCommit(f"Payment {intent_id} already finalized", order_id=winner_id) from e
            self._fail_after_capture(attempt, CommitPersistenceFailure(intent_id, capture.capture_id), cause=e)
        except SQLAlchemyError as e:
            self.db.rollback()
            self._fail_after_capture(attempt, CommitPersistenceFailure(intent_id, capture.capture_id), cause=e)

        attempt.order_id = order.id
        self._advance(attempt, CheckoutState.COMMITTED)
        logger.info(
            f"Order {order.id} committed for user {attempt.user_id}",
            extra={"order_id": order.id, "intent_id": intent_id, "capture_id": capture.capture_id},
        )
        return order

    def _order_id_for_capture(self, capture_id: str) -> int | None:
        order = self.orders.find_by_capture_id(capture_id)
        order_id = order.id if order is not None else None
        self.db.rollback()
        return order_id

    def _fail_after_capture(
        self,
        attempt: CheckoutAttempt,
        error: Exception,
        reason: str | None = None,
        cause: Exception | None = None,
    ):
        """Mark the attempt failed, raise the operator alert and re-raise ``error``."""
        self._advance(attempt, CheckoutState.COMMIT_FAILED)
        capture = attempt.capture
        review = attempt.review
        alert = {
            "code": getattr(error, "code", type(error).__name__),
            "reason": reason or getattr(error, "reason", str(error)),
            "user_id": attempt.user_id,
            "intent_id": capture.intent_id,
            "capture_id": capture.capture_id,
            "captured_amount": str(capture.amount) if capture.amount is not None else None,
            "order_total": str(review.total),
            "currency": review.currency,
        }
        try:
            self.notifications.send_reconciliation_alert(alert)
        except Exception:
            logger.exception("Reconciliation alert could not be queued", extra={"alert": alert})
        if cause is not None:
            raise error from cause
        raise error

    def _advance(self, attempt: CheckoutAttempt, state: CheckoutState) -> None:
        previous = attempt.state
        attempt.state = state
        logger.info(
            f"Checkout {previous.value} -> {state.value}",
            extra={"user_id": attempt.user_id, "intent_id": attempt.intent_id},
        )
