from decimal import Decimal
from typing import Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel
from app.domain.checkout import money
from app.domain.errors import InvalidQuantity, NotFound, ConcurrentModification
from app.repos.cart_repo import CartRepo
from app.repos.product_repo import ProductRepo
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Koszyk uzytkownika (jeden na usera), prosty podzial cqrs:
    commands (add, update, remove, clear) modyfikuja stan
    query (get) tylko odczyt

    Koszyk nie przechowuje cen, cena zawsze pochodzi z katalogu w chwili odczytu.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)

    #query - odczyt
    def get_cart(self, user_id: int) -> Dict[str, Any]:
        cart = self.repo.get_cart_by_user(user_id)
        if not cart:
            return {"user_id": user_id, "cart_id": None, "items": [], "stale_line_ids": [], "subtotal": Decimal("0.00")}

        items = self.repo.get_cart_items(cart.id)
        catalog = self.products.get_products(i.product_id for i in items)

        lines = []
        stale = []
        for i in items:
            product = catalog.get(i.product_id)
            if product is None:
                # produkt zniknal z katalogu, pozycja traktowana jak usunieta
                stale.append(i.id)
                continue
            price = money(product.price)
            lines.append(
                {
                    "line_id": i.id,
                    "product_id": i.product_id,
                    "name": product.name,
                    "price": price,
                    "quantity": i.quantity,
                    "size": i.size,
                    "color": i.color,
                    "line_total": money(price * i.quantity),
                }
            )

        return {
            "user_id": user_id,
            "cart_id": cart.id,
            "items": lines,
            "stale_line_ids": stale,
            "subtotal": sum((line["line_total"] for line in lines), Decimal("0.00")),
        }

    #commands
    def add_line(
        self,
        user_id: int,
        product_id: int,
        quantity: int,
        size: str | None = None,
        color: str | None = None,
    ) -> Dict[str, Any]:
        if quantity < 1:
            raise InvalidQuantity("Ilosc musi byc wieksza niz 0")

        if not self.products.get_product(product_id):
            raise NotFound(f"Product {product_id} not found")

        try:
            cart = self._get_or_create_cart(user_id)

            existing = self.repo.find_variant_line(cart.id, product_id, size, color)
            if existing:
                logger.info(
                    f"Produkt {product_id} juz jest w koszyku {cart.id}, zwiekszam ilosc "
                    f"z {existing.quantity} do {existing.quantity + quantity}"
                )
                existing.quantity += quantity
                self.repo.add_cart_item(existing)
            else:
                logger.info(f"Dodaje nowy produkt {product_id} do koszyka {cart.id}")
                self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=cart.id,
                        product_id=product_id,
                        quantity=quantity,
                        size=size,
                        color=color,
                    )
                )

            self._bump_version(cart)
            self.repo.commit()
        except IntegrityError:
            # rownolegle utworzenie koszyka albo tej samej pozycji
            self.repo.rollback()
            raise ConcurrentModification("Cart was modified by another request")

        return self.get_cart(user_id)

    def update_line_qty(self, user_id: int, line_id: int, quantity: int) -> Dict[str, Any]:
        if quantity < 1:
            raise InvalidQuantity("Ilosc musi byc wieksza niz 0")

        cart, line = self._get_line(user_id, line_id)
        logger.info(f"Zmiana ilosci pozycji {line_id} w koszyku {cart.id}: {line.quantity} -> {quantity}")
        line.quantity = quantity
        self.repo.add_cart_item(line)

        self._bump_version(cart)
        self.repo.commit()
        return self.get_cart(user_id)

    def remove_line(self, user_id: int, line_id: int) -> Dict[str, Any]:
        cart, line = self._get_line(user_id, line_id)
        logger.info(f"Usuwanie pozycji {line_id} z koszyka {cart.id}")
        self.repo.delete_cart_item(line)

        self._bump_version(cart)
        self.repo.commit()
        return self.get_cart(user_id)

    def clear(self, user_id: int) -> Dict[str, Any]:
        """Remove the whole cart; an absent or empty cart is not an error."""
        cart = self.repo.get_cart_by_user(user_id)
        if cart:
            # po commicie obiekt jest wygaszony, a wiersz juz nie istnieje
            cart_id = cart.id
            self.repo.delete_cart(cart_id)
            self.repo.commit()
            logger.info(f"Koszyk {cart_id} uzytkownika {user_id} wyczyszczony")
        return {"user_id": user_id, "cleared": True}

    def _get_or_create_cart(self, user_id: int) -> CartModel:
        cart = self.repo.get_cart_by_user(user_id)
        if cart:
            return cart
        cart = self.repo.create_cart(CartModel(user_id=user_id, version=1))
        logger.info(f"Utworzono nowy koszyk {cart.id} dla uzytkownika {user_id}")
        return cart

    def _get_line(self, user_id: int, line_id: int):
        cart = self.repo.get_cart_by_user(user_id)
        line = self.repo.get_line(cart.id, line_id) if cart else None
        if not line:
            raise NotFound(f"Cart line {line_id} not found")
        return cart, line

    def _bump_version(self, cart: CartModel) -> None:
        # Optimistic locking, np update set version 2 where id 1 and version 1
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={"version": cart.version + 1},
        )
        if rowcount == 0:
            self.repo.rollback()
            raise ConcurrentModification(
                "Konflikt wspolbieznosci - koszyk zostal zmodyfikowany przez inna operacje"
            )
        set_committed_value(cart, "version", cart.version + 1)
