from typing import Dict, List, Optional
from uuid import uuid4

from ..db.session import get_session
from ..errors import ValidationError
from ..models.cart import Cart, CartItem
from ..utils.validators import require_fields, utcnow
from .logging import log_event
from .pricing import LineItem, compute_totals, format_money, price_line_items, serialize_discount

ADDRESS_FIELDS = ("address", "city", "postalCode", "country")


class CartService:
    """Per-user cart backed by DB. Totals are derived on every read."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    @staticmethod
    def _require_user(user_id: Optional[str]) -> str:
        if not user_id:
            raise ValidationError("user required", field="user")
        return str(user_id)

    @staticmethod
    def _cart(session, user_id: str) -> Cart:
        cart = session.get(Cart, user_id)
        if cart is None:
            cart = Cart(user_id=user_id, shipping_address={}, payment_method="")
            session.add(cart)
            session.flush()
        return cart

    @staticmethod
    def _items(session, user_id: str) -> List[CartItem]:
        return (
            session.query(CartItem)
            .filter(CartItem.user_id == user_id)
            .order_by(CartItem.added_at, CartItem.id)
            .all()
        )

    @staticmethod
    def _line_item(row: CartItem) -> LineItem:
        return LineItem(
            product_id=row.product_id,
            quantity=row.quantity,
            unit_price=row.unit_price,
            list_price=row.list_price,
            name=row.name,
            image=row.image,
            discount=row.discount,
        )

    def _render(self, session, user_id: str) -> Dict:
        cart = self._cart(session, user_id)
        rows = self._items(session, user_id)
        totals = compute_totals(self._line_item(r) for r in rows)
        return {
            "user": user_id,
            "cartItems": [
                {
                    "product": r.product_id,
                    "name": r.name,
                    "image": r.image,
                    "qty": r.quantity,
                    "price": format_money(r.unit_price),
                    "listPrice": format_money(r.list_price) if r.list_price is not None else None,
                    "discount": r.discount,
                }
                for r in rows
            ],
            "shippingAddress": cart.shipping_address or {},
            "paymentMethod": cart.payment_method or "",
            **totals.to_dict(),
        }

    def get_cart(self, *, user_id: str) -> Dict:
        uid = self._require_user(user_id)
        with self._session_factory() as session:
            return self._render(session, uid)

    def add_item(self, *, user_id: str, product_id: str, price, qty, name: Optional[str] = None, image: Optional[str] = None) -> Dict:
        """Add a product or replace the quantity of an existing line."""
        uid = self._require_user(user_id)
        if not product_id:
            raise ValidationError("product required", field="product")
        with self._session_factory() as session:
            (line,) = price_line_items(session, [{"product": product_id, "price": price, "qty": qty}], utcnow())
            existing = (
                session.query(CartItem)
                .filter(CartItem.user_id == uid, CartItem.product_id == line.product_id)
                .first()
            )
            if existing:
                existing.quantity = line.quantity
                existing.unit_price = line.unit_price
                existing.list_price = line.list_price
                existing.discount = serialize_discount(line.discount)
            else:
                session.add(
                    CartItem(
                        id=str(uuid4()),
                        user_id=uid,
                        product_id=line.product_id,
                        name=name or line.name,
                        image=image or line.image,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        list_price=line.list_price,
                        discount=serialize_discount(line.discount),
                    )
                )
            session.flush()
            log_event("info", "cart.updated", user_id=uid, product_id=line.product_id, qty=line.quantity)
            return self._render(session, uid)

    def remove_item(self, *, user_id: str, product_id: str) -> Dict:
        uid = self._require_user(user_id)
        with self._session_factory() as session:
            session.query(CartItem).filter(CartItem.user_id == uid, CartItem.product_id == product_id).delete(
                synchronize_session=False
            )
            session.flush()
            return self._render(session, uid)

    def clear_cart(self, *, user_id: str) -> Dict:
        uid = self._require_user(user_id)
        with self._session_factory() as session:
            self.clear_items(session, uid)
            return self._render(session, uid)

    def save_shipping_address(self, *, user_id: str, address: Dict) -> Dict:
        uid = self._require_user(user_id)
        data = require_fields(address, ADDRESS_FIELDS, "shippingAddress")
        with self._session_factory() as session:
            cart = self._cart(session, uid)
            cart.shipping_address = {k: str(data[k]).strip() for k in ADDRESS_FIELDS}
            session.flush()
            return self._render(session, uid)

    def save_payment_method(self, *, user_id: str, payment_method: str) -> Dict:
        uid = self._require_user(user_id)
        if not payment_method or not str(payment_method).strip():
            raise ValidationError("paymentMethod is required", field="paymentMethod")
        with self._session_factory() as session:
            cart = self._cart(session, uid)
            cart.payment_method = str(payment_method).strip()
            session.flush()
            return self._render(session, uid)

    # helpers used by OrderService inside its own transaction

    def snapshot_request(self, session, user_id: str) -> Dict:
        cart = session.get(Cart, user_id)
        return {
            "orderItems": [
                {"product": r.product_id, "price": r.unit_price, "qty": r.quantity}
                for r in self._items(session, user_id)
            ],
            "shippingAddress": (cart.shipping_address if cart else None) or {},
            "paymentMethod": (cart.payment_method if cart else "") or "",
        }

    @staticmethod
    def clear_items(session, user_id: str) -> None:
        session.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
        session.flush()
