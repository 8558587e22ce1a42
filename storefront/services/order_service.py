from decimal import Decimal
from typing import Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import func

from ..db.session import get_session
from ..errors import NotFoundError, StateConflictError, ValidationError
from ..models.order import ORDER_CANCELLED, ORDER_INITIATED, ORDER_PENDING, Order
from ..utils.auth import Identity, ensure_access
from ..utils.dto import to_order_dto
from ..utils.validators import utcnow
from .cart_service import ADDRESS_FIELDS, CartService
from .logging import log_event
from .pricing import compute_totals, format_money, price_line_items
from .settlement import mark_order_paid

DEFAULT_CANCEL_REASON = "No reason provided"


class OrderService:
    """Order creation, lifecycle flags and sales reporting backed by DB."""

    def __init__(self, session_factory=get_session, currency: str = "NPR", cart_service: Optional[CartService] = None):
        self._session_factory = session_factory
        self._currency = currency
        self._carts = cart_service or CartService(session_factory)

    @staticmethod
    def load(session, order_id: Optional[str]) -> Order:
        order = session.get(Order, order_id) if order_id else None
        if order is None:
            raise NotFoundError("Order not found", field="order")
        return order

    def create_order(
        self,
        *,
        identity: Identity,
        order_items: Optional[List[Dict]] = None,
        shipping_address: Optional[Dict] = None,
        payment_method: Optional[str] = None,
    ) -> Dict:
        """Create an order from explicit items, or from the caller's cart when none are given."""
        ensure_access(identity, identity.user_id if identity else None)
        now = utcnow()
        with self._session_factory() as session:
            from_cart = order_items is None
            if from_cart:
                snap = self._carts.snapshot_request(session, identity.user_id)
                order_items = snap["orderItems"]
                shipping_address = shipping_address or snap["shippingAddress"]
                payment_method = payment_method or snap["paymentMethod"]

            if shipping_address is not None and not isinstance(shipping_address, Mapping):
                raise ValidationError("shippingAddress must be an object", field="shippingAddress")
            address = dict(shipping_address or {})
            missing = [k for k in ADDRESS_FIELDS if not str(address.get(k) or "").strip()]
            if missing:
                raise ValidationError(f"shippingAddress.{missing[0]} is required", field="shippingAddress")
            if not payment_method or not str(payment_method).strip():
                raise ValidationError("paymentMethod is required", field="paymentMethod")

            items = price_line_items(session, order_items, now)
            totals = compute_totals(items, now)
            order = Order(
                id=str(uuid4()),
                user_id=identity.user_id,
                items=[i.to_dict() for i in items],
                shipping_address={k: str(address[k]).strip() for k in ADDRESS_FIELDS},
                payment_method=str(payment_method).strip(),
                items_price=totals.items_price,
                shipping_price=totals.shipping_price,
                tax_price=totals.tax_price,
                total_price=totals.total_price,
                total_savings=totals.total_savings,
                currency=self._currency,
                status=ORDER_PENDING,
                version=1,
            )
            session.add(order)
            if from_cart:
                self._carts.clear_items(session, identity.user_id)
            session.flush()
            log_event(
                "info",
                "order.created",
                order_id=order.id,
                user_id=identity.user_id,
                items=len(items),
                total=format_money(totals.total_price),
            )
            return to_order_dto(order)

    def get_order(self, order_id: str, *, identity: Identity) -> Dict:
        with self._session_factory() as session:
            order = self.load(session, order_id)
            ensure_access(identity, order.user_id)
            return to_order_dto(order)

    def list_user_orders(self, *, user_id: str) -> List[Dict]:
        with self._session_factory() as session:
            rows = (
                session.query(Order)
                .filter(Order.user_id == user_id)
                .order_by(Order.created_at.desc())
                .all()
            )
            return [to_order_dto(o) for o in rows]

    def list_orders(self) -> List[Dict]:
        with self._session_factory() as session:
            return [to_order_dto(o) for o in session.query(Order).order_by(Order.created_at.desc()).all()]

    def cancel_order(self, order_id: str, *, identity: Identity, reason: Optional[str] = None) -> Dict:
        with self._session_factory() as session:
            order = self.load(session, order_id)
            ensure_access(identity, order.user_id)
            if order.is_paid:
                raise StateConflictError("Cannot cancel paid orders")
            if order.is_cancelled:
                raise StateConflictError("Order is already cancelled")
            if order.status != ORDER_PENDING:
                raise StateConflictError("Payment is in progress; only pending orders can be cancelled")
            order.is_cancelled = True
            order.cancelled_at = utcnow()
            order.cancellation_reason = (reason or "").strip() or DEFAULT_CANCEL_REASON
            order.status = ORDER_CANCELLED
            order.version = (order.version or 0) + 1
            session.flush()
            log_event("info", "order.cancelled", order_id=order.id, by=identity.user_id)
            return to_order_dto(order)

    def mark_delivered(self, order_id: str) -> Dict:
        with self._session_factory() as session:
            order = self.load(session, order_id)
            if not order.is_paid or order.is_cancelled:
                raise StateConflictError("Only paid orders can be delivered")
            if not order.is_delivered:
                order.is_delivered = True
                order.delivered_at = utcnow()
                session.flush()
                log_event("info", "order.delivered", order_id=order.id)
            return to_order_dto(order)

    def upload_payment_proof(self, order_id: str, *, identity: Identity, image_url: str) -> Dict:
        if not image_url or not str(image_url).strip():
            raise ValidationError("imageUrl is required", field="imageUrl")
        with self._session_factory() as session:
            order = self.load(session, order_id)
            ensure_access(identity, order.user_id)
            order.payment_proof_image = str(image_url).strip()
            session.flush()
            return to_order_dto(order)

    def mark_paid_manually(self, order_id: str, *, payment_id: Optional[str] = None, email: Optional[str] = None) -> Dict:
        """Admin confirmation of an offline payment backed by an uploaded proof image."""
        now = utcnow()
        with self._session_factory() as session:
            order = self.load(session, order_id)
            if order.is_paid:
                raise StateConflictError("Order is already paid")
            if order.is_cancelled:
                raise StateConflictError("Cannot pay a cancelled order")
            if not order.payment_proof_image:
                raise ValidationError("Payment proof image is required", field="paymentProofImage")
            result = {
                "id": payment_id or str(int(now.timestamp() * 1000)),
                "status": "COMPLETED",
                "update_time": now.isoformat(),
                "email_address": email or "",
            }
            if not mark_order_paid(
                session,
                order,
                from_statuses=(ORDER_PENDING, ORDER_INITIATED),
                payment_result=result,
                paid_at=now,
            ):
                raise StateConflictError("Order was updated concurrently, retry")
            session.refresh(order)
            log_event("info", "order.paid_manually", order_id=order.id)
            return to_order_dto(order)

    def count_orders(self) -> int:
        with self._session_factory() as session:
            return int(session.query(func.count(Order.id)).scalar() or 0)

    def total_sales(self) -> str:
        with self._session_factory() as session:
            total = sum(
                (Decimal(str(t)) for (t,) in session.query(Order.total_price).filter(Order.is_paid.is_(True))),
                Decimal("0"),
            )
            return format_money(total)

    def sales_by_date(self) -> List[Dict]:
        with self._session_factory() as session:
            rows = (
                session.query(Order.paid_at, Order.total_price)
                .filter(Order.is_paid.is_(True), Order.paid_at.isnot(None))
                .all()
            )
        buckets: Dict[str, Dict] = {}
        for paid_at, total in rows:
            day = paid_at.strftime("%Y-%m-%d")
            bucket = buckets.setdefault(day, {"_id": day, "totalSales": Decimal("0"), "orderCount": 0})
            bucket["totalSales"] += Decimal(str(total))
            bucket["orderCount"] += 1
        return [
            {**b, "totalSales": format_money(b["totalSales"])}
            for _, b in sorted(buckets.items())
        ]
