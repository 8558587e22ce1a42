"""Khalti checkout: open a gateway session for an order, then confirm it.

Order states: pending -> initiated -> paid, or pending/initiated -> cancelled.
Paid and cancelled are terminal. Nothing here trusts the callback query
alone; the gateway lookup is the source of truth for status and amount.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode
from uuid import uuid4

from ..config import AppConfig
from ..db.session import get_session
from ..errors import ExternalGatewayError, StateConflictError, StorefrontError
from ..models.order import ORDER_CANCELLED, ORDER_INITIATED, ORDER_PAID, ORDER_PENDING, Order
from ..models.payment import PaymentRecord, PendingPurchase
from ..utils.auth import Identity, ensure_access
from ..utils.validators import utcnow
from .logging import log_event
from .order_service import OrderService
from .pricing import to_minor_units
from .settlement import mark_order_paid

GATEWAY_COMPLETED = "Completed"


@dataclass
class VerificationOutcome:
    ok: bool
    order_id: Optional[str]
    message: str
    already_paid: bool = False


class _Rejected(Exception):
    def __init__(self, message: str, **fields: Any) -> None:
        super().__init__(message)
        self.message = message
        self.fields = fields


def _first(params: Mapping, *names: str) -> Optional[str]:
    for name in names:
        value = params.get(name)
        if value not in (None, ""):
            return str(value)
    return None


class PaymentService:
    def __init__(self, gateway, config: AppConfig, session_factory=get_session):
        self._gateway = gateway
        self._config = config
        self._session_factory = session_factory
        self.logger = logging.getLogger(__name__)

    def initiate(self, order_id: str, *, identity: Identity, website_url: Optional[str] = None) -> Dict:
        with self._session_factory() as session:
            order = OrderService.load(session, order_id)
            ensure_access(identity, order.user_id)
            if order.is_paid or order.status == ORDER_PAID:
                raise StateConflictError("Order is already paid")
            if order.is_cancelled or order.status == ORDER_CANCELLED:
                raise StateConflictError("Cannot pay a cancelled order")
            amount = to_minor_units(order.total_price)
            version = order.version

        # no transaction is held open across the gateway call
        try:
            session_info = self._gateway.initiate(
                amount=amount,
                purchase_order_id=order_id,
                purchase_order_name=f"Order {order_id}",
                return_url=self._config.verify_url,
                website_url=website_url or self._config.frontend_url,
            )
        except ExternalGatewayError as exc:
            log_event("warning", "payment.initiate_failed", order_id=order_id, reason=exc.message)
            raise

        with self._session_factory() as session:
            order = OrderService.load(session, order_id)
            if order.version != version or order.status not in (ORDER_PENDING, ORDER_INITIATED):
                raise StateConflictError("Order changed while the payment was being initiated, retry")
            pidx = str(session_info["pidx"])
            order.gateway_pidx = pidx
            order.expected_amount = amount
            order.status = ORDER_INITIATED
            order.version = version + 1

            purchase = (
                session.query(PendingPurchase)
                .filter(PendingPurchase.order_id == order_id, PendingPurchase.status == "pending")
                .first()
            )
            if purchase is None:
                purchase = PendingPurchase(id=str(uuid4()), order_id=order_id, payment_method="khalti")
                session.add(purchase)
            purchase.expected_amount = amount
            purchase.pidx = pidx
            session.flush()

        log_event("info", "payment.initiated", order_id=order_id, pidx=pidx, amount=amount)
        return {
            "orderId": order_id,
            "amount": amount,
            "pidx": pidx,
            "payment_url": session_info.get("payment_url"),
            "expires_at": session_info.get("expires_at"),
            "expires_in": session_info.get("expires_in"),
        }

    def verify(self, params: Mapping) -> VerificationOutcome:
        """Confirm a gateway callback. Never raises: every failure becomes an outcome."""
        order_id = _first(params, "purchase_order_id", "orderId")
        try:
            return self._verify(order_id, params)
        except _Rejected as rej:
            log_event("warning", "payment.verify_rejected", order_id=order_id, reason=rej.message, **rej.fields)
            return VerificationOutcome(False, order_id, rej.message)
        except Exception:
            self.logger.exception("Unexpected error verifying payment for order %s", order_id)
            log_event("error", "payment.verify_rejected", order_id=order_id, reason="unexpected error")
            return VerificationOutcome(False, order_id, "Payment could not be verified, please try again")

    def _verify(self, order_id: Optional[str], params: Mapping) -> VerificationOutcome:
        pidx = _first(params, "pidx", "token")
        claimed_amount = _first(params, "amount", "total_amount")
        claimed_txn = _first(params, "transaction_id", "transactionId", "txnId")
        if not order_id:
            raise _Rejected("Missing purchase order id")

        with self._session_factory() as session:
            order = session.get(Order, order_id)
            if order is None:
                raise _Rejected("Order not found")
            if order.is_paid:
                return self._duplicate(order_id)
            if order.status == ORDER_CANCELLED:
                raise _Rejected("Order was cancelled")
            if order.status != ORDER_INITIATED:
                raise _Rejected("Payment was not initiated for this order", status=order.status)
            if not pidx or pidx != order.gateway_pidx:
                raise _Rejected("Payment session does not match this order", pidx=pidx)
            expected = int(order.expected_amount or 0)

        if claimed_amount is None or not claimed_amount.isdigit() or int(claimed_amount) != expected:
            raise _Rejected("Payment amount mismatch", claimed=claimed_amount, expected=expected)

        try:
            lookup = self._gateway.lookup(pidx)
        except ExternalGatewayError as exc:
            raise _Rejected("Could not confirm payment with Khalti, please retry", detail=exc.message)

        status = lookup.get("status")
        if status != GATEWAY_COMPLETED:
            raise _Rejected(f"Payment not completed (status: {status})", status=status)
        try:
            confirmed = int(lookup.get("total_amount"))
        except (TypeError, ValueError):
            confirmed = None
        if confirmed != expected:
            raise _Rejected("Payment amount mismatch", confirmed=confirmed, expected=expected)
        transaction_id = lookup.get("transaction_id")
        if claimed_txn and transaction_id and claimed_txn != str(transaction_id):
            raise _Rejected("Transaction id mismatch", claimed=claimed_txn)

        return self._commit(order_id, pidx, expected, lookup, params)

    def _commit(self, order_id: str, pidx: str, amount: int, lookup: Mapping, params: Mapping) -> VerificationOutcome:
        now = utcnow()
        transaction_id = str(lookup.get("transaction_id") or "") or None
        try:
            with self._session_factory() as session:
                order = OrderService.load(session, order_id)
                if order.is_paid:
                    return self._duplicate(order_id)
                settled = mark_order_paid(
                    session,
                    order,
                    from_statuses=(ORDER_INITIATED,),
                    payment_result={
                        "id": transaction_id or pidx,
                        "status": GATEWAY_COMPLETED,
                        "update_time": now.isoformat(),
                        "email_address": _first(params, "email") or "",
                        "mobile": _first(params, "mobile") or "",
                        "pidx": pidx,
                    },
                    paid_at=now,
                )
                if not settled:
                    session.refresh(order)
                    if order.is_paid:
                        return self._duplicate(order_id)
                    raise _Rejected("Order changed during verification, please retry")

                session.query(PendingPurchase).filter(
                    PendingPurchase.order_id == order_id, PendingPurchase.pidx == pidx
                ).update({"status": "completed"}, synchronize_session=False)
                session.add(
                    PaymentRecord(
                        id=str(uuid4()),
                        order_id=order_id,
                        pidx=pidx,
                        transaction_id=transaction_id,
                        amount=amount,
                        gateway="khalti",
                        lookup_data=dict(lookup),
                        callback_query={k: params.get(k) for k in params.keys()},
                        status="success",
                    )
                )
                session.flush()
        except StorefrontError as exc:
            # the whole unit rolled back: order stays initiated, no stock moved
            log_event("error", "payment.stock_failed", order_id=order_id, reason=exc.message)
            raise _Rejected("Payment received but the order could not be completed, please contact support")

        log_event("info", "payment.verified", order_id=order_id, pidx=pidx, amount=amount, transaction_id=transaction_id)
        return VerificationOutcome(True, order_id, "Payment successful")

    @staticmethod
    def _duplicate(order_id: str) -> VerificationOutcome:
        log_event("info", "payment.verify_duplicate", order_id=order_id)
        return VerificationOutcome(True, order_id, "Order is already paid", already_paid=True)

    def redirect_url(self, outcome: VerificationOutcome) -> str:
        if outcome.ok:
            query = {"payment": "success"}
        else:
            query = {"payment": "error", "message": outcome.message}
        return f"{self._config.order_page_url(outcome.order_id)}?{urlencode(query)}"
