from datetime import datetime
from typing import Dict, Iterable, Sequence

from sqlalchemy import case, update

from ..errors import NotFoundError
from ..models.order import ORDER_PAID, Order
from ..models.product import Product
from .pricing import LineItem


def decrement_stock(session, items: Iterable[LineItem]) -> None:
    """Take each line's quantity off its product, never below zero.

    Raises on the first missing product; the caller's transaction must roll
    back so no earlier decrement survives.
    """
    for item in items:
        qty = int(item.quantity)
        result = session.execute(
            update(Product)
            .where(Product.id == item.product_id)
            .values(
                quantity=case((Product.quantity > qty, Product.quantity - qty), else_=0),
                in_stock=case((Product.quantity > qty, True), else_=False),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundError(f"Product not found: {item.product_id}", field=item.product_id)


def mark_order_paid(
    session,
    order: Order,
    *,
    from_statuses: Sequence[str],
    payment_result: Dict,
    paid_at: datetime,
) -> bool:
    """Move ``order`` to paid and take its stock, at most once.

    Returns False when another request already settled the order (the
    conditional update matched nothing); nothing is changed in that case.
    """
    claimed = session.execute(
        update(Order)
        .where(
            Order.id == order.id,
            Order.status.in_(list(from_statuses)),
            Order.is_paid.is_(False),
            Order.version == order.version,
        )
        .values(
            status=ORDER_PAID,
            is_paid=True,
            paid_at=paid_at,
            payment_result=payment_result,
            version=Order.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        return False
    decrement_stock(session, [LineItem.from_dict(i) for i in order.items or []])
    session.expire(order)
    return True
