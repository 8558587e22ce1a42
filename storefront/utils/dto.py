from datetime import datetime
from typing import Any, Dict, Optional

from ..services.pricing import (
    discounted_price,
    format_money,
    is_discount_valid,
    serialize_discount,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def to_product_dto(row: Any, now: Optional[datetime] = None) -> Dict:
    discount = row.discount
    return {
        "id": row.id,
        "name": row.name,
        "brand": row.brand,
        "category": row.category,
        "description": row.description,
        "image": row.image,
        "price": format_money(row.price or 0),
        "discountedPrice": format_money(discounted_price(row.price or 0, discount, now)),
        "discountValid": is_discount_valid(discount, now),
        "discount": serialize_discount(discount),
        "quantity": int(row.quantity or 0),
        "inStock": bool(row.in_stock),
        "rating": float(row.rating or 0),
        "numReviews": int(row.num_reviews or 0),
    }


def to_order_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "user": row.user_id,
        "orderItems": list(row.items or []),
        "shippingAddress": row.shipping_address or {},
        "paymentMethod": row.payment_method,
        "itemsPrice": format_money(row.items_price),
        "shippingPrice": format_money(row.shipping_price),
        "taxPrice": format_money(row.tax_price),
        "totalPrice": format_money(row.total_price),
        "totalSavings": format_money(row.total_savings or 0),
        "currency": row.currency,
        "status": row.status,
        "isPaid": bool(row.is_paid),
        "paidAt": _iso(row.paid_at),
        "isDelivered": bool(row.is_delivered),
        "deliveredAt": _iso(row.delivered_at),
        "isCancelled": bool(row.is_cancelled),
        "cancelledAt": _iso(row.cancelled_at),
        "cancellationReason": row.cancellation_reason or "",
        "paymentResult": row.payment_result,
        "paymentProofImage": row.payment_proof_image or "",
        "createdAt": _iso(row.created_at),
    }
