"""Price computation shared by the cart snapshot and order finalisation.

Everything here is pure apart from ``price_line_items``, which reads the
authoritative product rows to validate what the client claims to be paying.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..errors import NotFoundError, ValidationError
from ..models.product import Product
from ..utils.validators import ensure_money, ensure_positive_int, parse_datetime, utcnow

CENT = Decimal("0.01")
TAX_RATE = Decimal("0.15")
SHIPPING_FEE = Decimal("10")
FREE_SHIPPING_OVER = Decimal("100")
PRICE_TOLERANCE = Decimal("0.01")
MINOR_UNITS_PER_MAJOR = 100


def money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Any) -> str:
    return f"{money(value):.2f}"


def _percentage(discount: Optional[Mapping]) -> Optional[Decimal]:
    try:
        return Decimal(str(discount.get("percentage")))
    except (AttributeError, InvalidOperation, TypeError):
        return None


def is_discount_valid(discount: Optional[Mapping], now: Optional[datetime] = None) -> bool:
    """A discount applies only while active, positive and inside its window."""
    if not discount or not discount.get("active"):
        return False
    pct = _percentage(discount)
    if pct is None or not pct.is_finite() or pct <= 0 or pct > 100:
        return False
    start = parse_datetime(discount.get("startDate"))
    end = parse_datetime(discount.get("endDate"))
    if start is None or end is None:
        return False
    now = now or utcnow()
    return start <= now <= end


def discounted_price(list_price: Any, discount: Optional[Mapping], now: Optional[datetime] = None) -> Decimal:
    """Unrounded unit price after any valid discount."""
    price = Decimal(str(list_price))
    if not is_discount_valid(discount, now):
        return price
    return price * (1 - _percentage(discount) / 100)


def serialize_discount(discount: Optional[Mapping]) -> Optional[dict]:
    if not discount:
        return None
    out = dict(discount)
    for key in ("startDate", "endDate"):
        value = out.get(key)
        if isinstance(value, datetime):
            out[key] = value.isoformat()
    return out


@dataclass
class LineItem:
    product_id: str
    quantity: int
    unit_price: Decimal
    name: str = ""
    image: Optional[str] = None
    list_price: Optional[Decimal] = None
    discount: Optional[dict] = None

    def to_dict(self) -> Dict:
        return {
            "product": self.product_id,
            "name": self.name,
            "image": self.image,
            "qty": self.quantity,
            "price": format_money(self.unit_price),
            "listPrice": format_money(self.list_price) if self.list_price is not None else None,
            "discount": serialize_discount(self.discount),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "LineItem":
        list_price = data.get("listPrice")
        return cls(
            product_id=str(data.get("product")),
            quantity=int(data.get("qty") or 0),
            unit_price=Decimal(str(data.get("price") or 0)),
            name=data.get("name") or "",
            image=data.get("image"),
            list_price=Decimal(str(list_price)) if list_price is not None else None,
            discount=data.get("discount"),
        )


@dataclass
class PriceTotals:
    items_price: Decimal = field(default_factory=lambda: Decimal("0.00"))
    shipping_price: Decimal = field(default_factory=lambda: Decimal("0.00"))
    tax_price: Decimal = field(default_factory=lambda: Decimal("0.00"))
    total_price: Decimal = field(default_factory=lambda: Decimal("0.00"))
    total_savings: Decimal = field(default_factory=lambda: Decimal("0.00"))

    def to_dict(self) -> Dict[str, str]:
        return {
            "itemsPrice": format_money(self.items_price),
            "shippingPrice": format_money(self.shipping_price),
            "taxPrice": format_money(self.tax_price),
            "totalPrice": format_money(self.total_price),
            "totalSavings": format_money(self.total_savings),
        }


def _line_savings(item: LineItem, now: datetime) -> Decimal:
    if not is_discount_valid(item.discount, now):
        return Decimal("0")
    remaining = 1 - _percentage(item.discount) / 100
    if remaining > 0:
        original = item.unit_price / remaining
    elif item.list_price is not None:
        original = item.list_price
    else:
        return Decimal("0")
    return (original - item.unit_price) * item.quantity


def compute_totals(items: Iterable[LineItem], now: Optional[datetime] = None) -> PriceTotals:
    items = list(items)
    if not items:
        return PriceTotals()
    now = now or utcnow()
    items_price = money(sum((i.unit_price * i.quantity for i in items), Decimal("0")))
    shipping_price = money(0 if items_price > FREE_SHIPPING_OVER else SHIPPING_FEE)
    tax_price = money(items_price * TAX_RATE)
    return PriceTotals(
        items_price=items_price,
        shipping_price=shipping_price,
        tax_price=tax_price,
        total_price=money(items_price + shipping_price + tax_price),
        total_savings=money(sum((_line_savings(i, now) for i in items), Decimal("0"))),
    )


def _requested_product_id(entry: Mapping) -> str:
    for key in ("product", "product_id", "productId", "_id"):
        if entry.get(key):
            return str(entry[key])
    raise ValidationError("product is required", field="product")


def price_line_items(session, requested: Iterable[Mapping], now: Optional[datetime] = None) -> List[LineItem]:
    """Validate a batch of client line items against the catalog.

    Any unknown product, price deviating from the current (discounted) price by
    more than a cent, or quantity above stock rejects the whole batch.
    """
    if requested is None:
        requested = []
    if not isinstance(requested, (list, tuple)):
        raise ValidationError("orderItems must be a list", field="orderItems")
    if not requested:
        raise ValidationError("No order items", field="orderItems")
    if not all(isinstance(entry, Mapping) for entry in requested):
        raise ValidationError("Each order item must be an object", field="orderItems")
    now = now or utcnow()

    ids = [_requested_product_id(entry) for entry in requested]
    if len(set(ids)) != len(ids):
        raise ValidationError("Each product may appear only once", field="orderItems")
    rows = session.query(Product).filter(Product.id.in_(ids)).all()
    by_id = {p.id: p for p in rows if p.is_active}

    items: List[LineItem] = []
    for pid, entry in zip(ids, requested):
        product = by_id.get(pid)
        if product is None:
            raise NotFoundError(f"Product not found: {pid}", field=pid)
        qty = ensure_positive_int(entry.get("qty", entry.get("quantity")), "qty")
        available = int(product.quantity or 0)
        if qty > available:
            raise ValidationError(f"Only {available} items available in stock for {product.name}", field=pid)
        supplied = ensure_money(entry.get("price"), "price")
        expected = discounted_price(product.price, product.discount, now)
        if abs(supplied - expected) > PRICE_TOLERANCE:
            raise ValidationError(
                f"Provided price {format_money(supplied)} does not match current price "
                f"{format_money(expected)} for {product.name}",
                field=pid,
            )
        valid = is_discount_valid(product.discount, now)
        items.append(
            LineItem(
                product_id=pid,
                quantity=qty,
                unit_price=money(supplied),
                name=product.name,
                image=product.image,
                list_price=money(product.price),
                discount=product.discount if valid else None,
            )
        )
    return items


def to_minor_units(amount: Any) -> int:
    return int((money(amount) * MINOR_UNITS_PER_MAJOR).to_integral_value(rounding=ROUND_HALF_UP))
