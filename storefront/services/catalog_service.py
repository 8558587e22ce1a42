from decimal import Decimal
from typing import Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import func

from ..db.session import get_session
from ..errors import NotFoundError, ValidationError
from ..models.product import Product
from ..models.review import Review
from ..utils.dto import to_product_dto
from ..utils.validators import (
    ensure_money,
    ensure_non_negative_int,
    parse_datetime,
    require_fields,
    utcnow,
)
from .logging import log_event
from .pricing import money

UPDATABLE_FIELDS = ("name", "brand", "category", "description", "image", "price", "quantity")
TOP_PRODUCTS_LIMIT = 4
NEW_PRODUCTS_LIMIT = 5


def _review_dto(row: Review) -> Dict:
    return {
        "_id": row.id,
        "user": row.user_id,
        "name": row.name,
        "rating": row.rating,
        "comment": row.comment,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }


class CatalogService:
    """Product lookups plus the admin writes the storefront needs.

    Responsibilities:
    - List active products, fetch a single product DTO, top rated and newest
    - Create, update and retire products (admin)
    - Manage a product's discount window (admin)
    - Collect one review per user per product and keep the rating in sync
    """

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def list_products(self) -> List[Dict]:
        now = utcnow()
        with self._session_factory() as session:
            rows = (
                session.query(Product)
                .filter(Product.is_active.is_(True))
                .order_by(Product.created_at.desc(), Product.name)
                .all()
            )
            return [to_product_dto(r, now) for r in rows]

    def top_products(self, limit: int = TOP_PRODUCTS_LIMIT) -> List[Dict]:
        now = utcnow()
        with self._session_factory() as session:
            rows = (
                session.query(Product)
                .filter(Product.is_active.is_(True))
                .order_by(Product.rating.desc(), Product.num_reviews.desc(), Product.name)
                .limit(limit)
                .all()
            )
            return [to_product_dto(r, now) for r in rows]

    def new_products(self, limit: int = NEW_PRODUCTS_LIMIT) -> List[Dict]:
        now = utcnow()
        with self._session_factory() as session:
            rows = (
                session.query(Product)
                .filter(Product.is_active.is_(True))
                .order_by(Product.created_at.desc(), Product.name)
                .limit(limit)
                .all()
            )
            return [to_product_dto(r, now) for r in rows]

    def get_product(self, product_id: str) -> Dict:
        with self._session_factory() as session:
            return to_product_dto(self._load(session, product_id))

    def create_product(self, fields: Mapping) -> Dict:
        data = require_fields(fields, ("name", "price"))
        quantity = ensure_non_negative_int(data.get("quantity") or 0, "quantity")
        with self._session_factory() as session:
            product = Product(
                id=data.get("id") or str(uuid4()),
                name=str(data["name"]).strip()[:100],
                brand=str(data.get("brand") or "").strip(),
                category=data.get("category"),
                description=data.get("description"),
                image=data.get("image"),
                price=ensure_money(data["price"], "price"),
                quantity=quantity,
                in_stock=quantity > 0,
            )
            session.add(product)
            session.flush()
            return to_product_dto(product)

    def update_product(self, product_id: str, fields: Mapping) -> Dict:
        """Apply only the provided fields; stock flag follows quantity."""
        changes = {k: v for k, v in (fields or {}).items() if k in UPDATABLE_FIELDS and v is not None}
        if "name" in changes and not str(changes["name"]).strip():
            raise ValidationError("name is required", field="name")
        if "price" in changes:
            changes["price"] = ensure_money(changes["price"], "price")
        if "quantity" in changes:
            changes["quantity"] = ensure_non_negative_int(changes["quantity"], "quantity")
        with self._session_factory() as session:
            product = self._load(session, product_id)
            for key, value in changes.items():
                if key == "name":
                    value = str(value).strip()[:100]
                elif key == "brand":
                    value = str(value).strip()
                setattr(product, key, value)
            if "quantity" in changes:
                product.in_stock = changes["quantity"] > 0
            session.flush()
            log_event("info", "catalog.product_updated", product_id=product_id, fields=sorted(changes))
            return to_product_dto(product)

    def remove_product(self, product_id: str) -> Dict:
        """Retire a product. The row stays so placed orders can still settle against it."""
        with self._session_factory() as session:
            product = self._load(session, product_id)
            product.is_active = False
            session.flush()
            log_event("info", "catalog.product_removed", product_id=product_id)
            return to_product_dto(product)

    def add_review(self, product_id: str, *, user_id: str, name: str = "", rating=None, comment=None) -> Dict:
        score = None if isinstance(rating, bool) else ensure_non_negative_int(rating, "rating")
        if score is None or not 1 <= score <= 5:
            raise ValidationError("rating must be between 1 and 5", field="rating")
        if not comment or not str(comment).strip():
            raise ValidationError("comment is required", field="comment")

        with self._session_factory() as session:
            product = self._load(session, product_id)
            exists = (
                session.query(Review.id)
                .filter(Review.product_id == product.id, Review.user_id == user_id)
                .first()
            )
            if exists:
                raise ValidationError("You have already reviewed this product", field="product")
            review = Review(
                id=str(uuid4()),
                product_id=product.id,
                user_id=user_id,
                name=(name or user_id).strip(),
                rating=score,
                comment=str(comment).strip(),
            )
            session.add(review)
            session.flush()

            count, average = (
                session.query(func.count(Review.id), func.avg(Review.rating))
                .filter(Review.product_id == product.id)
                .one()
            )
            product.num_reviews = int(count)
            product.rating = money(average or 0)
            session.flush()
            log_event("info", "catalog.review_added", product_id=product.id, user_id=user_id, rating=score)
            return _review_dto(review)

    def list_reviews(self, product_id: str) -> List[Dict]:
        with self._session_factory() as session:
            product = self._load(session, product_id)
            rows = (
                session.query(Review)
                .filter(Review.product_id == product.id)
                .order_by(Review.created_at.desc(), Review.id)
                .all()
            )
            return [_review_dto(r) for r in rows]

    def set_discount(
        self,
        product_id: str,
        *,
        percentage,
        start_date,
        end_date,
        name: str = "",
        active: bool = True,
    ) -> Dict:
        pct = ensure_money(percentage, "percentage")
        if pct > 100:
            raise ValidationError("percentage must be between 0 and 100", field="percentage")
        start, end = parse_datetime(start_date), parse_datetime(end_date)
        if start is None or end is None:
            raise ValidationError("startDate and endDate are required", field="startDate")
        if start > end:
            raise ValidationError("startDate must be before endDate", field="startDate")
        with self._session_factory() as session:
            product = self._load(session, product_id)
            product.discount_percentage = pct
            product.discount_active = bool(active)
            product.discount_start = start
            product.discount_end = end
            product.discount_name = (name or "").strip()
            session.flush()
            log_event("info", "catalog.discount_set", product_id=product_id, percentage=float(pct))
            return to_product_dto(product)

    def clear_discount(self, product_id: str) -> Dict:
        with self._session_factory() as session:
            product = self._load(session, product_id)
            product.discount_percentage = Decimal("0")
            product.discount_active = False
            product.discount_start = None
            product.discount_end = None
            product.discount_name = ""
            session.flush()
            return to_product_dto(product)

    @staticmethod
    def _load(session, product_id: Optional[str]) -> Product:
        product = (
            session.query(Product)
            .filter(Product.id == product_id, Product.is_active.is_(True))
            .first()
            if product_id
            else None
        )
        if not product:
            raise NotFoundError("Product not found", field="product")
        return product
