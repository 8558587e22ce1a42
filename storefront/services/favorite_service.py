from typing import Dict, List
from uuid import uuid4

from ..db.session import get_session
from ..errors import NotFoundError, ValidationError
from ..models.favorite import Favorite
from ..models.product import Product
from ..utils.dto import to_product_dto
from ..utils.validators import utcnow


class FavoriteService:
    """A user's saved products; each product at most once per user."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def add_favorite(self, *, user_id: str, product_id: str) -> Dict:
        if not product_id:
            raise ValidationError("productId is required", field="productId")
        with self._session_factory() as session:
            product = session.get(Product, product_id)
            if product is None or not product.is_active:
                raise NotFoundError("Product not found", field="productId")
            exists = (
                session.query(Favorite.id)
                .filter(Favorite.user_id == user_id, Favorite.product_id == product_id)
                .first()
            )
            if exists:
                raise ValidationError("Product is already in favorites", field="productId")
            favorite = Favorite(id=str(uuid4()), user_id=user_id, product_id=product_id)
            session.add(favorite)
            session.flush()
            return {"_id": favorite.id, "product": to_product_dto(product)}

    def remove_favorite(self, *, user_id: str, product_id: str) -> None:
        with self._session_factory() as session:
            removed = (
                session.query(Favorite)
                .filter(Favorite.user_id == user_id, Favorite.product_id == product_id)
                .delete(synchronize_session=False)
            )
            if not removed:
                raise NotFoundError("Favorite not found", field="productId")

    def list_favorites(self, *, user_id: str) -> List[Dict]:
        now = utcnow()
        with self._session_factory() as session:
            rows = (
                session.query(Product)
                .join(Favorite, Favorite.product_id == Product.id)
                .filter(Favorite.user_id == user_id, Product.is_active.is_(True))
                .order_by(Favorite.created_at.desc())
                .all()
            )
            return [to_product_dto(p, now) for p in rows]
