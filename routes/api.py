"""Customer-facing JSON API: catalog, cart, favorites, orders and OTP codes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from storefront.errors import ValidationError
from storefront.utils.auth import Identity, decode_identity, ensure_access, token_from_request


api_bp = Blueprint("storefront_api", __name__, url_prefix="/api")


def _components() -> Dict[str, Any]:
    return current_app.extensions["storefront_components"]


def _config():
    return current_app.config["STOREFRONT_CONFIG"]


def _identity() -> Identity:
    identity = decode_identity(token_from_request(request), _config().secret_key)
    return ensure_access(identity, identity.user_id if identity else None)


def _payload() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    return payload


@api_bp.get("/products")
def list_products():
    return jsonify(_components()["catalog"].list_products())


@api_bp.get("/products/top")
def top_products():
    return jsonify(_components()["catalog"].top_products())


@api_bp.get("/products/new")
def new_products():
    return jsonify(_components()["catalog"].new_products())


@api_bp.get("/products/<product_id>")
def get_product(product_id: str):
    return jsonify(_components()["catalog"].get_product(product_id))


@api_bp.get("/products/<product_id>/reviews")
def list_reviews(product_id: str):
    return jsonify(_components()["catalog"].list_reviews(product_id))


@api_bp.post("/products/<product_id>/reviews")
def add_review(product_id: str):
    identity = _identity()
    payload = _payload()
    review = _components()["catalog"].add_review(
        product_id,
        user_id=identity.user_id,
        name=str(payload.get("name") or ""),
        rating=payload.get("rating"),
        comment=payload.get("comment"),
    )
    return jsonify({"message": "Review added", "review": review}), 201


@api_bp.get("/cart")
def get_cart():
    return jsonify(_components()["cart"].get_cart(user_id=_identity().user_id))


@api_bp.post("/cart")
def add_to_cart():
    payload = _payload()
    cart = _components()["cart"].add_item(
        user_id=_identity().user_id,
        product_id=payload.get("product") or payload.get("productId"),
        price=payload.get("price"),
        qty=payload.get("qty"),
        name=payload.get("name"),
        image=payload.get("image"),
    )
    return jsonify(cart)


@api_bp.delete("/cart/<product_id>")
def remove_from_cart(product_id: str):
    return jsonify(_components()["cart"].remove_item(user_id=_identity().user_id, product_id=product_id))


@api_bp.delete("/cart")
def clear_cart():
    return jsonify(_components()["cart"].clear_cart(user_id=_identity().user_id))


@api_bp.put("/cart/shipping")
def save_shipping_address():
    return jsonify(_components()["cart"].save_shipping_address(user_id=_identity().user_id, address=_payload()))


@api_bp.put("/cart/payment-method")
def save_payment_method():
    return jsonify(
        _components()["cart"].save_payment_method(
            user_id=_identity().user_id,
            payment_method=_payload().get("paymentMethod"),
        )
    )


@api_bp.get("/favorites")
def list_favorites():
    return jsonify(_components()["favorites"].list_favorites(user_id=_identity().user_id))


@api_bp.post("/favorites")
def add_favorite():
    favorite = _components()["favorites"].add_favorite(
        user_id=_identity().user_id,
        product_id=_payload().get("productId"),
    )
    return jsonify({"message": "Product added to favorites", "favorite": favorite}), 201


@api_bp.delete("/favorites/<product_id>")
def remove_favorite(product_id: str):
    _components()["favorites"].remove_favorite(user_id=_identity().user_id, product_id=product_id)
    return jsonify({"message": "Product removed from favorites"})


@api_bp.post("/orders")
def create_order():
    payload = _payload()
    order = _components()["orders"].create_order(
        identity=_identity(),
        order_items=payload.get("orderItems"),
        shipping_address=payload.get("shippingAddress"),
        payment_method=payload.get("paymentMethod"),
    )
    return jsonify(order), 201


@api_bp.get("/orders/mine")
def list_my_orders():
    return jsonify(_components()["orders"].list_user_orders(user_id=_identity().user_id))


@api_bp.get("/orders/<order_id>")
def get_order(order_id: str):
    return jsonify(_components()["orders"].get_order(order_id, identity=_identity()))


@api_bp.put("/orders/<order_id>/cancel")
def cancel_order(order_id: str):
    order = _components()["orders"].cancel_order(
        order_id,
        identity=_identity(),
        reason=_payload().get("reason"),
    )
    return jsonify(order)


@api_bp.put("/orders/<order_id>/payment-proof")
def upload_payment_proof(order_id: str):
    order = _components()["orders"].upload_payment_proof(
        order_id,
        identity=_identity(),
        image_url=_payload().get("imageUrl"),
    )
    return jsonify(order)


@api_bp.post("/users/otp")
def request_otp():
    payload = _payload()
    _components()["otp"].issue(
        str(payload.get("email") or ""),
        purpose=str(payload.get("purpose") or "register"),
    )
    return jsonify({"message": "OTP sent to email"})


@api_bp.post("/users/otp/verify")
def verify_otp():
    payload = _payload()
    _components()["otp"].verify(
        str(payload.get("email") or ""),
        str(payload.get("otp") or ""),
        purpose=str(payload.get("purpose") or "register"),
    )
    return jsonify({"message": "OTP verified"})
