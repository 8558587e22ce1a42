"""Admin JSON API: all orders, fulfilment, sales reports and catalog writes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from storefront.errors import ValidationError
from storefront.utils.auth import decode_identity, ensure_admin, token_from_request


admin_bp = Blueprint("storefront_admin", __name__, url_prefix="/api/admin")


def _components() -> dict:
    return current_app.extensions["storefront_components"]


def _payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    return payload


@admin_bp.before_request
def guard_private_routes():
    identity = decode_identity(token_from_request(request), current_app.config["STOREFRONT_CONFIG"].secret_key)
    ensure_admin(identity)
    return None


@admin_bp.get("/orders")
def list_orders():
    return jsonify(_components()["orders"].list_orders())


@admin_bp.get("/orders/total")
def count_orders():
    return jsonify({"totalOrders": _components()["orders"].count_orders()})


@admin_bp.get("/orders/total-sales")
def total_sales():
    return jsonify({"totalSales": _components()["orders"].total_sales()})


@admin_bp.get("/orders/total-sales-by-date")
def total_sales_by_date():
    return jsonify(_components()["orders"].sales_by_date())


@admin_bp.put("/orders/<order_id>/deliver")
def mark_delivered(order_id: str):
    return jsonify(_components()["orders"].mark_delivered(order_id))


@admin_bp.put("/orders/<order_id>/pay")
def mark_paid(order_id: str):
    payload = _payload()
    order = _components()["orders"].mark_paid_manually(
        order_id,
        payment_id=payload.get("id"),
        email=payload.get("email_address"),
    )
    return jsonify(order)


@admin_bp.post("/products")
def create_product():
    return jsonify(_components()["catalog"].create_product(_payload())), 201


@admin_bp.put("/products/<product_id>")
def update_product(product_id: str):
    return jsonify(_components()["catalog"].update_product(product_id, _payload()))


@admin_bp.delete("/products/<product_id>")
def remove_product(product_id: str):
    _components()["catalog"].remove_product(product_id)
    return jsonify({"message": "Product removed", "id": product_id})


@admin_bp.put("/products/<product_id>/discount")
def set_discount(product_id: str):
    payload = _payload()
    product = _components()["catalog"].set_discount(
        product_id,
        percentage=payload.get("percentage"),
        start_date=payload.get("startDate"),
        end_date=payload.get("endDate"),
        name=payload.get("name") or "",
        active=payload.get("active", True),
    )
    return jsonify(product)


@admin_bp.delete("/products/<product_id>/discount")
def clear_discount(product_id: str):
    return jsonify(_components()["catalog"].clear_discount(product_id))
