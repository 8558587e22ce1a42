"""Khalti checkout endpoints."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, redirect, request

from storefront.errors import ValidationError
from storefront.utils.auth import decode_identity, ensure_access, token_from_request


payment_bp = Blueprint("storefront_payment", __name__, url_prefix="/api/payment")


def _payments():
    return current_app.extensions["storefront_components"]["payments"]


@payment_bp.post("/initiate")
def initiate_payment():
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    order_id = payload.get("orderId")
    if not order_id:
        raise ValidationError("orderId is required", field="orderId")
    identity = decode_identity(token_from_request(request), current_app.config["STOREFRONT_CONFIG"].secret_key)
    ensure_access(identity, identity.user_id if identity else None)
    result = _payments().initiate(
        str(order_id),
        identity=identity,
        website_url=payload.get("websiteUrl") or payload.get("returnUrl"),
    )
    return jsonify({"success": True, "payment": result})


@payment_bp.get("/verify")
def verify_payment():
    # the gateway redirects the shopper here; answer with a redirect whatever happens
    service = _payments()
    outcome = service.verify(request.args)
    return redirect(service.redirect_url(outcome), code=302)
