"""Storefront Flask application: catalog, cart, orders and Khalti checkout."""

from __future__ import annotations

from typing import Optional

from flask import Flask, jsonify

from routes import admin, api, payment
from storefront.config import AppConfig, load_env
from storefront.db.session import build_engine, create_session_factory, init_db
from storefront.errors import StorefrontError
from storefront.services.cart_service import CartService
from storefront.services.catalog_service import CatalogService
from storefront.services.favorite_service import FavoriteService
from storefront.services.khalti_service import KhaltiClient
from storefront.services.logging import configure_logging, log_event
from storefront.services.order_service import OrderService
from storefront.services.otp_service import OtpService
from storefront.services.payment_service import PaymentService


def create_app(config: Optional[AppConfig] = None, gateway=None) -> Flask:
    config = config or load_env()
    configure_logging(config.log_level)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["STOREFRONT_CONFIG"] = config

    engine = build_engine(config.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)

    missing = config.missing_gateway_settings()
    if gateway is None and missing:
        log_event("warning", "payment.gateway_unconfigured", missing=missing)

    cart = CartService(session_factory)
    components = {
        "catalog": CatalogService(session_factory),
        "cart": cart,
        "orders": OrderService(session_factory, currency=config.currency, cart_service=cart),
        "favorites": FavoriteService(session_factory),
        "otp": OtpService(session_factory, ttl_seconds=config.otp_ttl_seconds),
        "payments": PaymentService(gateway or KhaltiClient.from_config(config), config, session_factory),
    }
    app.extensions["storefront_components"] = components
    app.extensions["storefront_session"] = session_factory

    @app.errorhandler(StorefrontError)
    def handle_storefront_error(exc: StorefrontError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})

    app.register_blueprint(api.api_bp)
    app.register_blueprint(payment.payment_bp)
    app.register_blueprint(admin.admin_bp)

    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=False)


if __name__ == "__main__":
    main()
