"""Storefront HTTP blueprints."""

from . import admin, api, payment

__all__ = ["admin", "api", "payment"]
