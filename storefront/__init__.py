"""Storefront core: configuration, models, pricing and checkout services."""
