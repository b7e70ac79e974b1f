"""Routing & caching rule engine."""

from storefront.routing.rules import API_PREFIX, DEFAULT_PATTERN, build_rules, resolve

__all__ = ["API_PREFIX", "DEFAULT_PATTERN", "build_rules", "resolve"]
