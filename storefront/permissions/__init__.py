"""Permission derivation engine."""

from storefront.permissions.derivation import (
    REGISTRY_ACTIONS,
    TABLE_DATA_ACTIONS,
    derive,
    grants_for,
    to_policy_documents,
)

__all__ = [
    "REGISTRY_ACTIONS",
    "TABLE_DATA_ACTIONS",
    "derive",
    "grants_for",
    "to_policy_documents",
]
