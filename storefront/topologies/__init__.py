"""Storefront topology variants and provisioning plan synthesis."""

from storefront.topologies import variants  # noqa: F401  (registers builders)
from storefront.topologies.plan import PlanDiff, ProvisioningPlan, diff_plans, synthesize
from storefront.topologies.registry import (
    Topology,
    TopologyVariant,
    get_topology,
    list_topologies,
    register_topology,
)

__all__ = [
    "PlanDiff",
    "ProvisioningPlan",
    "diff_plans",
    "synthesize",
    "Topology",
    "TopologyVariant",
    "get_topology",
    "list_topologies",
    "register_topology",
]
