"""Provisioning plan synthesis.

A plan is everything the provisioning engine needs from a frozen topology:
the creation order, the derived grants rendered as policy documents, the
edge routing rules and the stack outputs. Synthesis is deterministic, so
synthesizing the same topology twice yields an empty diff.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from storefront.config.settings import Settings, get_settings
from storefront.graph.identifiers import has_resource_arn, resource_arn
from storefront.models.schemas import GrantStatement, ResourceKind, RoutingRule
from storefront.monitoring.metrics import record_plan_size
from storefront.permissions.derivation import derive, to_policy_documents
from storefront.routing.rules import build_rules
from storefront.topologies.registry import Topology

logger = structlog.get_logger(__name__)

# Stack outputs and the resource kind whose endpoint each one exposes
OUTPUTS: tuple[tuple[str, ResourceKind, str], ...] = (
    ("CloudFrontURL", ResourceKind.DISTRIBUTION, "DomainName"),
    ("APIGatewayURL", ResourceKind.GATEWAY, "Url"),
    ("LoadBalancerURL", ResourceKind.CONTAINER_SERVICE, "LoadBalancerDNS"),
)


@dataclass(frozen=True)
class ProvisioningPlan:
    """Synthesized provisioning output for one topology."""

    topology: str
    order: tuple[str, ...]
    resources: dict[str, dict[str, Any]]
    grants: tuple[GrantStatement, ...]
    policy_documents: dict[str, dict]
    rules: tuple[RoutingRule, ...]
    outputs: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topology": self.topology,
            "order": list(self.order),
            "resources": self.resources,
            "grants": [g.model_dump(mode="json") for g in self.grants],
            "policy_documents": self.policy_documents,
            "rules": [r.model_dump(mode="json") for r in self.rules],
            "outputs": self.outputs,
        }


@dataclass(frozen=True)
class PlanDiff:
    """Section-by-section differences between two plan documents."""

    added: dict[str, list[str]] = field(default_factory=dict)
    removed: dict[str, list[str]] = field(default_factory=dict)
    changed: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)

    def to_dict(self) -> dict[str, Any]:
        return {"added": self.added, "removed": self.removed, "changed": self.changed}


def synthesize(topology: Topology, settings: Optional[Settings] = None) -> ProvisioningPlan:
    """Derive the provisioning plan for a frozen topology.

    Raises:
        GrantDerivationError: If a reads_writes or registry edge is inconsistent.
        RoutingDerivationError: If the distribution's origins cannot be routed.
    """
    settings = settings or get_settings()
    graph = topology.graph

    order = tuple(graph.topological_order())
    resources = {}
    for node_id in order:
        node = graph.node(node_id)
        resources[node_id] = {
            "kind": node.kind.value,
            "arn": resource_arn(node, settings) if has_resource_arn(node.kind) else None,
            "attributes": node.attributes.model_dump(mode="json"),
        }
    grants = tuple(sorted(derive(graph, settings), key=lambda g: (g.principal, g.resources)))
    rules = build_rules(graph) if graph.nodes(ResourceKind.DISTRIBUTION) else ()

    outputs = {}
    for output, kind, attribute in OUTPUTS:
        for node in graph.nodes(kind):
            outputs[output] = f"${{{node.id}.{attribute}}}"

    plan = ProvisioningPlan(
        topology=topology.variant.value,
        order=order,
        resources=resources,
        grants=grants,
        policy_documents=to_policy_documents(graph, grants),
        rules=rules,
        outputs=outputs,
    )
    record_plan_size(plan.topology, len(grants), len(rules))
    logger.info(
        "plan_synthesized",
        topology=plan.topology,
        resources=len(order),
        grants=len(grants),
        rules=len(rules),
    )
    return plan


def _keyed(section: str, value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if section == "order":
        return {item: index for index, item in enumerate(value)}
    if section == "rules":
        return {item["path_pattern"]: item for item in value}
    if section == "grants":
        return {f"{item['principal']} -> {','.join(item['resources'])}": item for item in value}
    return {str(index): item for index, item in enumerate(value)}


def diff_plans(old: dict[str, Any], new: dict[str, Any]) -> PlanDiff:
    """Compare two plan documents as produced by ``ProvisioningPlan.to_dict``."""
    added: dict[str, list[str]] = {}
    removed: dict[str, list[str]] = {}
    changed: list[str] = []

    for section in sorted(set(old) | set(new)):
        if section not in old or section not in new:
            changed.append(section)
            continue
        if not isinstance(old[section], (dict, list)):
            if old[section] != new[section]:
                changed.append(section)
            continue

        before = _keyed(section, old[section])
        after = _keyed(section, new[section])
        if missing := sorted(set(before) - set(after)):
            removed[section] = missing
        if extra := sorted(set(after) - set(before)):
            added[section] = extra
        changed.extend(
            f"{section}.{key}" for key in sorted(set(before) & set(after)) if before[key] != after[key]
        )

    return PlanDiff(added=added, removed=removed, changed=changed)
