"""Routing and caching rules for the edge distribution.

Rules are derived from the distribution's ``serves_traffic_to`` edges:

- the storage bucket becomes the default ``/*`` origin for static assets;
- each compute unit behind a gateway gets ``/api/<name>/*``;
- a container service behind a load balancer gets a single ``/api/*``.

Cache policy is part of the external contract. Only compute units marked
idempotent (read-mostly catalog data) are cached; everything with side
effects is served with caching disabled.
"""

from fnmatch import fnmatchcase
from typing import Optional, Sequence

import structlog

from storefront.core.exceptions import RoutingConflictError, RoutingDerivationError
from storefront.graph.resource_graph import ResourceGraph
from storefront.models.schemas import (
    AllowedMethods,
    CachePolicy,
    NodeId,
    OriginKind,
    ProtocolPolicy,
    Relation,
    ResourceKind,
    ResourceNode,
    RoutingRule,
)

logger = structlog.get_logger(__name__)

DEFAULT_PATTERN = "/*"
API_PREFIX = "/api"


def build_rules(graph: ResourceGraph, distribution: Optional[NodeId] = None) -> tuple[RoutingRule, ...]:
    """Derive the ordered rule set for a distribution.

    Args:
        graph: Validated resource graph.
        distribution: Distribution node id. May be omitted when the graph
            has exactly one distribution.

    Returns:
        Rules ordered most specific first, default rule last.

    Raises:
        RoutingDerivationError: If the distribution or its bucket origin is missing.
        RoutingConflictError: If two rules for one pattern disagree.
    """
    dist = _select_distribution(graph, distribution)
    origins = [graph.node(n) for n in graph.ordered(graph.neighbors(dist.id, Relation.SERVES_TRAFFIC_TO))]

    default_rule: Optional[RoutingRule] = None
    dynamic: list[RoutingRule] = []

    for origin in origins:
        if origin.kind == ResourceKind.STORAGE_BUCKET:
            if default_rule is not None:
                raise RoutingConflictError(
                    DEFAULT_PATTERN,
                    {"origins": [default_rule.origin_ref, origin.id]},
                )
            default_rule = RoutingRule(
                path_pattern=DEFAULT_PATTERN,
                origin_ref=origin.id,
                origin_kind=OriginKind.STORAGE_BUCKET,
                cache_policy=CachePolicy.OPTIMIZED,
                protocol_policy=ProtocolPolicy.REDIRECT_TO_HTTPS,
                allowed_methods=AllowedMethods.GET_HEAD,
            )
        elif origin.kind == ResourceKind.GATEWAY:
            dynamic.extend(_gateway_rules(graph, origin))
        elif origin.kind == ResourceKind.CONTAINER_SERVICE:
            dynamic.append(_load_balancer_rule(origin))

    if default_rule is None:
        raise RoutingDerivationError(
            f"Distribution '{dist.id}' has no storage bucket origin for static assets",
        )

    rules = _merge(dynamic)
    # stable sort keeps insertion order among equally specific patterns
    rules.sort(key=lambda rule: len(rule.literal_prefix), reverse=True)
    rules.append(default_rule)

    logger.info(
        "routing_rules_built",
        graph=graph.name,
        distribution=dist.id,
        rules=[(r.path_pattern, r.cache_policy.value) for r in rules],
    )
    return tuple(rules)


def resolve(rules: Sequence[RoutingRule], path: str) -> RoutingRule:
    """Return the first rule whose pattern matches ``path``.

    Raises:
        LookupError: If no rule matches.
    """
    for rule in rules:
        if fnmatchcase(path, rule.path_pattern):
            return rule
    raise LookupError(f"No routing rule matches {path}")


def _select_distribution(graph: ResourceGraph, distribution: Optional[NodeId]) -> ResourceNode:
    if distribution is not None:
        node = graph.node(distribution)
        if node.kind != ResourceKind.DISTRIBUTION:
            raise RoutingDerivationError(f"'{distribution}' is not a distribution")
        return node

    candidates = graph.nodes(ResourceKind.DISTRIBUTION)
    if len(candidates) != 1:
        raise RoutingDerivationError(
            f"Expected exactly one distribution, found {len(candidates)}",
            {"distributions": [n.id for n in candidates]},
        )
    return candidates[0]


def _gateway_rules(graph: ResourceGraph, gateway: ResourceNode) -> list[RoutingRule]:
    rules = []
    for unit_id in graph.ordered(graph.neighbors(gateway.id, Relation.SERVES_TRAFFIC_TO)):
        unit = graph.node(unit_id)
        rules.append(
            RoutingRule(
                path_pattern=f"{API_PREFIX}/{unit.name}/*",
                origin_ref=gateway.id,
                origin_kind=OriginKind.GATEWAY,
                cache_policy=CachePolicy.OPTIMIZED if unit.attributes.idempotent else CachePolicy.DISABLED,
                protocol_policy=ProtocolPolicy.HTTPS_ONLY,
                allowed_methods=AllowedMethods.ALL,
            )
        )
    return rules


def _load_balancer_rule(service: ResourceNode) -> RoutingRule:
    # One service fans out to every resource internally
    return RoutingRule(
        path_pattern=f"{API_PREFIX}/*",
        origin_ref=service.id,
        origin_kind=OriginKind.LOAD_BALANCER,
        cache_policy=CachePolicy.DISABLED,
        protocol_policy=ProtocolPolicy.HTTPS_ONLY,
        allowed_methods=AllowedMethods.ALL,
    )


def _merge(rules: list[RoutingRule]) -> list[RoutingRule]:
    """Drop exact duplicates; reject same-pattern rules that disagree."""
    by_pattern: dict[str, RoutingRule] = {}
    for rule in rules:
        existing = by_pattern.get(rule.path_pattern)
        if existing is None:
            by_pattern[rule.path_pattern] = rule
        elif existing != rule:
            raise RoutingConflictError(
                rule.path_pattern,
                {
                    "origins": [existing.origin_ref, rule.origin_ref],
                    "cache_policies": [existing.cache_policy.value, rule.cache_policy.value],
                },
            )
    return list(by_pattern.values())
