"""Unit tests for routing and caching rules."""

import pytest

from storefront.core.exceptions import RoutingConflictError, RoutingDerivationError
from storefront.graph.resource_graph import ResourceGraph
from storefront.models.schemas import (
    AllowedMethods,
    CachePolicy,
    OriginKind,
    ProtocolPolicy,
    Relation,
    ResourceKind,
)
from storefront.routing import build_rules, resolve
from storefront.topologies import TopologyVariant, get_topology


@pytest.fixture
def function_rules(settings):
    return build_rules(get_topology(TopologyVariant.FUNCTION, settings).graph)


@pytest.fixture
def container_rules(container_graph):
    return build_rules(container_graph)


class TestFunctionTopologyRules:
    """Rules for a gateway with one compute unit per resource."""

    def test_rule_patterns_most_specific_first(self, function_rules):
        """API rules precede the default rule."""
        assert [r.path_pattern for r in function_rules] == [
            "/api/products/*",
            "/api/orders/*",
            "/api/cart/*",
            "/*",
        ]

    def test_only_idempotent_resources_cached(self, function_rules):
        """Products are cached; orders and cart are not."""
        policies = {r.path_pattern: r.cache_policy for r in function_rules}

        assert policies["/api/products/*"] == CachePolicy.OPTIMIZED
        assert policies["/api/orders/*"] == CachePolicy.DISABLED
        assert policies["/api/cart/*"] == CachePolicy.DISABLED

    def test_api_rules_https_only_all_methods(self, function_rules):
        """API rules forward writes over HTTPS only."""
        for rule in function_rules[:-1]:
            assert rule.origin_kind == OriginKind.GATEWAY
            assert rule.protocol_policy == ProtocolPolicy.HTTPS_ONLY
            assert rule.allowed_methods == AllowedMethods.ALL

    def test_default_rule_serves_static_assets(self, function_rules):
        """The default rule points at the bucket and redirects HTTP."""
        default = function_rules[-1]

        assert default.path_pattern == "/*"
        assert default.origin_ref == "StorageBucket/WooCommerceAssets"
        assert default.origin_kind == OriginKind.STORAGE_BUCKET
        assert default.protocol_policy == ProtocolPolicy.REDIRECT_TO_HTTPS
        assert default.allowed_methods == AllowedMethods.GET_HEAD


class TestContainerTopologyRules:
    """Rules for a single load-balanced container service."""

    def test_single_api_rule_uncached(self, container_rules):
        """All API traffic goes to the load balancer with caching disabled."""
        assert [r.path_pattern for r in container_rules] == ["/api/*", "/*"]
        api = container_rules[0]
        assert api.origin_kind == OriginKind.LOAD_BALANCER
        assert api.origin_ref == "ContainerService/WooCommerceService"
        assert api.cache_policy == CachePolicy.DISABLED


class TestResolve:
    """Test path resolution against an ordered rule set."""

    @pytest.mark.parametrize(
        "path,pattern",
        [
            ("/api/products/42", "/api/products/*"),
            ("/api/orders/7", "/api/orders/*"),
            ("/api/cart/abc", "/api/cart/*"),
            ("/index.html", "/*"),
            ("/assets/app.js", "/*"),
        ],
    )
    def test_first_match_wins(self, function_rules, path, pattern):
        """Paths resolve to the most specific matching rule."""
        assert resolve(function_rules, path).path_pattern == pattern

    def test_container_api_paths(self, container_rules):
        """Every API path reaches the load balancer."""
        assert resolve(container_rules, "/api/orders/7").origin_kind == OriginKind.LOAD_BALANCER
        assert resolve(container_rules, "/").origin_kind == OriginKind.STORAGE_BUCKET

    def test_no_match_raises(self, container_rules):
        """A path outside every pattern raises LookupError."""
        with pytest.raises(LookupError):
            resolve(container_rules[:1], "/index.html")


class TestDerivationErrors:
    """Test rejected distributions."""

    def _distribution(self, graph):
        return graph.add_node(ResourceKind.DISTRIBUTION, {"name": "Distribution"})

    def test_missing_bucket(self):
        """A distribution without a bucket origin has no default rule."""
        graph = ResourceGraph("test")
        dist = self._distribution(graph)
        api = graph.add_node(ResourceKind.GATEWAY, {"name": "Api", "rest_api_name": "Api"})
        graph.add_edge(dist, api, Relation.SERVES_TRAFFIC_TO)

        with pytest.raises(RoutingDerivationError):
            build_rules(graph)

    def test_two_buckets_conflict(self):
        """Two buckets cannot both own the default pattern."""
        graph = ResourceGraph("test")
        dist = self._distribution(graph)
        for name in ("AssetsA", "AssetsB"):
            bucket = graph.add_node(ResourceKind.STORAGE_BUCKET, {"name": name})
            graph.add_edge(dist, bucket, Relation.SERVES_TRAFFIC_TO)

        with pytest.raises(RoutingConflictError) as exc_info:
            build_rules(graph)

        assert exc_info.value.pattern == "/*"

    def test_same_resource_behind_two_gateways_conflicts(self):
        """Two gateways producing one pattern for different origins conflict."""
        graph = ResourceGraph("test")
        dist = self._distribution(graph)
        bucket = graph.add_node(ResourceKind.STORAGE_BUCKET, {"name": "Assets"})
        graph.add_edge(dist, bucket, Relation.SERVES_TRAFFIC_TO)
        fn = graph.add_node(ResourceKind.COMPUTE_UNIT, {"name": "orders", "runtime": "function"})
        for name in ("ApiA", "ApiB"):
            api = graph.add_node(ResourceKind.GATEWAY, {"name": name, "rest_api_name": name})
            graph.add_edge(api, fn, Relation.SERVES_TRAFFIC_TO)
            graph.add_edge(dist, api, Relation.SERVES_TRAFFIC_TO)

        with pytest.raises(RoutingConflictError) as exc_info:
            build_rules(graph)

        assert exc_info.value.pattern == "/api/orders/*"

    def test_no_distribution(self):
        """Rules need exactly one distribution."""
        with pytest.raises(RoutingDerivationError):
            build_rules(ResourceGraph("test"))
