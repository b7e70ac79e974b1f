"""The three storefront topologies as explicit resource graphs.

- function: static assets bucket, three tables, one function per table
  behind a REST gateway, all fronted by the edge distribution.
- function-pipeline: the function topology plus a Source → Build → Deploy
  pipeline whose deploy stage invokes the products function.
- container-pipeline: a single load-balanced container service reading all
  three tables, plus a pipeline that rolls the service to each new image.

Every dependency is stated as an edge; nothing is inferred from names.
"""

from storefront.config.settings import Settings
from storefront.graph.resource_graph import ResourceGraph
from storefront.models.schemas import (
    ArtifactKind,
    ComputeRuntime,
    NodeId,
    Relation,
    ResourceKind,
)
from storefront.topologies.registry import TopologyVariant, register_topology

# (resource name, partition key, idempotent)
STOREFRONT_RESOURCES: tuple[tuple[str, str, bool], ...] = (
    ("products", "productId", True),
    ("orders", "orderId", False),
    ("cart", "cartId", False),
)

CONTAINER_NAME = "WooCommerceContainer"


def _table_name(resource: str) -> str:
    return f"{resource.capitalize()}Table"


def _env_var(resource: str) -> str:
    return f"{resource.upper()}_TABLE"


def _add_storage(graph: ResourceGraph) -> tuple[NodeId, dict[str, NodeId]]:
    bucket = graph.add_node(ResourceKind.STORAGE_BUCKET, {
        "name": "WooCommerceAssets",
        "index_document": "index.html",
    })
    tables = {
        resource: graph.add_node(ResourceKind.TABLE, {
            "name": _table_name(resource),
            "partition_key_name": key,
            "partition_key_type": "S",
        })
        for resource, key, _ in STOREFRONT_RESOURCES
    }
    return bucket, tables


def _add_function_tier(graph: ResourceGraph, bucket: NodeId, tables: dict[str, NodeId]) -> list[NodeId]:
    functions = []
    for resource, _, idempotent in STOREFRONT_RESOURCES:
        fn = graph.add_node(ResourceKind.COMPUTE_UNIT, {
            "name": resource,
            "runtime": ComputeRuntime.FUNCTION,
            "idempotent": idempotent,
            "handler": "index.handler",
            "code_path": f"lambda/{resource}",
            "environment": {_env_var(resource): _table_name(resource)},
        })
        graph.add_edge(fn, tables[resource], Relation.READS_WRITES)
        functions.append(fn)

    api = graph.add_node(ResourceKind.GATEWAY, {
        "name": "WooCommerceApi",
        "rest_api_name": "Woo-Commerce API",
    })
    for fn in functions:
        graph.add_edge(api, fn, Relation.SERVES_TRAFFIC_TO)

    distribution = graph.add_node(ResourceKind.DISTRIBUTION, {"name": "Distribution"})
    graph.add_edge(distribution, bucket, Relation.SERVES_TRAFFIC_TO)
    graph.add_edge(distribution, api, Relation.SERVES_TRAFFIC_TO)
    return functions


def _add_pipeline(
    graph: ResourceGraph,
    settings: Settings,
    artifact_kind: ArtifactKind,
    targets: list[NodeId],
) -> NodeId:
    registry = graph.add_node(ResourceKind.IMAGE_REPOSITORY, {"name": "WooCommerceRepo"})
    build = graph.add_node(ResourceKind.BUILD_PROJECT, {
        "name": "BuildProject",
        "build_image": settings.build_image,
        "privileged": settings.build_privileged,
        "artifact_kind": artifact_kind,
    })
    graph.add_edge(build, registry, Relation.TRIGGERS)

    pipeline = graph.add_node(ResourceKind.PIPELINE, {
        "name": "Pipeline",
        "pipeline_name": "WooCommercePipeline",
    })
    graph.add_edge(pipeline, build, Relation.TRIGGERS)
    for target in targets:
        graph.add_edge(pipeline, target, Relation.DEPLOYS_TO)

    source = graph.add_node(ResourceKind.REPOSITORY, {
        "name": "GitHubSource",
        "owner": settings.source_repository_owner,
        "repo": settings.source_repository_name,
        "branch": settings.source_branch,
        "oauth_token_secret": settings.source_token_secret_name,
    })
    # Registering the webhook needs the pipeline to exist
    graph.add_edge(source, pipeline, Relation.TRIGGERS)
    return pipeline


@register_topology(TopologyVariant.FUNCTION)
def build_function_topology(settings: Settings) -> ResourceGraph:
    graph = ResourceGraph("storefront-function")
    bucket, tables = _add_storage(graph)
    _add_function_tier(graph, bucket, tables)
    return graph


@register_topology(TopologyVariant.FUNCTION_PIPELINE)
def build_function_pipeline_topology(settings: Settings) -> ResourceGraph:
    graph = ResourceGraph("storefront-function-pipeline")
    bucket, tables = _add_storage(graph)
    functions = _add_function_tier(graph, bucket, tables)
    _add_pipeline(graph, settings, ArtifactKind.OUTPUT_TREE, functions)
    return graph


@register_topology(TopologyVariant.CONTAINER_PIPELINE)
def build_container_pipeline_topology(settings: Settings) -> ResourceGraph:
    graph = ResourceGraph("storefront-container-pipeline")
    bucket, tables = _add_storage(graph)

    task = graph.add_node(ResourceKind.COMPUTE_UNIT, {
        "name": "WooCommerceTask",
        "runtime": ComputeRuntime.CONTAINER_TASK,
        "container_name": CONTAINER_NAME,
        "container_port": 80,
        "memory_mib": 512,
        "cpu": 256,
        "environment": {_env_var(r): _table_name(r) for r, _, _ in STOREFRONT_RESOURCES},
    })
    for resource, _, _ in STOREFRONT_RESOURCES:
        graph.add_edge(task, tables[resource], Relation.READS_WRITES)

    service = graph.add_node(ResourceKind.CONTAINER_SERVICE, {
        "name": "WooCommerceService",
        "cluster_name": "WooCommerceCluster",
        "public_load_balancer": True,
        "max_azs": 2,
    })
    graph.add_edge(service, task, Relation.SERVES_TRAFFIC_TO)

    distribution = graph.add_node(ResourceKind.DISTRIBUTION, {"name": "Distribution"})
    graph.add_edge(distribution, bucket, Relation.SERVES_TRAFFIC_TO)
    graph.add_edge(distribution, service, Relation.SERVES_TRAFFIC_TO)

    _add_pipeline(graph, settings, ArtifactKind.IMAGE_DEFINITIONS, [service])
    return graph
