"""Resource graph model: typed nodes, typed edges, provisioning order."""

from storefront.graph.resource_graph import ALLOWED_EDGES, ResourceGraph, node_id_for
from storefront.graph.identifiers import (
    execution_role,
    function_arn,
    has_resource_arn,
    image_repository_arn,
    image_repository_uri,
    resource_arn,
    table_arn,
    task_definition_arn,
)

__all__ = [
    "ALLOWED_EDGES",
    "ResourceGraph",
    "node_id_for",
    "execution_role",
    "function_arn",
    "has_resource_arn",
    "image_repository_arn",
    "image_repository_uri",
    "resource_arn",
    "table_arn",
    "task_definition_arn",
]
