"""ARN and URI derivation for graph nodes.

Identifiers are derived from the node's logical name and the configured
account/region only, so the same graph always yields the same identifiers.
"""

from typing import Optional

from storefront.config.settings import Settings, get_settings
from storefront.models.schemas import ComputeRuntime, ResourceKind, ResourceNode


def table_arn(node: ResourceNode, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return f"arn:aws:dynamodb:{settings.aws_region}:{settings.aws_account_id}:table/{node.name}"


def function_arn(node: ResourceNode, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return f"arn:aws:lambda:{settings.aws_region}:{settings.aws_account_id}:function:{node.name}"


def task_definition_arn(node: ResourceNode, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return f"arn:aws:ecs:{settings.aws_region}:{settings.aws_account_id}:task-definition/{node.name}"


def compute_unit_arn(node: ResourceNode, settings: Optional[Settings] = None) -> str:
    """Function ARN for function units, task definition ARN for container tasks."""
    if node.attributes.runtime == ComputeRuntime.CONTAINER_TASK:
        return task_definition_arn(node, settings)
    return function_arn(node, settings)


def image_repository_arn(node: ResourceNode, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return f"arn:aws:ecr:{settings.aws_region}:{settings.aws_account_id}:repository/{node.name.lower()}"


def image_repository_uri(node: ResourceNode, settings: Optional[Settings] = None) -> str:
    """Registry URI images are pushed to, without a tag."""
    settings = settings or get_settings()
    return f"{settings.aws_account_id}.dkr.ecr.{settings.aws_region}.amazonaws.com/{node.name.lower()}"


def execution_role(node: ResourceNode) -> str:
    """Logical name of the execution identity a compute or build node runs as."""
    return f"{node.name}-execution-role"


_ARN_BUILDERS = {
    ResourceKind.TABLE: table_arn,
    ResourceKind.COMPUTE_UNIT: compute_unit_arn,
    ResourceKind.IMAGE_REPOSITORY: image_repository_arn,
}


def resource_arn(node: ResourceNode, settings: Optional[Settings] = None) -> str:
    """ARN for nodes that grants can be scoped to.

    Raises:
        ValueError: If the node kind has no grantable ARN.
    """
    builder = _ARN_BUILDERS.get(node.kind)
    if builder is None:
        raise ValueError(f"No ARN format for resource kind: {node.kind.value}")
    return builder(node, settings)


def has_resource_arn(kind: ResourceKind) -> bool:
    return kind in _ARN_BUILDERS
