"""Data models for resources, grants and routing rules."""

from storefront.models.schemas import (
    ATTRIBUTE_MODELS,
    AllowedMethods,
    ArtifactKind,
    BuildProjectAttributes,
    CachePolicy,
    ComputeRuntime,
    ComputeUnitAttributes,
    ContainerServiceAttributes,
    DistributionAttributes,
    Edge,
    GatewayAttributes,
    GrantStatement,
    ImageRepositoryAttributes,
    NodeId,
    OriginKind,
    PipelineAttributes,
    ProtocolPolicy,
    Relation,
    RepositoryAttributes,
    ResourceAttributes,
    ResourceKind,
    ResourceNode,
    RoutingRule,
    StorageBucketAttributes,
    TableAttributes,
)

__all__ = [
    "ATTRIBUTE_MODELS",
    "AllowedMethods",
    "ArtifactKind",
    "BuildProjectAttributes",
    "CachePolicy",
    "ComputeRuntime",
    "ComputeUnitAttributes",
    "ContainerServiceAttributes",
    "DistributionAttributes",
    "Edge",
    "GatewayAttributes",
    "GrantStatement",
    "ImageRepositoryAttributes",
    "NodeId",
    "OriginKind",
    "PipelineAttributes",
    "ProtocolPolicy",
    "Relation",
    "RepositoryAttributes",
    "ResourceAttributes",
    "ResourceKind",
    "ResourceNode",
    "RoutingRule",
    "StorageBucketAttributes",
    "TableAttributes",
]
