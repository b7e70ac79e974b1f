"""Pydantic models for the resource graph, grants and routing rules."""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny

NodeId = str


class ResourceKind(str, Enum):
    """Resource kinds a storefront topology is built from."""
    STORAGE_BUCKET = "StorageBucket"
    TABLE = "Table"
    COMPUTE_UNIT = "ComputeUnit"
    CONTAINER_SERVICE = "ContainerService"
    GATEWAY = "Gateway"
    DISTRIBUTION = "Distribution"
    REPOSITORY = "Repository"
    IMAGE_REPOSITORY = "ImageRepository"
    BUILD_PROJECT = "BuildProject"
    PIPELINE = "Pipeline"


class Relation(str, Enum):
    """Edge relations. Edges always point from dependent to dependency."""
    READS_WRITES = "reads_writes"
    SERVES_TRAFFIC_TO = "serves_traffic_to"
    TRIGGERS = "triggers"
    DEPLOYS_TO = "deploys_to"


class ComputeRuntime(str, Enum):
    """How a compute unit runs."""
    FUNCTION = "function"
    CONTAINER_TASK = "container_task"


class ArtifactKind(str, Enum):
    """What the build stage hands to Deploy."""
    OUTPUT_TREE = "output_tree"
    IMAGE_DEFINITIONS = "image_definitions"


RemovalPolicy = Literal["destroy", "retain"]


# =============================================================================
# Node Attributes
# =============================================================================


class ResourceAttributes(BaseModel):
    """Base attributes shared by every resource kind."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., pattern=r"^[A-Za-z][A-Za-z0-9_-]*$", description="Logical name")


class StorageBucketAttributes(ResourceAttributes):
    index_document: str = "index.html"
    public_read: bool = False
    removal_policy: RemovalPolicy = "destroy"


class TableAttributes(ResourceAttributes):
    """Key-value table with exactly one partition key and no secondary indexes."""

    partition_key_name: str = Field(..., min_length=1)
    partition_key_type: Literal["S", "N", "B"] = "S"
    removal_policy: RemovalPolicy = "destroy"


class ComputeUnitAttributes(ResourceAttributes):
    """A stateless function or a long-running container task.

    ``idempotent`` marks read-mostly resources whose responses are safe to
    cache at the edge. Anything with side effects must leave it False.
    """

    runtime: ComputeRuntime
    idempotent: bool = False
    handler: str = "index.handler"
    language_runtime: str = "nodejs16.x"
    code_path: Optional[str] = None
    memory_mib: int = Field(default=512, gt=0)
    cpu: Optional[int] = Field(default=None, gt=0)
    container_name: Optional[str] = None
    container_port: Optional[int] = Field(default=None, gt=0, lt=65536)
    environment: dict[str, str] = Field(default_factory=dict)


class ContainerServiceAttributes(ResourceAttributes):
    """Load-balanced container service running on a cluster."""

    cluster_name: str
    desired_count: int = Field(default=1, ge=1)
    public_load_balancer: bool = True
    max_azs: int = Field(default=2, ge=1)


class GatewayAttributes(ResourceAttributes):
    rest_api_name: str


class DistributionAttributes(ResourceAttributes):
    default_root_object: str = "index.html"


class RepositoryAttributes(ResourceAttributes):
    owner: str
    repo: str
    branch: str = "main"
    oauth_token_secret: str


class ImageRepositoryAttributes(ResourceAttributes):
    pass


class BuildProjectAttributes(ResourceAttributes):
    build_image: str = "aws/codebuild/standard:5.0"
    privileged: bool = True
    artifact_kind: ArtifactKind


class PipelineAttributes(ResourceAttributes):
    pipeline_name: str


ATTRIBUTE_MODELS: dict[ResourceKind, type[ResourceAttributes]] = {
    ResourceKind.STORAGE_BUCKET: StorageBucketAttributes,
    ResourceKind.TABLE: TableAttributes,
    ResourceKind.COMPUTE_UNIT: ComputeUnitAttributes,
    ResourceKind.CONTAINER_SERVICE: ContainerServiceAttributes,
    ResourceKind.GATEWAY: GatewayAttributes,
    ResourceKind.DISTRIBUTION: DistributionAttributes,
    ResourceKind.REPOSITORY: RepositoryAttributes,
    ResourceKind.IMAGE_REPOSITORY: ImageRepositoryAttributes,
    ResourceKind.BUILD_PROJECT: BuildProjectAttributes,
    ResourceKind.PIPELINE: PipelineAttributes,
}


# =============================================================================
# Graph Entities
# =============================================================================


class ResourceNode(BaseModel):
    """A provisioned resource. Identity is fixed at creation."""

    model_config = ConfigDict(frozen=True)

    id: NodeId
    kind: ResourceKind
    attributes: SerializeAsAny[ResourceAttributes]

    @property
    def name(self) -> str:
        return self.attributes.name


class Edge(BaseModel):
    """Directed dependency from ``source`` (dependent) to ``target``."""

    model_config = ConfigDict(frozen=True)

    source: NodeId
    target: NodeId
    relation: Relation

    def as_tuple(self) -> tuple[str, str, str]:
        return (self.source, self.target, self.relation.value)


# =============================================================================
# Grants
# =============================================================================


class GrantStatement(BaseModel):
    """Allow ``actions`` on ``resources`` for the principal's execution identity."""

    model_config = ConfigDict(frozen=True)

    principal: NodeId
    actions: tuple[str, ...]
    resources: tuple[str, ...]
    effect: Literal["Allow"] = "Allow"

    def to_policy_statement(self) -> dict:
        return {
            "Effect": self.effect,
            "Action": list(self.actions),
            "Resource": list(self.resources),
        }


# =============================================================================
# Routing
# =============================================================================


class CachePolicy(str, Enum):
    """Edge cache policy for a path pattern."""
    OPTIMIZED = "CachingOptimized"
    DISABLED = "CachingDisabled"


class ProtocolPolicy(str, Enum):
    """Viewer protocol policy."""
    REDIRECT_TO_HTTPS = "redirect-to-https"
    HTTPS_ONLY = "https-only"


class AllowedMethods(str, Enum):
    GET_HEAD = "GET_HEAD"
    ALL = "ALL"


class OriginKind(str, Enum):
    """Kind of backend a rule forwards to."""
    STORAGE_BUCKET = "storage_bucket"
    GATEWAY = "gateway"
    LOAD_BALANCER = "load_balancer"


class RoutingRule(BaseModel):
    """Maps a path pattern to an origin with its cache and protocol policy."""

    model_config = ConfigDict(frozen=True)

    path_pattern: str
    origin_ref: NodeId
    origin_kind: OriginKind
    cache_policy: CachePolicy
    protocol_policy: ProtocolPolicy
    allowed_methods: AllowedMethods = AllowedMethods.GET_HEAD

    @property
    def literal_prefix(self) -> str:
        """Pattern text before the first wildcard."""
        return self.path_pattern.split("*", 1)[0]
