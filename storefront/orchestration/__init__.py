"""Pipeline orchestration: Source → Build → Deploy."""

from storefront.orchestration.build import IMAGE_DEFINITIONS_FILE, BuildStage
from storefront.orchestration.collaborators import (
    BuildToolchain,
    ContainerOrchestrator,
    FunctionDeployReport,
    FunctionInvoker,
    RolloutStatus,
    SourceProvider,
)
from storefront.orchestration.deploy import (
    ContainerDeployAction,
    DeployAction,
    FunctionDeployAction,
    parse_image_definitions,
)
from storefront.orchestration.pipeline import PipelineDefinition, PipelineOrchestrator
from storefront.orchestration.state import (
    BuildArtifact,
    BuildEnvironment,
    BuildPhase,
    ExecutionStatus,
    ImageDefinition,
    PipelineExecution,
    SourceArtifact,
    SourceChange,
    Stage,
)

__all__ = [
    "IMAGE_DEFINITIONS_FILE",
    "BuildStage",
    "BuildToolchain",
    "ContainerOrchestrator",
    "FunctionDeployReport",
    "FunctionInvoker",
    "RolloutStatus",
    "SourceProvider",
    "ContainerDeployAction",
    "DeployAction",
    "FunctionDeployAction",
    "parse_image_definitions",
    "PipelineDefinition",
    "PipelineOrchestrator",
    "BuildArtifact",
    "BuildEnvironment",
    "BuildPhase",
    "ExecutionStatus",
    "ImageDefinition",
    "PipelineExecution",
    "SourceArtifact",
    "SourceChange",
    "Stage",
]
