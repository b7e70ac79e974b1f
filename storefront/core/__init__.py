"""
Core infrastructure modules for the storefront composer.

Provides common utilities used across the application:
- exceptions: Standardized exception hierarchy
"""

from storefront.core.exceptions import (
    StorefrontError,
    RetryableError,
    PermanentError,
    ConstructionError,
    DanglingReferenceError,
    CycleError,
    DuplicateNodeError,
    InvalidEdgeError,
    InvalidAttributesError,
    GraphFrozenError,
    GrantDerivationError,
    RoutingDerivationError,
    RoutingConflictError,
    PipelineStageError,
    SourceStageError,
    BuildPhaseError,
    DeployStageError,
    MalformedArtifactError,
    PartialDeploymentError,
    StageTimeoutError,
    ExecutionCancelledError,
    PipelineError,
    InvalidTransitionError,
    ExecutionNotFoundError,
    CancellationError,
    ConfigurationError,
)

__all__ = [
    # Base
    "StorefrontError",
    "RetryableError",
    "PermanentError",
    # Construction
    "ConstructionError",
    "DanglingReferenceError",
    "CycleError",
    "DuplicateNodeError",
    "InvalidEdgeError",
    "InvalidAttributesError",
    "GraphFrozenError",
    # Derivation
    "GrantDerivationError",
    "RoutingDerivationError",
    "RoutingConflictError",
    # Pipeline stages
    "PipelineStageError",
    "SourceStageError",
    "BuildPhaseError",
    "DeployStageError",
    "MalformedArtifactError",
    "PartialDeploymentError",
    "StageTimeoutError",
    "ExecutionCancelledError",
    # Orchestrator
    "PipelineError",
    "InvalidTransitionError",
    "ExecutionNotFoundError",
    "CancellationError",
    # Configuration
    "ConfigurationError",
]
