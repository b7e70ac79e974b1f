"""
Core exception hierarchy for the storefront infrastructure composer.

Provides standardized exception types grouped by the phase that raises them:
graph construction, policy derivation, and pipeline execution.
All components should use these exceptions instead of generic Exception.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class StorefrontError(Exception):
    """Base exception for all storefront infrastructure errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(StorefrontError):
    """
    Transient errors an operator may resolve by rerunning.

    Examples: stage timeouts, registry or orchestrator unavailability.
    """

    pass


class PermanentError(StorefrontError):
    """
    Errors that won't be fixed by rerunning unchanged input.

    Examples: cyclic graphs, malformed build artifacts, bad credentials.
    """

    pass


# =============================================================================
# Construction Errors
# =============================================================================


class ConstructionError(PermanentError):
    """Raised when the resource graph is rejected before provisioning."""

    pass


class DanglingReferenceError(ConstructionError):
    """Raised when an edge references a node that does not exist."""

    def __init__(self, node_id: str, edge: Optional[tuple[str, str, str]] = None):
        self.node_id = node_id
        self.edge = edge
        details = {"node": node_id}
        if edge:
            details["edge"] = " -> ".join(edge[:2]) + f" [{edge[2]}]"
        super().__init__(f"Unknown node '{node_id}'", details)


class CycleError(ConstructionError):
    """Raised when an edge would close a dependency cycle."""

    def __init__(self, source: str, target: str, relation: str, path: Optional[list[str]] = None):
        self.source = source
        self.target = target
        self.relation = relation
        self.path = path or []
        super().__init__(
            f"Edge {source} -> {target} [{relation}] would create a cycle",
            {"cycle": " -> ".join(self.path) if self.path else f"{source} -> {target}"},
        )


class DuplicateNodeError(ConstructionError):
    """Raised when a node id is registered twice."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' already exists")


class InvalidEdgeError(ConstructionError):
    """Raised when an edge's relation does not fit its endpoint kinds."""

    def __init__(self, source: str, target: str, relation: str, reason: str):
        self.source = source
        self.target = target
        self.relation = relation
        super().__init__(
            f"Invalid edge {source} -> {target} [{relation}]: {reason}",
        )


class InvalidAttributesError(ConstructionError):
    """Raised when node attributes fail validation for their kind."""

    def __init__(self, kind: str, message: str, details: Optional[dict[str, Any]] = None):
        self.kind = kind
        super().__init__(f"[{kind}] {message}", details)


class GraphFrozenError(ConstructionError):
    """Raised when a frozen graph is mutated."""

    pass


# =============================================================================
# Derivation Errors
# =============================================================================


class GrantDerivationError(PermanentError):
    """
    Raised when grant derivation meets a graph that skipped validation.

    This is an internal-consistency fault: validated graphs never produce it.
    """

    pass


class RoutingDerivationError(PermanentError):
    """Raised when routing rules cannot be derived from the graph."""

    pass


class RoutingConflictError(RoutingDerivationError):
    """Raised when two rules share a pattern but disagree on origin or cache policy."""

    def __init__(self, pattern: str, details: Optional[dict[str, Any]] = None):
        self.pattern = pattern
        super().__init__(f"Conflicting routing rules for '{pattern}'", details)


# =============================================================================
# Pipeline Stage Errors
# =============================================================================


class PipelineStageError(StorefrontError):
    """
    Base exception for a failed pipeline stage.

    Carries the failing stage and, for Build, the failing phase. Stage
    errors are reported to the operator and never retried by the orchestrator.
    """

    def __init__(
        self,
        stage: str,
        message: str,
        phase: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.stage = stage
        self.phase = phase
        location = f"{stage}/{phase}" if phase else stage
        super().__init__(f"[{location}] {message}", details)


class SourceStageError(PipelineStageError):
    """Raised when the source revision cannot be fetched."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("Source", message, details=details)


class BuildPhaseError(PipelineStageError):
    """Raised when a build phase fails."""

    def __init__(self, phase: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("Build", message, phase=phase, details=details)


class DeployStageError(PipelineStageError):
    """Raised when the deploy stage fails."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("Deploy", message, details=details)


class MalformedArtifactError(DeployStageError, PermanentError):
    """Raised when the build artifact handed to Deploy cannot be used."""

    pass


class PartialDeploymentError(DeployStageError):
    """
    Raised when some functions were deployed and others were not.

    The system is left in a mixed-revision state; the operator must resolve it.
    """

    def __init__(self, deployed: list[str], failed: list[str]):
        self.deployed = deployed
        self.failed = failed
        super().__init__(
            "Partial deployment: system is running mixed revisions",
            {"deployed": deployed, "failed": failed},
        )


class StageTimeoutError(PipelineStageError, RetryableError):
    """Raised when a stage exceeds its timeout."""

    def __init__(self, stage: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            stage,
            f"Stage timed out after {timeout_seconds:.1f}s",
            details={"timeout_seconds": timeout_seconds},
        )


class ExecutionCancelledError(PipelineStageError):
    """Raised inside Build when an operator cancelled the execution."""

    def __init__(self, phase: Optional[str] = None):
        super().__init__("Build", "Execution cancelled by operator", phase=phase)


# =============================================================================
# Orchestrator Errors
# =============================================================================


class PipelineError(StorefrontError):
    """Base exception for orchestrator misuse."""

    pass


class InvalidTransitionError(PipelineError):
    """Raised when an execution is moved along an edge the state machine forbids."""

    def __init__(self, execution_id: str, current: str, requested: str):
        self.execution_id = execution_id
        super().__init__(
            f"Execution {execution_id} cannot move from {current} to {requested}",
            {"current": current, "requested": requested},
        )


class ExecutionNotFoundError(PipelineError):
    """Raised when an execution id is unknown."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution {execution_id} not found")


class CancellationError(PipelineError):
    """Raised when cancellation is requested outside the Build stage."""

    pass


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)
