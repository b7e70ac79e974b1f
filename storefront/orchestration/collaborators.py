"""Interfaces for the external services the pipeline drives.

The orchestrator never talks to a repository host, build toolchain, function
runtime or container orchestrator directly. Concrete clients implement these
interfaces; tests substitute doubles.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from storefront.models.schemas import RepositoryAttributes
from storefront.orchestration.state import BuildEnvironment, SourceArtifact, SourceChange


class SourceProvider(ABC):
    """Fetches a revision of the watched repository."""

    @abstractmethod
    async def fetch(self, repository: RepositoryAttributes, change: SourceChange) -> SourceArtifact:
        """Check out ``change.revision``.

        Raises on authentication or connectivity failure.
        """
        ...


class BuildToolchain(ABC):
    """Container build toolchain used by the Build stage.

    Every call receives the build environment so the registry URI and the
    resolved source revision are available to every phase.
    """

    @abstractmethod
    async def install_dependencies(self, source: SourceArtifact, env: BuildEnvironment) -> None:
        ...

    @abstractmethod
    async def registry_login(self, env: BuildEnvironment) -> None:
        ...

    @abstractmethod
    async def build_image(self, source: SourceArtifact, image_ref: str, env: BuildEnvironment) -> None:
        ...

    @abstractmethod
    async def tag_image(self, source_ref: str, target_ref: str, env: BuildEnvironment) -> None:
        ...

    @abstractmethod
    async def push_image(self, image_ref: str, env: BuildEnvironment) -> None:
        ...

    @abstractmethod
    async def package_output(self, source: SourceArtifact, env: BuildEnvironment) -> str:
        """Package the full output tree and return its location."""
        ...


class FunctionDeployReport(BaseModel):
    """Per-function outcome reported by the deploy invocation."""

    deployed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


class FunctionInvoker(ABC):
    """Invokes a deployed function."""

    @abstractmethod
    async def invoke(self, function_arn: str, parameters: dict[str, str]) -> FunctionDeployReport:
        ...


class RolloutStatus(str, Enum):
    """State of a rolling service update."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ContainerOrchestrator(ABC):
    """Container orchestrator API.

    ``update_service`` must perform a health-checked rolling update: tasks on
    the previous image keep serving until the new ones pass health checks,
    and a failed rollout leaves the previous revision running.
    """

    @abstractmethod
    async def current_image(self, cluster: str, service: str, container_name: str) -> Optional[str]:
        ...

    @abstractmethod
    async def update_service(self, cluster: str, service: str, container_name: str, image_uri: str) -> str:
        """Start a rolling update and return its deployment id."""
        ...

    @abstractmethod
    async def rollout_status(self, cluster: str, service: str, deployment_id: str) -> RolloutStatus:
        ...
