"""State definitions for pipeline executions.

An execution moves through a fixed stage sequence:

    Source ──► Build ──► Deploy ──► Succeeded
       │         │          │
       └─────────┴──────────┴─────► Failed

Succeeded and Failed are terminal. No stage is skipped or revisited.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from storefront.core.exceptions import InvalidTransitionError
from storefront.models.schemas import ArtifactKind


# =============================================================================
# Status Enums
# =============================================================================


class Stage(str, Enum):
    """Pipeline stage an execution is in."""
    SOURCE = "Source"
    BUILD = "Build"
    DEPLOY = "Deploy"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class ExecutionStatus(str, Enum):
    """Lifecycle of an execution record."""
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class BuildPhase(str, Enum):
    """Build phases, in execution order."""
    INSTALL = "install"
    PRE_BUILD = "pre_build"
    BUILD = "build"
    POST_BUILD = "post_build"


STAGE_SEQUENCE: tuple[Stage, ...] = (Stage.SOURCE, Stage.BUILD, Stage.DEPLOY)
TERMINAL_STAGES = frozenset({Stage.SUCCEEDED, Stage.FAILED})

TRANSITIONS: dict[Stage, frozenset[Stage]] = {
    Stage.SOURCE: frozenset({Stage.BUILD, Stage.FAILED}),
    Stage.BUILD: frozenset({Stage.DEPLOY, Stage.FAILED}),
    Stage.DEPLOY: frozenset({Stage.SUCCEEDED, Stage.FAILED}),
    Stage.SUCCEEDED: frozenset(),
    Stage.FAILED: frozenset(),
}


# =============================================================================
# Stage Inputs and Outputs
# =============================================================================


class SourceChange(BaseModel):
    """Change notification for the watched repository branch."""

    model_config = ConfigDict(frozen=True)

    branch: str = Field(..., min_length=1)
    revision: str = Field(..., min_length=1, description="Opaque commit identifier")


class SourceArtifact(BaseModel):
    """Source checkout handed from Source to Build."""

    model_config = ConfigDict(frozen=True)

    branch: str
    revision: str
    location: str


class BuildEnvironment(BaseModel):
    """Environment values every build phase receives."""

    model_config = ConfigDict(frozen=True)

    repository_uri: str
    source_revision: str
    region: str

    @property
    def latest_ref(self) -> str:
        return f"{self.repository_uri}:latest"

    @property
    def revision_ref(self) -> str:
        return f"{self.repository_uri}:{self.source_revision}"

    def as_env(self) -> dict[str, str]:
        """Variables as the build container sees them."""
        return {
            "AWS_DEFAULT_REGION": self.region,
            "REPOSITORY_URI": self.repository_uri,
            "CODEBUILD_RESOLVED_SOURCE_VERSION": self.source_revision,
        }


class ImageDefinition(BaseModel):
    """One entry of the image-definitions descriptor."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    image_uri: str = Field(..., alias="imageUri", min_length=1)


class BuildArtifact(BaseModel):
    """Build output.

    ``output_tree`` artifacts point at the packaged tree (function topology).
    ``image_definitions`` artifacts carry the descriptor naming the pushed
    image (container topology).
    """

    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    revision: str
    location: str
    descriptor: Optional[str] = None

    @classmethod
    def for_images(cls, revision: str, location: str, definitions: list[ImageDefinition]) -> "BuildArtifact":
        descriptor = json.dumps(
            [d.model_dump(by_alias=True) for d in definitions],
            separators=(",", ":"),
        )
        return cls(
            kind=ArtifactKind.IMAGE_DEFINITIONS,
            revision=revision,
            location=location,
            descriptor=descriptor,
        )


# =============================================================================
# Execution Records
# =============================================================================


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StageRecord:
    """Outcome of one stage visit."""

    stage: Stage
    started_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = None
    status: str = "in_progress"  # "in_progress", "succeeded", "failed"
    phase: Optional[str] = None
    error: Optional[str] = None


@dataclass
class FailureRecord:
    """Where and why an execution failed."""

    stage: Stage
    message: str
    phase: Optional[str] = None


@dataclass
class PartialDeployment:
    """Functions left on different revisions after a failed deploy."""

    deployed: list[str]
    failed: list[str]


@dataclass
class PipelineExecution:
    """One run of the pipeline for a source change.

    Owned and mutated exclusively by the orchestrator that created it.
    """

    pipeline: str
    change: SourceChange
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    current_stage: Stage = Stage.SOURCE
    status: ExecutionStatus = ExecutionStatus.QUEUED
    source_artifact: Optional[SourceArtifact] = None
    artifact_ref: Optional[BuildArtifact] = None
    history: list[StageRecord] = field(default_factory=list)
    failure: Optional[FailureRecord] = None
    partial_deployment: Optional[PartialDeployment] = None
    created_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.current_stage in TERMINAL_STAGES

    @property
    def visited_stages(self) -> list[Stage]:
        return [record.stage for record in self.history]

    def start(self) -> None:
        """Begin the Source stage."""
        if self.status != ExecutionStatus.QUEUED:
            raise InvalidTransitionError(self.id, self.status.value, ExecutionStatus.IN_PROGRESS.value)
        self.status = ExecutionStatus.IN_PROGRESS
        self.history.append(StageRecord(stage=Stage.SOURCE))

    def advance(self, stage: Stage) -> None:
        """Complete the current stage and enter ``stage``."""
        if stage == Stage.FAILED:
            raise InvalidTransitionError(self.id, self.current_stage.value, "Failed (use fail())")
        self._check_transition(stage)
        self._close_record("succeeded")
        self.current_stage = stage
        if stage == Stage.SUCCEEDED:
            self.status = ExecutionStatus.SUCCEEDED
            self.finished_at = _now()
        else:
            self.history.append(StageRecord(stage=stage))

    def fail(self, message: str, phase: Optional[str] = None) -> None:
        """Fail the current stage. Progression halts permanently."""
        self._check_transition(Stage.FAILED)
        failed_stage = self.current_stage
        if self.history and self.history[-1].finished_at is None:
            record = self.history[-1]
        else:
            record = StageRecord(stage=failed_stage)
            self.history.append(record)
        record.phase = phase
        record.error = message
        self._close_record("failed")

        self.failure = FailureRecord(stage=failed_stage, message=message, phase=phase)
        self.current_stage = Stage.FAILED
        self.status = ExecutionStatus.FAILED
        self.finished_at = _now()

    def _check_transition(self, stage: Stage) -> None:
        if self.status == ExecutionStatus.QUEUED and stage != Stage.FAILED:
            raise InvalidTransitionError(self.id, "queued", stage.value)
        if stage not in TRANSITIONS[self.current_stage]:
            raise InvalidTransitionError(self.id, self.current_stage.value, stage.value)

    def _close_record(self, status: str) -> None:
        if self.history and self.history[-1].finished_at is None:
            self.history[-1].finished_at = _now()
            self.history[-1].status = status

    def summary(self) -> dict:
        """Operator-facing view of the execution."""
        return {
            "id": self.id,
            "pipeline": self.pipeline,
            "revision": self.change.revision,
            "stage": self.current_stage.value,
            "status": self.status.value,
            "visited": [s.value for s in self.visited_stages],
            "failure": (
                {"stage": self.failure.stage.value, "phase": self.failure.phase, "message": self.failure.message}
                if self.failure
                else None
            ),
            "partial_deployment": (
                {"deployed": self.partial_deployment.deployed, "failed": self.partial_deployment.failed}
                if self.partial_deployment
                else None
            ),
        }
