"""Build stage: turns a source checkout into a deployable artifact.

Phases run strictly in order:

    install     install dependencies
    pre_build   authenticate to the image registry
    build       build ``<uri>:latest`` and tag it ``<uri>:<revision>``
    post_build  push both tags, then emit the artifact

A failing step aborts the remaining steps and phases. Cancellation is
honoured between steps, except inside the push group: either both tags
are pushed or neither is. The push group is shielded, so a stage timeout
that fires mid-push fails the stage while the pushes still complete. An
operator cancel that arrives during the push group lets both pushes land
and then fails the stage instead of returning an artifact.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from storefront.core.exceptions import BuildPhaseError, ExecutionCancelledError, PipelineStageError
from storefront.models.schemas import ArtifactKind
from storefront.orchestration.collaborators import BuildToolchain
from storefront.orchestration.state import (
    BuildArtifact,
    BuildEnvironment,
    BuildPhase,
    ImageDefinition,
    SourceArtifact,
)

logger = structlog.get_logger(__name__)

IMAGE_DEFINITIONS_FILE = "imagedefinitions.json"

Step = tuple[str, Callable[[], Awaitable[object]]]


class BuildStage:
    """Runs the build phases against a toolchain.

    Args:
        toolchain: Container build toolchain.
        artifact_kind: Output tree (function topology) or image definitions
            (container topology).
        container_name: Logical container name written to the descriptor.
            Required for image-definitions artifacts.
    """

    def __init__(
        self,
        toolchain: BuildToolchain,
        artifact_kind: ArtifactKind,
        container_name: Optional[str] = None,
    ):
        if artifact_kind == ArtifactKind.IMAGE_DEFINITIONS and not container_name:
            raise ValueError("container_name is required for image definitions artifacts")
        self.toolchain = toolchain
        self.artifact_kind = artifact_kind
        self.container_name = container_name

    async def run(
        self,
        source: SourceArtifact,
        env: BuildEnvironment,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BuildArtifact:
        """Execute all phases and return the artifact.

        Raises:
            BuildPhaseError: If a step fails; names the phase.
            ExecutionCancelledError: If cancellation was requested.
        """
        output_location: Optional[str] = None

        async def package() -> None:
            nonlocal output_location
            output_location = await self.toolchain.package_output(source, env)

        post_build: list[Step] = [
            ("push latest", lambda: self.toolchain.push_image(env.latest_ref, env)),
            ("push revision", lambda: self.toolchain.push_image(env.revision_ref, env)),
        ]
        if self.artifact_kind == ArtifactKind.OUTPUT_TREE:
            post_build.append(("package output", package))

        phases: list[tuple[BuildPhase, list[Step], bool]] = [
            (BuildPhase.INSTALL, [
                ("install dependencies", lambda: self.toolchain.install_dependencies(source, env)),
            ], True),
            (BuildPhase.PRE_BUILD, [
                ("registry login", lambda: self.toolchain.registry_login(env)),
            ], True),
            (BuildPhase.BUILD, [
                ("build image", lambda: self.toolchain.build_image(source, env.latest_ref, env)),
                ("tag image", lambda: self.toolchain.tag_image(env.latest_ref, env.revision_ref, env)),
            ], True),
            (BuildPhase.POST_BUILD, post_build, False),
        ]

        for phase, steps, interruptible in phases:
            await self._run_phase(phase, steps, interruptible, env, cancel_event)
        _check_cancelled(cancel_event, BuildPhase.POST_BUILD)

        if self.artifact_kind == ArtifactKind.IMAGE_DEFINITIONS:
            artifact = BuildArtifact.for_images(
                revision=env.source_revision,
                location=IMAGE_DEFINITIONS_FILE,
                definitions=[ImageDefinition(name=self.container_name, image_uri=env.revision_ref)],
            )
        else:
            artifact = BuildArtifact(
                kind=ArtifactKind.OUTPUT_TREE,
                revision=env.source_revision,
                location=output_location,
            )

        logger.info(
            "build_artifact_created",
            kind=artifact.kind.value,
            revision=artifact.revision,
            location=artifact.location,
        )
        return artifact

    async def _run_phase(
        self,
        phase: BuildPhase,
        steps: list[Step],
        interruptible: bool,
        env: BuildEnvironment,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        _check_cancelled(cancel_event, phase)
        logger.info("build_phase_started", phase=phase.value, revision=env.source_revision)

        if interruptible:
            await self._run_steps(phase, steps, env, cancel_event)
        else:
            group = asyncio.ensure_future(self._run_steps(phase, steps, env, None))
            await asyncio.shield(group)

        logger.info("build_phase_completed", phase=phase.value)

    async def _run_steps(
        self,
        phase: BuildPhase,
        steps: list[Step],
        env: BuildEnvironment,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        for index, (description, step) in enumerate(steps):
            if index > 0:
                _check_cancelled(cancel_event, phase)
            try:
                await step()
            except PipelineStageError:
                raise
            except Exception as e:
                logger.error(
                    "build_phase_failed",
                    phase=phase.value,
                    step=description,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise BuildPhaseError(
                    phase.value,
                    f"{description} failed: {e}",
                    {"step": description, "repository_uri": env.repository_uri},
                ) from e


def _check_cancelled(cancel_event: Optional[asyncio.Event], phase: BuildPhase) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.warning("build_cancelled", phase=phase.value)
        raise ExecutionCancelledError(phase.value)
