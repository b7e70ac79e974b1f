"""Pipeline orchestrator: Source → Build → Deploy.

One orchestrator drives one pipeline. At most one execution is active at a
time; triggers that arrive while it runs are queued and start, in order,
once the active execution reaches Succeeded or Failed. Each stage has its
own timeout, and a timed-out stage fails the execution like any other
stage error. Failed executions are never retried automatically; the
operator reruns them by triggering again.

Usage:
    orchestrator = PipelineOrchestrator.from_graph(
        graph,
        source_provider=github,
        toolchain=docker,
        container_orchestrator=ecs,
    )
    execution = await orchestrator.trigger(SourceChange(branch="main", revision="abc123"))
    await orchestrator.wait(execution.id)
    await orchestrator.shutdown()
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from storefront.config.settings import Settings, get_settings
from storefront.core.exceptions import (
    CancellationError,
    ConstructionError,
    ExecutionNotFoundError,
    PartialDeploymentError,
    PipelineStageError,
    SourceStageError,
    StageTimeoutError,
)
from storefront.graph.identifiers import image_repository_uri
from storefront.graph.resource_graph import ResourceGraph
from storefront.models.schemas import (
    ArtifactKind,
    ComputeRuntime,
    NodeId,
    Relation,
    ResourceKind,
    ResourceNode,
)
from storefront.monitoring.metrics import (
    record_execution_finished,
    record_partial_deployment,
    track_stage,
    update_queue_depth,
)
from storefront.orchestration.build import BuildStage
from storefront.orchestration.collaborators import (
    BuildToolchain,
    ContainerOrchestrator,
    FunctionInvoker,
    SourceProvider,
)
from storefront.orchestration.deploy import (
    ContainerDeployAction,
    DeployAction,
    FunctionDeployAction,
)
from storefront.orchestration.state import (
    BuildEnvironment,
    ExecutionStatus,
    PartialDeployment,
    PipelineExecution,
    SourceChange,
    Stage,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Pipeline Definition
# =============================================================================


@dataclass(frozen=True)
class PipelineDefinition:
    """Pipeline wiring read from the resource graph.

    Deploy targets are referenced by node only; the orchestrator never owns
    their lifetime.
    """

    pipeline: ResourceNode
    repository: ResourceNode
    build_project: ResourceNode
    image_repository: ResourceNode
    deploy_targets: tuple[ResourceNode, ...]
    container_name: Optional[str] = None

    @property
    def name(self) -> str:
        return self.pipeline.attributes.pipeline_name

    @property
    def branch(self) -> str:
        return self.repository.attributes.branch

    @property
    def artifact_kind(self) -> ArtifactKind:
        return self.build_project.attributes.artifact_kind

    @classmethod
    def from_graph(cls, graph: ResourceGraph, pipeline_id: Optional[NodeId] = None) -> "PipelineDefinition":
        """Read the pipeline's repository, build, registry and targets from its edges.

        Raises:
            ConstructionError: If the pipeline is not wired as expected.
        """
        if pipeline_id is None:
            pipelines = graph.nodes(ResourceKind.PIPELINE)
            if len(pipelines) != 1:
                raise ConstructionError(f"Expected exactly one pipeline, found {len(pipelines)}")
            pipeline = pipelines[0]
        else:
            pipeline = graph.node(pipeline_id)

        repository = _single(graph, graph.dependents(pipeline.id, Relation.TRIGGERS), ResourceKind.REPOSITORY, pipeline.id)
        build_project = _single(graph, graph.neighbors(pipeline.id, Relation.TRIGGERS), ResourceKind.BUILD_PROJECT, pipeline.id)
        image_repository = _single(
            graph, graph.neighbors(build_project.id, Relation.TRIGGERS), ResourceKind.IMAGE_REPOSITORY, build_project.id
        )
        targets = tuple(graph.node(n) for n in graph.ordered(graph.neighbors(pipeline.id, Relation.DEPLOYS_TO)))
        if not targets:
            raise ConstructionError(f"Pipeline '{pipeline.id}' has no deploy targets")

        container_name = None
        artifact_kind = build_project.attributes.artifact_kind
        if artifact_kind == ArtifactKind.OUTPUT_TREE:
            for target in targets:
                if target.kind != ResourceKind.COMPUTE_UNIT or target.attributes.runtime != ComputeRuntime.FUNCTION:
                    raise ConstructionError(
                        f"Output tree pipelines deploy functions only; '{target.id}' is not a function",
                    )
        else:
            if len(targets) != 1 or targets[0].kind != ResourceKind.CONTAINER_SERVICE:
                raise ConstructionError(
                    "Image definitions pipelines deploy exactly one container service",
                    {"targets": [t.id for t in targets]},
                )
            task = _single(
                graph, graph.neighbors(targets[0].id, Relation.SERVES_TRAFFIC_TO), ResourceKind.COMPUTE_UNIT, targets[0].id
            )
            container_name = task.attributes.container_name or task.name

        return cls(
            pipeline=pipeline,
            repository=repository,
            build_project=build_project,
            image_repository=image_repository,
            deploy_targets=targets,
            container_name=container_name,
        )


def _single(graph: ResourceGraph, node_ids: set[NodeId], kind: ResourceKind, owner: NodeId) -> ResourceNode:
    matches = [graph.node(n) for n in graph.ordered(node_ids) if graph.node(n).kind == kind]
    if len(matches) != 1:
        raise ConstructionError(
            f"'{owner}' must be wired to exactly one {kind.value}, found {len(matches)}",
        )
    return matches[0]


# =============================================================================
# Orchestrator
# =============================================================================


class PipelineOrchestrator:
    """Runs executions of one pipeline, one at a time.

    Args:
        definition: Pipeline wiring.
        source_provider: Fetches source revisions.
        build_stage: Build phases runner.
        deploy_action: Applies build artifacts to the compute layer.
        settings: Stage timeouts, region and account. Defaults to get_settings().
    """

    def __init__(
        self,
        definition: PipelineDefinition,
        source_provider: SourceProvider,
        build_stage: BuildStage,
        deploy_action: DeployAction,
        settings: Optional[Settings] = None,
    ):
        self.definition = definition
        self.source_provider = source_provider
        self.build_stage = build_stage
        self.deploy_action = deploy_action
        self.settings = settings or get_settings()

        self._queue: asyncio.Queue[PipelineExecution] = asyncio.Queue()
        self._executions: dict[str, PipelineExecution] = {}
        self._finished: dict[str, asyncio.Event] = {}
        self._active: Optional[PipelineExecution] = None
        self._worker: Optional[asyncio.Task] = None
        self._running_revision: dict[NodeId, str] = {}

    @classmethod
    def from_graph(
        cls,
        graph: ResourceGraph,
        source_provider: SourceProvider,
        toolchain: BuildToolchain,
        function_invoker: Optional[FunctionInvoker] = None,
        container_orchestrator: Optional[ContainerOrchestrator] = None,
        pipeline_id: Optional[NodeId] = None,
        settings: Optional[Settings] = None,
    ) -> "PipelineOrchestrator":
        """Wire an orchestrator for the pipeline in ``graph``.

        Raises:
            ConstructionError: If the graph's pipeline is miswired.
            ValueError: If the client the deploy target needs is missing.
        """
        settings = settings or get_settings()
        definition = PipelineDefinition.from_graph(graph, pipeline_id)
        build_stage = BuildStage(toolchain, definition.artifact_kind, definition.container_name)

        deploy_action: DeployAction
        if definition.artifact_kind == ArtifactKind.OUTPUT_TREE:
            if function_invoker is None:
                raise ValueError("function_invoker is required to deploy functions")
            deploy_action = FunctionDeployAction(function_invoker, definition.deploy_targets, settings)
        else:
            if container_orchestrator is None:
                raise ValueError("container_orchestrator is required to deploy container services")
            deploy_action = ContainerDeployAction(
                container_orchestrator,
                definition.deploy_targets[0],
                definition.container_name,
                settings,
            )

        return cls(definition, source_provider, build_stage, deploy_action, settings)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def active(self) -> Optional[PipelineExecution]:
        """Execution currently advancing, if any."""
        return self._active

    @property
    def queued(self) -> list[PipelineExecution]:
        """Executions waiting behind the active one, in start order."""
        return [e for e in self._executions.values() if e.status == ExecutionStatus.QUEUED]

    def running_revision(self, target: NodeId) -> Optional[str]:
        """Revision last deployed to ``target`` by a successful Deploy stage."""
        return self._running_revision.get(target)

    async def trigger(self, change: SourceChange) -> Optional[PipelineExecution]:
        """Record a change notification and queue an execution for it.

        Changes on branches other than the watched one are ignored.
        """
        if change.branch != self.definition.branch:
            logger.info(
                "pipeline_trigger_ignored",
                pipeline=self.name,
                branch=change.branch,
                watched_branch=self.definition.branch,
            )
            return None

        execution = PipelineExecution(pipeline=self.name, change=change)
        self._executions[execution.id] = execution
        self._finished[execution.id] = asyncio.Event()
        self._queue.put_nowait(execution)
        update_queue_depth(self.name, self._queue.qsize())

        logger.info(
            "pipeline_execution_queued",
            pipeline=self.name,
            execution_id=execution.id,
            revision=change.revision,
            behind=self._active.id if self._active else None,
        )
        self._ensure_worker()
        return execution

    def cancel(self, execution_id: str) -> None:
        """Request cancellation of an execution in the Build stage.

        Raises:
            ExecutionNotFoundError: If the id is unknown.
            CancellationError: If the execution is not building.
        """
        execution = self.get_execution(execution_id)
        if execution.current_stage != Stage.BUILD or execution.is_terminal:
            raise CancellationError(
                f"Execution {execution_id} is in {execution.current_stage.value}; only Build can be cancelled",
                {"stage": execution.current_stage.value},
            )
        execution.cancel_event.set()
        logger.warning("pipeline_cancel_requested", pipeline=self.name, execution_id=execution_id)

    async def wait(self, execution_id: str) -> PipelineExecution:
        """Wait until an execution is terminal."""
        execution = self.get_execution(execution_id)
        await self._finished[execution_id].wait()
        return execution

    def get_execution(self, execution_id: str) -> PipelineExecution:
        try:
            return self._executions[execution_id]
        except KeyError:
            raise ExecutionNotFoundError(execution_id) from None

    def executions(self) -> list[PipelineExecution]:
        """All executions in trigger order."""
        return list(self._executions.values())

    async def shutdown(self) -> None:
        """Stop the worker. Executions that have not finished are failed."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        for execution in self._executions.values():
            if not execution.is_terminal:
                execution.fail("Orchestrator shut down")
                record_execution_finished(self.name, execution.status.value)
                self._finished[execution.id].set()
        self._active = None
        logger.info("pipeline_orchestrator_stopped", pipeline=self.name)

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run_worker())

    async def _run_worker(self) -> None:
        while True:
            execution = await self._queue.get()
            update_queue_depth(self.name, self._queue.qsize())
            self._active = execution
            try:
                await self._execute(execution)
            finally:
                self._active = None
                if execution.is_terminal:
                    self._finished[execution.id].set()
                self._queue.task_done()

    async def _execute(self, execution: PipelineExecution) -> None:
        execution.start()
        logger.info(
            "pipeline_execution_started",
            pipeline=self.name,
            execution_id=execution.id,
            revision=execution.change.revision,
        )

        stages: list[tuple[Stage, Callable[[PipelineExecution], Awaitable[None]]]] = [
            (Stage.SOURCE, self._run_source),
            (Stage.BUILD, self._run_build),
            (Stage.DEPLOY, self._run_deploy),
        ]
        for stage, runner in stages:
            if stage != Stage.SOURCE:
                execution.advance(stage)
            timeout = self.settings.stage_timeout(stage.value)
            try:
                with track_stage(self.name, stage.value):
                    async with asyncio.timeout(timeout):
                        await runner(execution)
            except TimeoutError:
                self._fail(execution, StageTimeoutError(stage.value, timeout))
                return
            except PipelineStageError as e:
                self._fail(execution, e)
                return
            except Exception as e:
                self._fail(execution, PipelineStageError(stage.value, f"Unexpected error: {e}"))
                return

        execution.advance(Stage.SUCCEEDED)
        record_execution_finished(self.name, execution.status.value)
        logger.info(
            "pipeline_execution_succeeded",
            pipeline=self.name,
            execution_id=execution.id,
            revision=execution.change.revision,
        )

    def _fail(self, execution: PipelineExecution, error: PipelineStageError) -> None:
        execution.fail(error.message, phase=error.phase)
        record_execution_finished(self.name, execution.status.value)
        logger.error(
            "pipeline_execution_failed",
            pipeline=self.name,
            execution_id=execution.id,
            stage=error.stage,
            phase=error.phase,
            error=error.message,
            error_type=type(error).__name__,
            details=error.details,
        )

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def _run_source(self, execution: PipelineExecution) -> None:
        repository = self.definition.repository.attributes
        try:
            execution.source_artifact = await self.source_provider.fetch(repository, execution.change)
        except PipelineStageError:
            raise
        except Exception as e:
            raise SourceStageError(
                f"Could not fetch {repository.owner}/{repository.repo}@{execution.change.revision}: {e}",
                {"error_type": type(e).__name__},
            ) from e

    async def _run_build(self, execution: PipelineExecution) -> None:
        env = BuildEnvironment(
            repository_uri=image_repository_uri(self.definition.image_repository, self.settings),
            source_revision=execution.source_artifact.revision,
            region=self.settings.aws_region,
        )
        execution.artifact_ref = await self.build_stage.run(
            execution.source_artifact, env, execution.cancel_event
        )

    async def _run_deploy(self, execution: PipelineExecution) -> None:
        try:
            revision = await self.deploy_action.deploy(execution.artifact_ref)
        except PartialDeploymentError as e:
            execution.partial_deployment = PartialDeployment(deployed=e.deployed, failed=e.failed)
            record_partial_deployment(self.name)
            raise

        # Only a successful Deploy stage moves the running revision
        for target in self.definition.deploy_targets:
            self._running_revision[target.id] = revision
