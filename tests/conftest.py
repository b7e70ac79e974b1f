"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- settings: Settings with a real-looking account and fast rollout polling
- function_graph / container_graph: Frozen storefront topologies
- source_provider: Source provider double returning a checkout per revision
- toolchain: Build toolchain double recording every call
- function_invoker: Function invoker double reporting per-function outcomes
- container_orchestrator: Container orchestrator double with scripted rollouts
"""

import asyncio
from collections import defaultdict
from typing import Optional

import pytest

from storefront.config.settings import Settings
from storefront.orchestration.collaborators import (
    BuildToolchain,
    ContainerOrchestrator,
    FunctionDeployReport,
    FunctionInvoker,
    RolloutStatus,
    SourceProvider,
)
from storefront.orchestration.state import SourceArtifact
from storefront.topologies import TopologyVariant, get_topology

ACCOUNT_ID = "123456789012"
REGION = "us-east-1"


# =============================================================================
# Collaborator doubles
# =============================================================================


class FakeSourceProvider(SourceProvider):
    """Returns a checkout location per revision, or raises ``error``."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.fetched: list[str] = []

    async def fetch(self, repository, change):
        self.fetched.append(change.revision)
        if self.error is not None:
            raise self.error
        return SourceArtifact(
            branch=change.branch,
            revision=change.revision,
            location=f"s3://artifacts/source/{change.revision}.zip",
        )


class RecordingToolchain(BuildToolchain):
    """Records calls in order.

    Args:
        failures: Step name -> exception raised when that step runs.
        gates: Step name -> event the step waits on before returning.
    """

    def __init__(
        self,
        failures: Optional[dict[str, Exception]] = None,
        gates: Optional[dict[str, asyncio.Event]] = None,
    ):
        self.failures = failures or {}
        self.gates = gates or {}
        self.calls: list[tuple] = []
        self.envs: list[dict[str, str]] = []
        self.entered: defaultdict[str, asyncio.Event] = defaultdict(asyncio.Event)

    async def _step(self, name: str, env, *args) -> None:
        self.calls.append((name, *args))
        self.envs.append(env.as_env())
        self.entered[name].set()
        if name in self.gates:
            await self.gates[name].wait()
        if name in self.failures:
            raise self.failures[name]

    @property
    def step_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    @property
    def pushed(self) -> list[str]:
        return [call[1] for call in self.calls if call[0] == "push_image"]

    async def install_dependencies(self, source, env):
        await self._step("install_dependencies", env)

    async def registry_login(self, env):
        await self._step("registry_login", env)

    async def build_image(self, source, image_ref, env):
        await self._step("build_image", env, image_ref)

    async def tag_image(self, source_ref, target_ref, env):
        await self._step("tag_image", env, source_ref, target_ref)

    async def push_image(self, image_ref, env):
        await self._step("push_image", env, image_ref)

    async def package_output(self, source, env):
        await self._step("package_output", env)
        return f"s3://artifacts/build/{source.revision}.zip"


class FakeFunctionInvoker(FunctionInvoker):
    """Reports every function named in the parameters as deployed unless listed in ``fail``."""

    def __init__(self, fail: tuple[str, ...] = (), error: Optional[Exception] = None):
        self.fail = set(fail)
        self.error = error
        self.calls: list[tuple[str, dict[str, str]]] = []

    async def invoke(self, function_arn, parameters):
        self.calls.append((function_arn, parameters))
        if self.error is not None:
            raise self.error
        arns = [value for key, value in parameters.items() if key.endswith("FunctionArn")]
        failed = [arn for arn in arns if arn.rsplit(":", 1)[-1] in self.fail]
        return FunctionDeployReport(
            deployed=[arn for arn in arns if arn not in failed],
            failed=failed,
        )


class FakeContainerOrchestrator(ContainerOrchestrator):
    """Plays back ``statuses`` for rollout polls; the last status repeats."""

    def __init__(
        self,
        statuses: Optional[list[RolloutStatus]] = None,
        image: str = f"{ACCOUNT_ID}.dkr.ecr.{REGION}.amazonaws.com/woocommercerepo:previous",
    ):
        self.image = image
        self.statuses = list(statuses or [RolloutStatus.COMPLETED])
        self.updates: list[tuple[str, str, str, str]] = []
        self.polls = 0
        self._pending: Optional[str] = None

    async def current_image(self, cluster, service, container_name):
        return self.image

    async def update_service(self, cluster, service, container_name, image_uri):
        self.updates.append((cluster, service, container_name, image_uri))
        self._pending = image_uri
        return f"ecs-svc/{len(self.updates)}"

    async def rollout_status(self, cluster, service, deployment_id):
        self.polls += 1
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if status == RolloutStatus.COMPLETED:
            self.image = self._pending
        return status


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with a concrete account and no rollout poll delay."""
    return Settings(
        _env_file=None,
        aws_account_id=ACCOUNT_ID,
        aws_region=REGION,
        source_repository_owner="acme",
        source_repository_name="storefront",
        source_branch="main",
        source_stage_timeout_seconds=5,
        build_stage_timeout_seconds=5,
        deploy_stage_timeout_seconds=5,
        rollout_poll_interval_seconds=0,
        rollout_timeout_seconds=1,
    )


@pytest.fixture
def function_graph(settings):
    """Frozen function-pipeline topology."""
    return get_topology(TopologyVariant.FUNCTION_PIPELINE, settings).graph


@pytest.fixture
def container_graph(settings):
    """Frozen container-pipeline topology."""
    return get_topology(TopologyVariant.CONTAINER_PIPELINE, settings).graph


@pytest.fixture
def source_provider() -> FakeSourceProvider:
    return FakeSourceProvider()


@pytest.fixture
def toolchain() -> RecordingToolchain:
    return RecordingToolchain()


@pytest.fixture
def function_invoker() -> FakeFunctionInvoker:
    return FakeFunctionInvoker()


@pytest.fixture
def container_orchestrator() -> FakeContainerOrchestrator:
    return FakeContainerOrchestrator()
