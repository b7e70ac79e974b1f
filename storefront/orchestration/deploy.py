"""Deploy stage actions.

FunctionDeployAction (function topology)
    Invokes one deploy target with parameters naming every function. This is
    an informational invocation, not an atomic swap: if some functions take
    the new revision and others don't, PartialDeploymentError is raised so
    the mixed-revision state reaches the operator.

ContainerDeployAction (container topology)
    Validates the image-definitions descriptor, requests a rolling update of
    the service and waits for the rollout to pass health checks. A failed
    rollout leaves the previous revision serving.
"""

import json
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

import structlog
from pydantic import ValidationError
from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_delay, wait_fixed

from storefront.config.settings import Settings, get_settings
from storefront.core.exceptions import (
    DeployStageError,
    MalformedArtifactError,
    PartialDeploymentError,
)
from storefront.graph.identifiers import function_arn
from storefront.models.schemas import ArtifactKind, ResourceNode
from storefront.orchestration.collaborators import (
    ContainerOrchestrator,
    FunctionInvoker,
    RolloutStatus,
)
from storefront.orchestration.state import BuildArtifact, ImageDefinition

logger = structlog.get_logger(__name__)


def parse_image_definitions(descriptor: Union[str, bytes, None]) -> list[ImageDefinition]:
    """Parse an image-definitions descriptor.

    Raises:
        MalformedArtifactError: If the descriptor is missing, not a JSON list,
            or an entry lacks ``name`` or ``imageUri``.
    """
    if not descriptor:
        raise MalformedArtifactError("Image definitions descriptor is missing")
    try:
        entries = json.loads(descriptor)
    except json.JSONDecodeError as e:
        raise MalformedArtifactError(f"Descriptor is not valid JSON: {e}") from e
    if not isinstance(entries, list) or not entries:
        raise MalformedArtifactError("Descriptor must be a non-empty JSON list")
    try:
        return [ImageDefinition.model_validate(entry) for entry in entries]
    except ValidationError as e:
        raise MalformedArtifactError(
            "Descriptor entry is missing required fields",
            {"errors": [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]},
        ) from e


class DeployAction(ABC):
    """Applies a build artifact to the compute layer."""

    @abstractmethod
    async def deploy(self, artifact: BuildArtifact) -> str:
        """Deploy the artifact and return the revision now running."""
        ...


class FunctionDeployAction(DeployAction):
    """Deploys the function topology through one informational invocation.

    Args:
        invoker: Function invocation client.
        targets: Function nodes, in deploy order. The first is invoked.
        settings: Used to derive function ARNs.
    """

    def __init__(
        self,
        invoker: FunctionInvoker,
        targets: Sequence[ResourceNode],
        settings: Optional[Settings] = None,
    ):
        if not targets:
            raise ValueError("FunctionDeployAction needs at least one target")
        self.invoker = invoker
        self.targets = list(targets)
        self.settings = settings or get_settings()

    def parameters(self, artifact: BuildArtifact) -> dict[str, str]:
        """Invocation parameters naming every function's identity."""
        params = {
            f"{target.name}FunctionArn": function_arn(target, self.settings)
            for target in self.targets
        }
        params["artifactLocation"] = artifact.location
        params["revision"] = artifact.revision
        return params

    async def deploy(self, artifact: BuildArtifact) -> str:
        if artifact.kind != ArtifactKind.OUTPUT_TREE or not artifact.location:
            raise MalformedArtifactError(
                "Function deploy needs an output tree artifact",
                {"kind": artifact.kind.value},
            )

        invoke_target = function_arn(self.targets[0], self.settings)
        expected = [function_arn(t, self.settings) for t in self.targets]

        logger.info(
            "function_deploy_invoking",
            target=invoke_target,
            functions=expected,
            revision=artifact.revision,
        )
        try:
            report = await self.invoker.invoke(invoke_target, self.parameters(artifact))
        except Exception as e:
            logger.error("function_deploy_invoke_failed", target=invoke_target, error=str(e))
            raise DeployStageError(
                f"Invocation of {invoke_target} failed: {e}",
                {"target": invoke_target},
            ) from e

        deployed = [arn for arn in expected if arn in set(report.deployed)]
        failed = [arn for arn in expected if arn not in set(deployed)]

        if failed and deployed:
            logger.warning(
                "partial_deployment_risk",
                deployed=deployed,
                failed=failed,
                revision=artifact.revision,
            )
            raise PartialDeploymentError(deployed, failed)
        if failed:
            raise DeployStageError(
                "No function accepted the new revision",
                {"failed": failed},
            )

        logger.info("function_deploy_completed", revision=artifact.revision, functions=len(deployed))
        return artifact.revision


class ContainerDeployAction(DeployAction):
    """Rolls a container service to the image named in the descriptor.

    Args:
        client: Container orchestrator API.
        service: ContainerService node being updated.
        container_name: Container the descriptor must name.
        settings: Rollout poll interval and timeout.
    """

    def __init__(
        self,
        client: ContainerOrchestrator,
        service: ResourceNode,
        container_name: str,
        settings: Optional[Settings] = None,
    ):
        self.client = client
        self.service = service
        self.container_name = container_name
        self.settings = settings or get_settings()

    @property
    def cluster(self) -> str:
        return self.service.attributes.cluster_name

    def resolve_image(self, artifact: BuildArtifact) -> str:
        """Validate the descriptor and return the image URI to roll to.

        Raises:
            MalformedArtifactError: If the descriptor does not name exactly
                this service's container.
        """
        if artifact.kind != ArtifactKind.IMAGE_DEFINITIONS:
            raise MalformedArtifactError(
                "Container deploy needs an image definitions artifact",
                {"kind": artifact.kind.value},
            )
        definitions = parse_image_definitions(artifact.descriptor)
        if len(definitions) != 1:
            raise MalformedArtifactError(
                f"Expected exactly one image definition, found {len(definitions)}",
            )
        definition = definitions[0]
        if definition.name != self.container_name:
            raise MalformedArtifactError(
                f"Descriptor names container '{definition.name}', expected '{self.container_name}'",
            )
        return definition.image_uri

    async def deploy(self, artifact: BuildArtifact) -> str:
        image_uri = self.resolve_image(artifact)
        service = self.service.name

        previous = await self.client.current_image(self.cluster, service, self.container_name)
        logger.info(
            "container_rollout_starting",
            cluster=self.cluster,
            service=service,
            image=image_uri,
            previous_image=previous,
        )

        try:
            deployment_id = await self.client.update_service(
                self.cluster, service, self.container_name, image_uri
            )
        except Exception as e:
            logger.error("container_update_failed", service=service, error=str(e))
            raise DeployStageError(
                f"Service update rejected: {e}",
                {"service": service, "image": image_uri, "previous_image": previous},
            ) from e

        status = await self._wait_for_rollout(deployment_id, image_uri, previous)
        if status != RolloutStatus.COMPLETED:
            logger.error(
                "container_rollout_failed",
                service=service,
                deployment_id=deployment_id,
                previous_image=previous,
            )
            raise DeployStageError(
                "Rollout failed health checks; previous revision still serving",
                {"service": service, "image": image_uri, "previous_image": previous},
            )

        logger.info("container_rollout_completed", service=service, image=image_uri)
        return artifact.revision

    async def _wait_for_rollout(
        self,
        deployment_id: str,
        image_uri: str,
        previous: Optional[str],
    ) -> RolloutStatus:
        poller = AsyncRetrying(
            retry=retry_if_result(lambda status: status == RolloutStatus.IN_PROGRESS),
            wait=wait_fixed(self.settings.rollout_poll_interval_seconds),
            stop=stop_after_delay(self.settings.rollout_timeout_seconds),
        )
        try:
            return await poller(
                self.client.rollout_status, self.cluster, self.service.name, deployment_id
            )
        except RetryError:
            raise DeployStageError(
                f"Rollout did not stabilize within {self.settings.rollout_timeout_seconds:.0f}s",
                {"service": self.service.name, "image": image_uri, "previous_image": previous},
            ) from None
        except Exception as e:
            raise DeployStageError(
                f"Could not read rollout status: {e}",
                {"service": self.service.name, "deployment_id": deployment_id},
            ) from e
