"""Unit tests for deploy actions."""

import json

import pytest

from storefront.core.exceptions import (
    DeployStageError,
    MalformedArtifactError,
    PartialDeploymentError,
)
from storefront.models.schemas import ArtifactKind, ResourceKind
from storefront.orchestration.collaborators import RolloutStatus
from storefront.orchestration.deploy import (
    ContainerDeployAction,
    FunctionDeployAction,
    parse_image_definitions,
)
from storefront.orchestration.state import BuildArtifact, ImageDefinition
from tests.conftest import FakeContainerOrchestrator, FakeFunctionInvoker

IMAGE = "123456789012.dkr.ecr.us-east-1.amazonaws.com/woocommercerepo:abc123"


def image_artifact(definitions=None, descriptor=None):
    if descriptor is not None:
        return BuildArtifact(
            kind=ArtifactKind.IMAGE_DEFINITIONS,
            revision="abc123",
            location="imagedefinitions.json",
            descriptor=descriptor,
        )
    return BuildArtifact.for_images(
        revision="abc123",
        location="imagedefinitions.json",
        definitions=definitions or [ImageDefinition(name="WooCommerceContainer", image_uri=IMAGE)],
    )


def output_tree():
    return BuildArtifact(kind=ArtifactKind.OUTPUT_TREE, revision="abc123", location="s3://artifacts/build/abc123.zip")


@pytest.fixture
def service(container_graph):
    return container_graph.nodes(ResourceKind.CONTAINER_SERVICE)[0]


@pytest.fixture
def functions(function_graph):
    return function_graph.nodes(ResourceKind.COMPUTE_UNIT)


class TestParseImageDefinitions:
    """Test descriptor validation."""

    def test_valid_descriptor(self):
        """A well-formed descriptor parses into definitions."""
        definitions = parse_image_definitions(
            json.dumps([{"name": "WooCommerceContainer", "imageUri": IMAGE}])
        )

        assert definitions == [ImageDefinition(name="WooCommerceContainer", image_uri=IMAGE)]

    @pytest.mark.parametrize(
        "descriptor",
        [
            None,
            "",
            "not json",
            json.dumps({"name": "WooCommerceContainer", "imageUri": IMAGE}),
            json.dumps([]),
            json.dumps([{"name": "WooCommerceContainer"}]),
            json.dumps([{"imageUri": IMAGE}]),
        ],
    )
    def test_malformed_descriptor(self, descriptor):
        """Missing, unparsable or incomplete descriptors are rejected."""
        with pytest.raises(MalformedArtifactError):
            parse_image_definitions(descriptor)


class TestContainerDeploy:
    """Test rolling container deploys."""

    @pytest.mark.asyncio
    async def test_rolls_service_to_new_image(self, settings, service):
        """The service is updated to the descriptor's image."""
        client = FakeContainerOrchestrator()
        action = ContainerDeployAction(client, service, "WooCommerceContainer", settings)

        revision = await action.deploy(image_artifact())

        assert revision == "abc123"
        assert client.updates == [("WooCommerceCluster", "WooCommerceService", "WooCommerceContainer", IMAGE)]
        assert client.image == IMAGE

    @pytest.mark.asyncio
    async def test_polls_until_rollout_completes(self, settings, service):
        """In-progress rollouts are polled until they settle."""
        client = FakeContainerOrchestrator(
            statuses=[RolloutStatus.IN_PROGRESS, RolloutStatus.IN_PROGRESS, RolloutStatus.COMPLETED]
        )
        action = ContainerDeployAction(client, service, "WooCommerceContainer", settings)

        await action.deploy(image_artifact())

        assert client.polls == 3

    @pytest.mark.asyncio
    async def test_failed_rollout_keeps_previous_revision(self, settings, service):
        """A rollout that fails health checks fails Deploy; the old image keeps serving."""
        client = FakeContainerOrchestrator(statuses=[RolloutStatus.FAILED])
        previous = client.image
        action = ContainerDeployAction(client, service, "WooCommerceContainer", settings)

        with pytest.raises(DeployStageError) as exc_info:
            await action.deploy(image_artifact())

        assert exc_info.value.stage == "Deploy"
        assert exc_info.value.details["previous_image"] == previous
        assert client.image == previous

    @pytest.mark.asyncio
    async def test_rollout_that_never_settles_times_out(self, settings, service):
        """Polling stops after the rollout timeout."""
        client = FakeContainerOrchestrator(statuses=[RolloutStatus.IN_PROGRESS])
        fast = settings.model_copy(update={"rollout_timeout_seconds": 0.05})
        action = ContainerDeployAction(client, service, "WooCommerceContainer", fast)

        with pytest.raises(DeployStageError, match="did not stabilize"):
            await action.deploy(image_artifact())

    @pytest.mark.asyncio
    async def test_descriptor_for_other_container_rejected(self, settings, service):
        """The descriptor must name this service's container."""
        client = FakeContainerOrchestrator()
        action = ContainerDeployAction(client, service, "WooCommerceContainer", settings)
        artifact = image_artifact([ImageDefinition(name="Other", image_uri=IMAGE)])

        with pytest.raises(MalformedArtifactError):
            await action.deploy(artifact)

        assert client.updates == []

    @pytest.mark.asyncio
    async def test_malformed_descriptor_makes_no_change(self, settings, service):
        """A broken descriptor fails before the service is touched."""
        client = FakeContainerOrchestrator()
        action = ContainerDeployAction(client, service, "WooCommerceContainer", settings)

        with pytest.raises(MalformedArtifactError):
            await action.deploy(image_artifact(descriptor='[{"name": "WooCommerceContainer"}]'))

        assert client.updates == []

    @pytest.mark.asyncio
    async def test_output_tree_rejected(self, settings, service):
        """Container deploys need an image definitions artifact."""
        action = ContainerDeployAction(FakeContainerOrchestrator(), service, "WooCommerceContainer", settings)

        with pytest.raises(MalformedArtifactError):
            await action.deploy(output_tree())


class TestFunctionDeploy:
    """Test function deploys through the informational invocation."""

    @pytest.mark.asyncio
    async def test_invokes_first_target_with_all_arns(self, settings, functions):
        """The first function is invoked with every function's ARN."""
        invoker = FakeFunctionInvoker()
        action = FunctionDeployAction(invoker, functions, settings)

        revision = await action.deploy(output_tree())

        assert revision == "abc123"
        target, parameters = invoker.calls[0]
        assert target == "arn:aws:lambda:us-east-1:123456789012:function:products"
        assert parameters["ordersFunctionArn"] == "arn:aws:lambda:us-east-1:123456789012:function:orders"
        assert parameters["cartFunctionArn"] == "arn:aws:lambda:us-east-1:123456789012:function:cart"
        assert parameters["artifactLocation"] == "s3://artifacts/build/abc123.zip"

    @pytest.mark.asyncio
    async def test_partial_deployment_surfaced(self, settings, functions):
        """Mixed outcomes raise PartialDeploymentError naming both sides."""
        action = FunctionDeployAction(FakeFunctionInvoker(fail=("cart",)), functions, settings)

        with pytest.raises(PartialDeploymentError) as exc_info:
            await action.deploy(output_tree())

        assert exc_info.value.failed == ["arn:aws:lambda:us-east-1:123456789012:function:cart"]
        assert len(exc_info.value.deployed) == 2

    @pytest.mark.asyncio
    async def test_all_failed_is_plain_deploy_failure(self, settings, functions):
        """If nothing took the new revision there is no mixed state."""
        action = FunctionDeployAction(
            FakeFunctionInvoker(fail=("products", "orders", "cart")), functions, settings
        )

        with pytest.raises(DeployStageError) as exc_info:
            await action.deploy(output_tree())

        assert not isinstance(exc_info.value, PartialDeploymentError)

    @pytest.mark.asyncio
    async def test_invoke_error_wrapped(self, settings, functions):
        """Invocation errors become Deploy stage failures."""
        action = FunctionDeployAction(
            FakeFunctionInvoker(error=ConnectionError("throttled")), functions, settings
        )

        with pytest.raises(DeployStageError, match="throttled"):
            await action.deploy(output_tree())

    @pytest.mark.asyncio
    async def test_image_definitions_rejected(self, settings, functions):
        """Function deploys need an output tree artifact."""
        action = FunctionDeployAction(FakeFunctionInvoker(), functions, settings)

        with pytest.raises(MalformedArtifactError):
            await action.deploy(image_artifact())

    def test_needs_targets(self, settings):
        """A deploy action with no targets is a wiring error."""
        with pytest.raises(ValueError):
            FunctionDeployAction(FakeFunctionInvoker(), [], settings)
