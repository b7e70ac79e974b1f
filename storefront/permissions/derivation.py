"""Permission derivation from the resource graph.

Grants are never hand-declared. Each ``reads_writes`` edge from a compute
unit to a table yields one data-access statement scoped to that table, and
each ``triggers`` edge from a build project to an image repository yields
one registry statement scoped to that repository. Nothing broader is emitted.

derive() reads the graph only and keeps no state, so running it twice on an
unchanged graph yields the same set.
"""

from collections import defaultdict
from typing import Iterable, Optional

import structlog

from storefront.config.settings import Settings
from storefront.core.exceptions import DanglingReferenceError, GrantDerivationError
from storefront.graph.identifiers import execution_role, image_repository_arn, table_arn
from storefront.graph.resource_graph import ResourceGraph
from storefront.models.schemas import GrantStatement, NodeId, Relation, ResourceKind

logger = structlog.get_logger(__name__)

# get, put, update, delete, query, scan
TABLE_DATA_ACTIONS: tuple[str, ...] = (
    "dynamodb:DeleteItem",
    "dynamodb:GetItem",
    "dynamodb:PutItem",
    "dynamodb:Query",
    "dynamodb:Scan",
    "dynamodb:UpdateItem",
)

# pull, push, complete-layer-upload, get-download-url, batch-get-image
REGISTRY_ACTIONS: tuple[str, ...] = (
    "ecr:BatchCheckLayerAvailability",
    "ecr:BatchGetImage",
    "ecr:CompleteLayerUpload",
    "ecr:GetDownloadUrlForLayer",
    "ecr:InitiateLayerUpload",
    "ecr:PutImage",
    "ecr:UploadLayerPart",
)


def derive(graph: ResourceGraph, settings: Optional[Settings] = None) -> frozenset[GrantStatement]:
    """Derive the minimal grant set for a validated graph.

    Args:
        graph: Resource graph. Construction invariants are assumed to hold.
        settings: Account/region used for resource ARNs. Defaults to get_settings().

    Returns:
        One statement per qualifying edge.

    Raises:
        GrantDerivationError: If an edge violates construction invariants.
    """
    statements: set[GrantStatement] = set()

    for edge in graph.edges(Relation.READS_WRITES):
        principal = _endpoint(graph, edge.source, ResourceKind.COMPUTE_UNIT, edge.as_tuple())
        table = _endpoint(graph, edge.target, ResourceKind.TABLE, edge.as_tuple())
        statements.add(
            GrantStatement(
                principal=principal.id,
                actions=TABLE_DATA_ACTIONS,
                resources=(table_arn(table, settings),),
            )
        )

    for edge in graph.edges(Relation.TRIGGERS):
        source = graph.node(edge.source)
        if source.kind != ResourceKind.BUILD_PROJECT:
            continue
        repository = _endpoint(graph, edge.target, ResourceKind.IMAGE_REPOSITORY, edge.as_tuple())
        statements.add(
            GrantStatement(
                principal=source.id,
                actions=REGISTRY_ACTIONS,
                resources=(image_repository_arn(repository, settings),),
            )
        )

    logger.info("grants_derived", graph=graph.name, statements=len(statements))
    return frozenset(statements)


def grants_for(statements: Iterable[GrantStatement], principal: NodeId) -> list[GrantStatement]:
    """Statements for one principal, sorted by resource."""
    return sorted(
        (s for s in statements if s.principal == principal),
        key=lambda s: s.resources,
    )


def to_policy_documents(
    graph: ResourceGraph,
    statements: Iterable[GrantStatement],
) -> dict[str, dict]:
    """Render statements as one IAM-style policy document per execution role.

    Roles and statements are sorted so the output is stable across runs.
    """
    by_principal: dict[NodeId, list[GrantStatement]] = defaultdict(list)
    for statement in statements:
        by_principal[statement.principal].append(statement)

    documents = {}
    for principal in sorted(by_principal):
        role = execution_role(graph.node(principal))
        documents[role] = {
            "Version": "2012-10-17",
            "Statement": [
                s.to_policy_statement()
                for s in sorted(by_principal[principal], key=lambda s: (s.resources, s.actions))
            ],
        }
    return documents


def _endpoint(graph: ResourceGraph, node_id: NodeId, kind: ResourceKind, edge: tuple):
    try:
        node = graph.node(node_id)
    except DanglingReferenceError:
        raise GrantDerivationError(
            f"Edge references unknown node '{node_id}'",
            {"edge": edge},
        ) from None
    if node.kind != kind:
        raise GrantDerivationError(
            f"Expected {kind.value} at '{node_id}', found {node.kind.value}",
            {"edge": edge},
        )
    return node
