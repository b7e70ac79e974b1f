"""Resource graph for storefront topologies.

Nodes are typed resources; edges are typed, explicit dependencies pointing
from the dependent resource to the resource it needs. Nothing is inferred
from attribute values: if a compute unit reads a table, an edge says so.

The graph is constructed once, frozen, and then read by the permission and
routing engines and the pipeline orchestrator.

Usage:
    graph = ResourceGraph("storefront")
    table = graph.add_node(ResourceKind.TABLE, {"name": "products", "partition_key_name": "productId"})
    fn = graph.add_node(ResourceKind.COMPUTE_UNIT, {"name": "products", "runtime": "function"})
    graph.add_edge(fn, table, Relation.READS_WRITES)
    graph.freeze()

    for node_id in graph.topological_order():
        ...
"""

from typing import Any, Iterable, Mapping, Optional, Union

import networkx as nx
import structlog
from pydantic import BaseModel, ValidationError

from storefront.core.exceptions import (
    CycleError,
    DanglingReferenceError,
    DuplicateNodeError,
    GraphFrozenError,
    InvalidAttributesError,
    InvalidEdgeError,
)
from storefront.models.schemas import (
    ATTRIBUTE_MODELS,
    Edge,
    NodeId,
    Relation,
    ResourceAttributes,
    ResourceKind,
    ResourceNode,
)

logger = structlog.get_logger(__name__)

K = ResourceKind

# (source kind, target kind) pairs each relation may connect
ALLOWED_EDGES: dict[Relation, frozenset[tuple[ResourceKind, ResourceKind]]] = {
    Relation.READS_WRITES: frozenset({
        (K.COMPUTE_UNIT, K.TABLE),
    }),
    Relation.SERVES_TRAFFIC_TO: frozenset({
        (K.DISTRIBUTION, K.STORAGE_BUCKET),
        (K.DISTRIBUTION, K.GATEWAY),
        (K.DISTRIBUTION, K.CONTAINER_SERVICE),
        (K.GATEWAY, K.COMPUTE_UNIT),
        (K.CONTAINER_SERVICE, K.COMPUTE_UNIT),
    }),
    Relation.TRIGGERS: frozenset({
        (K.REPOSITORY, K.PIPELINE),
        (K.PIPELINE, K.BUILD_PROJECT),
        (K.BUILD_PROJECT, K.IMAGE_REPOSITORY),
    }),
    Relation.DEPLOYS_TO: frozenset({
        (K.PIPELINE, K.COMPUTE_UNIT),
        (K.PIPELINE, K.CONTAINER_SERVICE),
    }),
}


def node_id_for(kind: Union[ResourceKind, str], name: str) -> NodeId:
    """Node id for a resource of ``kind`` with logical ``name``."""
    return f"{ResourceKind(kind).value}/{name}"


class ResourceGraph:
    """Directed acyclic graph of storefront resources.

    Args:
        name: Topology name, used in log context only.
    """

    def __init__(self, name: str = "storefront"):
        self.name = name
        self._graph = nx.DiGraph()
        self._nodes: dict[NodeId, ResourceNode] = {}
        self._insertion: dict[NodeId, int] = {}
        self._edges: dict[Edge, None] = {}
        self._frozen = False

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def add_node(
        self,
        kind: Union[ResourceKind, str],
        attributes: Union[Mapping[str, Any], BaseModel],
    ) -> NodeId:
        """Create a node and return its id (``"<Kind>/<name>"``).

        Raises:
            InvalidAttributesError: If attributes don't validate for the kind.
            DuplicateNodeError: If a node of this kind and name exists.
            GraphFrozenError: If construction has ended.
        """
        self._ensure_mutable()
        kind = ResourceKind(kind)
        attrs = self._validate_attributes(kind, attributes)

        node_id = node_id_for(kind, attrs.name)
        if node_id in self._nodes:
            raise DuplicateNodeError(node_id)

        self._nodes[node_id] = ResourceNode(id=node_id, kind=kind, attributes=attrs)
        self._insertion[node_id] = len(self._insertion)
        self._graph.add_node(node_id)

        logger.debug("resource_node_added", graph=self.name, node=node_id, kind=kind.value)
        return node_id

    def add_edge(
        self,
        source: NodeId,
        target: NodeId,
        relation: Union[Relation, str],
    ) -> Edge:
        """State that ``source`` depends on ``target`` through ``relation``.

        Re-adding an identical edge is a no-op. On failure the graph is
        left unchanged.

        Raises:
            DanglingReferenceError: If either endpoint is unknown.
            CycleError: If the edge would close a cycle.
            InvalidEdgeError: If the relation cannot join these kinds.
            GraphFrozenError: If construction has ended.
        """
        self._ensure_mutable()
        relation = Relation(relation)
        edge = Edge(source=source, target=target, relation=relation)

        for endpoint in (source, target):
            if endpoint not in self._nodes:
                raise DanglingReferenceError(endpoint, edge.as_tuple())

        if edge in self._edges:
            return edge

        if source == target:
            raise CycleError(source, target, relation.value, path=[source, target])
        if nx.has_path(self._graph, target, source):
            path = nx.shortest_path(self._graph, target, source)
            raise CycleError(source, target, relation.value, path=[source, *path])

        pair = (self._nodes[source].kind, self._nodes[target].kind)
        if pair not in ALLOWED_EDGES[relation]:
            raise InvalidEdgeError(
                source,
                target,
                relation.value,
                f"{pair[0].value} cannot {relation.value} {pair[1].value}",
            )

        self._edges[edge] = None
        self._graph.add_edge(source, target)

        logger.debug(
            "resource_edge_added",
            graph=self.name,
            source=source,
            target=target,
            relation=relation.value,
        )
        return edge

    def freeze(self) -> "ResourceGraph":
        """End construction. Further mutation raises GraphFrozenError."""
        self._frozen = True
        logger.info(
            "resource_graph_frozen",
            graph=self.name,
            nodes=len(self._nodes),
            edges=len(self._edges),
        )
        return self

    def teardown(self) -> None:
        """Destroy every node and edge (full topology teardown)."""
        logger.info("resource_graph_teardown", graph=self.name, nodes=len(self._nodes))
        self._graph.clear()
        self._nodes.clear()
        self._insertion.clear()
        self._edges.clear()
        self._frozen = False

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def node(self, node_id: NodeId) -> ResourceNode:
        """Get a node by id.

        Raises:
            DanglingReferenceError: If the node is unknown.
        """
        try:
            return self._nodes[node_id]
        except KeyError:
            raise DanglingReferenceError(node_id) from None

    def nodes(self, kind: Optional[Union[ResourceKind, str]] = None) -> list[ResourceNode]:
        """All nodes in insertion order, optionally filtered by kind."""
        if kind is None:
            return list(self._nodes.values())
        kind = ResourceKind(kind)
        return [node for node in self._nodes.values() if node.kind == kind]

    def edges(self, relation: Optional[Union[Relation, str]] = None) -> list[Edge]:
        """All edges in insertion order, optionally filtered by relation."""
        if relation is None:
            return list(self._edges)
        relation = Relation(relation)
        return [edge for edge in self._edges if edge.relation == relation]

    def neighbors(self, node_id: NodeId, relation: Union[Relation, str]) -> set[NodeId]:
        """Targets of ``relation`` edges leaving ``node_id``."""
        self.node(node_id)
        relation = Relation(relation)
        return {
            edge.target
            for edge in self._edges
            if edge.source == node_id and edge.relation == relation
        }

    def dependents(self, node_id: NodeId, relation: Union[Relation, str]) -> set[NodeId]:
        """Sources of ``relation`` edges entering ``node_id``."""
        self.node(node_id)
        relation = Relation(relation)
        return {
            edge.source
            for edge in self._edges
            if edge.target == node_id and edge.relation == relation
        }

    def ordered(self, node_ids: Iterable[NodeId]) -> list[NodeId]:
        """Sort node ids by insertion order."""
        return sorted(node_ids, key=self._insertion.__getitem__)

    def topological_order(self) -> list[NodeId]:
        """Provisioning order: every dependency before its dependents.

        Ties are broken by insertion order, so the result is deterministic.
        """
        return list(
            nx.lexicographical_topological_sort(
                self._graph.reverse(copy=False),
                key=self._insertion.__getitem__,
            )
        )

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise GraphFrozenError(f"Resource graph '{self.name}' is frozen")

    @staticmethod
    def _validate_attributes(
        kind: ResourceKind,
        attributes: Union[Mapping[str, Any], BaseModel],
    ) -> ResourceAttributes:
        model = ATTRIBUTE_MODELS[kind]
        if isinstance(attributes, model):
            return attributes
        data = attributes.model_dump() if isinstance(attributes, BaseModel) else dict(attributes)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise InvalidAttributesError(
                kind.value,
                f"Invalid attributes: {e.error_count()} error(s)",
                {"errors": [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]},
            ) from e
