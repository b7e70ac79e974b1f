"""Topology registry for runtime variant selection.

Provides decorator-based registration and a factory for topology builders.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from storefront.config.settings import Settings, get_settings
from storefront.graph.resource_graph import ResourceGraph


class TopologyVariant(Enum):
    """Supported storefront topologies."""

    FUNCTION = "function"
    FUNCTION_PIPELINE = "function-pipeline"
    CONTAINER_PIPELINE = "container-pipeline"


@dataclass(frozen=True)
class Topology:
    """A frozen resource graph for one variant."""

    variant: TopologyVariant
    graph: ResourceGraph

    @property
    def has_pipeline(self) -> bool:
        return self.variant != TopologyVariant.FUNCTION


TopologyBuilder = Callable[[Settings], ResourceGraph]

_builders: dict[TopologyVariant, TopologyBuilder] = {}


def register_topology(variant: TopologyVariant):
    """Decorator to register a topology builder.

    Example:
        @register_topology(TopologyVariant.FUNCTION)
        def build_function_topology(settings: Settings) -> ResourceGraph:
            ...
    """

    def decorator(func: TopologyBuilder) -> TopologyBuilder:
        _builders[variant] = func
        return func

    return decorator


def get_topology(variant: TopologyVariant, settings: Optional[Settings] = None) -> Topology:
    """Build and freeze the graph for a variant.

    Raises:
        ValueError: If the variant is not registered.
    """
    if variant not in _builders:
        raise ValueError(f"Unknown topology variant: {variant}")
    graph = _builders[variant](settings or get_settings())
    return Topology(variant=variant, graph=graph.freeze())


def list_topologies() -> list[TopologyVariant]:
    """List all registered topology variants."""
    return list(_builders.keys())
