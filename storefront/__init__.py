"""
Storefront - infrastructure composer for a serverless e-commerce storefront.

This package contains the core modules for the storefront system:
- graph: Typed resource graph, provisioning order and resource identifiers
- permissions: Least-privilege grants derived from reads_writes and registry edges
- routing: Edge routing and caching rules for the content distribution
- orchestration: Source → Build → Deploy pipeline executions
- topologies: The function, function-pipeline and container-pipeline variants
- config: Pydantic settings and configuration
- models: Resource, grant and routing rule schemas
"""

__version__ = "0.1.0"
