"""
Monitoring and observability for the storefront composer.

Provides Prometheus metrics for tracking pipeline health and the size of
derived provisioning plans.

Usage:
    from storefront.monitoring import track_stage

    with track_stage("WooCommercePipeline", "Build"):
        await build_stage.run(...)
"""

from storefront.monitoring.metrics import (
    DERIVED_GRANTS,
    DERIVED_ROUTING_RULES,
    PARTIAL_DEPLOYMENTS_TOTAL,
    PIPELINE_EXECUTIONS_TOTAL,
    PIPELINE_QUEUE_DEPTH,
    PIPELINE_STAGE_DURATION,
    PIPELINE_STAGE_TOTAL,
    record_execution_finished,
    record_partial_deployment,
    record_plan_size,
    render_metrics,
    track_stage,
    update_queue_depth,
)

__all__ = [
    # Prometheus metrics
    "DERIVED_GRANTS",
    "DERIVED_ROUTING_RULES",
    "PARTIAL_DEPLOYMENTS_TOTAL",
    "PIPELINE_EXECUTIONS_TOTAL",
    "PIPELINE_QUEUE_DEPTH",
    "PIPELINE_STAGE_DURATION",
    "PIPELINE_STAGE_TOTAL",
    # Context managers
    "track_stage",
    # Helper functions
    "record_execution_finished",
    "record_partial_deployment",
    "record_plan_size",
    "render_metrics",
    "update_queue_depth",
]
