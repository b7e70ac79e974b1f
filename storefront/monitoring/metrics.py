"""
Prometheus metrics for pipeline and provisioning observability.

Provides standardized metrics for pipeline stage durations, execution
outcomes, queue depth and the size of derived policy sets.

Usage:
    from storefront.monitoring.metrics import track_stage

    with track_stage("WooCommercePipeline", "Build"):
        await build_stage.run(execution)

    # Or manually
    PIPELINE_STAGE_DURATION.labels(pipeline="WooCommercePipeline", stage="Build").observe(duration)
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


# =============================================================================
# Metric Definitions
# =============================================================================

# Pipeline stage metrics
PIPELINE_STAGE_DURATION = Histogram(
    "storefront_pipeline_stage_duration_seconds",
    "Duration of pipeline stages in seconds",
    ["pipeline", "stage"],
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0, 3600.0],
)

PIPELINE_STAGE_TOTAL = Counter(
    "storefront_pipeline_stage_total",
    "Total number of pipeline stage runs",
    ["pipeline", "stage", "status"],
)

# Execution metrics
PIPELINE_EXECUTIONS_TOTAL = Counter(
    "storefront_pipeline_executions_total",
    "Total pipeline executions by terminal status",
    ["pipeline", "status"],
)

PIPELINE_QUEUE_DEPTH = Gauge(
    "storefront_pipeline_queue_depth",
    "Executions waiting behind the active one",
    ["pipeline"],
)

PARTIAL_DEPLOYMENTS_TOTAL = Counter(
    "storefront_partial_deployments_total",
    "Deploys that left functions on mixed revisions",
    ["pipeline"],
)

# Provisioning metrics
DERIVED_GRANTS = Gauge(
    "storefront_derived_grant_statements",
    "Grant statements derived for a topology",
    ["topology"],
)

DERIVED_ROUTING_RULES = Gauge(
    "storefront_derived_routing_rules",
    "Routing rules derived for a topology",
    ["topology"],
)


# =============================================================================
# Tracking Context Managers
# =============================================================================


@contextmanager
def track_stage(pipeline: str, stage: str) -> Generator[None, None, None]:
    """
    Context manager to track stage duration and outcome.

    Usage:
        with track_stage("WooCommercePipeline", "Deploy"):
            await deploy_action.deploy(artifact)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except BaseException:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        PIPELINE_STAGE_DURATION.labels(pipeline=pipeline, stage=stage).observe(duration)
        PIPELINE_STAGE_TOTAL.labels(pipeline=pipeline, stage=stage, status=status).inc()


def record_execution_finished(pipeline: str, status: str) -> None:
    """Record an execution reaching a terminal status."""
    PIPELINE_EXECUTIONS_TOTAL.labels(pipeline=pipeline, status=status).inc()


def update_queue_depth(pipeline: str, depth: int) -> None:
    """Set the number of queued executions."""
    PIPELINE_QUEUE_DEPTH.labels(pipeline=pipeline).set(depth)


def record_partial_deployment(pipeline: str) -> None:
    """Record a deploy that left a mixed-revision state."""
    PARTIAL_DEPLOYMENTS_TOTAL.labels(pipeline=pipeline).inc()


def record_plan_size(topology: str, grants: int, rules: int) -> None:
    """Record the size of a synthesized plan."""
    DERIVED_GRANTS.labels(topology=topology).set(grants)
    DERIVED_ROUTING_RULES.labels(topology=topology).set(rules)


def render_metrics() -> bytes:
    """Render all metrics in Prometheus text format."""
    return generate_latest()
