"""Prometheus monitoring backend for the EdgeX operator.

PrometheusMonitor turns operator lifecycle events into Prometheus metrics:

1. Reconciliation loop health - duration, queue depth, throughput, errors
2. Child resource sync - operation counts, latency, drift, released owners
3. Component readiness - ready and unready components per EdgeX
"""

from typing import Dict, Optional, Any
import time
import logging

from prometheus_client import Counter, Histogram, Gauge

from edgex.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class PrometheusMonitor(OperatorSensor):
    """Prometheus metrics monitor for the EdgeX operator.

    Metrics are organized by prefix:
    - edgexop_reconcile_* - Reconciliation loop metrics
    - edgexop_resource_* - Child resource metrics
    - edgexop_components_* - Readiness gauges
    """

    def __init__(self):
        super().__init__()

        # =============================================================================
        # Reconciliation Loop Metrics
        # =============================================================================

        self.reconcile_duration = Histogram(
            'edgexop_reconcile_duration_seconds',
            'Time spent in reconciliation loop',
            labelnames=['edgex_name', 'namespace', 'trigger_source', 'result'],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
        )

        self.reconcile_total = Counter(
            'edgexop_reconcile_total',
            'Total number of reconciliation attempts',
            labelnames=['edgex_name', 'namespace', 'trigger_source', 'result'],
        )

        self.reconcile_errors = Counter(
            'edgexop_reconcile_errors_total',
            'Total number of reconciliation errors',
            labelnames=['edgex_name', 'namespace', 'error_type'],
        )

        self.reconcile_queue_depth = Gauge(
            'edgexop_reconcile_queue_depth',
            'Current reconciliation queue depth',
            labelnames=['edgex_name', 'namespace'],
        )

        self.reconcile_queue_wait_seconds = Histogram(
            'edgexop_reconcile_queue_wait_seconds',
            'Time spent waiting in reconciliation queue',
            labelnames=['edgex_name', 'namespace'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
        )

        # =============================================================================
        # Child Resource Metrics
        # =============================================================================

        self.resource_sync_duration = Histogram(
            'edgexop_resource_sync_duration_seconds',
            'Time spent writing child resources',
            labelnames=['edgex_name', 'namespace', 'resource_type', 'operation', 'result'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
        )

        self.resource_sync_total = Counter(
            'edgexop_resource_sync_total',
            'Total number of child resource writes',
            labelnames=['edgex_name', 'namespace', 'resource_type', 'operation', 'result'],
        )

        self.resource_sync_errors = Counter(
            'edgexop_resource_sync_errors_total',
            'Total number of child resource write errors',
            labelnames=['edgex_name', 'namespace', 'resource_type', 'error_type'],
        )

        self.resource_drift_detected = Counter(
            'edgexop_resource_drift_detected_total',
            'Total number of child resource drift detections',
            labelnames=['edgex_name', 'namespace', 'resource_type', 'drift_field'],
        )

        self.owner_released = Counter(
            'edgexop_resource_owner_released_total',
            'Total number of child ownerships released',
            labelnames=['edgex_name', 'namespace', 'resource_type', 'deleted'],
        )

        # =============================================================================
        # Readiness and Status Metrics
        # =============================================================================

        self.components_ready = Gauge(
            'edgexop_components_ready',
            'Components ready in the node pool of an EdgeX',
            labelnames=['edgex_name', 'namespace'],
        )

        self.components_unready = Gauge(
            'edgexop_components_unready',
            'Components not yet ready in the node pool of an EdgeX',
            labelnames=['edgex_name', 'namespace'],
        )

        self.status_updates = Counter(
            'edgexop_status_updates_total',
            'Total number of status updates',
            labelnames=['edgex_name', 'namespace', 'update_field'],
        )

        logger.info("PrometheusMonitor initialized with all metrics")

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        edgex_name: str,
        namespace: str,
        generation: int,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Record reconciliation start time."""
        return {
            'start_time': time.time(),
            'trigger_source': trigger_source,
        }

    def on_reconcile_complete(
        self,
        edgex_name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record reconciliation duration and result."""
        if state:
            duration = time.time() - state['start_time']
            trigger_source = state['trigger_source']
            result = 'success' if success else 'failure'

            self.reconcile_duration.labels(
                edgex_name=edgex_name,
                namespace=namespace,
                trigger_source=trigger_source,
                result=result,
            ).observe(duration)

            self.reconcile_total.labels(
                edgex_name=edgex_name,
                namespace=namespace,
                trigger_source=trigger_source,
                result=result,
            ).inc()

        if error:
            self.reconcile_errors.labels(
                edgex_name=edgex_name,
                namespace=namespace,
                error_type=error.__class__.__name__,
            ).inc()

    def on_reconcile_queued(
        self, edgex_name: str, namespace: str, queue_depth: int
    ) -> None:
        self.reconcile_queue_depth.labels(
            edgex_name=edgex_name,
            namespace=namespace,
        ).set(queue_depth)

    def on_reconcile_dequeued(
        self, edgex_name: str, namespace: str, wait_time: float
    ) -> None:
        self.reconcile_queue_wait_seconds.labels(
            edgex_name=edgex_name,
            namespace=namespace,
        ).observe(wait_time)

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        edgex_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[str, Any]]:
        return {'start_time': time.time()}

    def on_resource_sync_complete(
        self,
        edgex_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[str, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record child write duration and result."""
        result = 'success' if success else 'failure'
        if state:
            self.resource_sync_duration.labels(
                edgex_name=edgex_name,
                namespace=namespace,
                resource_type=resource_type,
                operation=operation,
                result=result,
            ).observe(time.time() - state['start_time'])

        self.resource_sync_total.labels(
            edgex_name=edgex_name,
            namespace=namespace,
            resource_type=resource_type,
            operation=operation,
            result=result,
        ).inc()

        if error:
            self.resource_sync_errors.labels(
                edgex_name=edgex_name,
                namespace=namespace,
                resource_type=resource_type,
                error_type=error.__class__.__name__,
            ).inc()

    def on_resource_drift_detected(
        self,
        edgex_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: list[str],
    ) -> None:
        for field in drift_fields:
            self.resource_drift_detected.labels(
                edgex_name=edgex_name,
                namespace=namespace,
                resource_type=resource_type,
                drift_field=field,
            ).inc()

    def on_owner_released(
        self,
        edgex_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        deleted: bool,
    ) -> None:
        self.owner_released.labels(
            edgex_name=edgex_name,
            namespace=namespace,
            resource_type=resource_type,
            deleted=str(deleted).lower(),
        ).inc()

    # =============================================================================
    # Status Hooks
    # =============================================================================

    def on_components_ready(
        self, edgex_name: str, namespace: str, ready: int, unready: int
    ) -> None:
        self.components_ready.labels(edgex_name=edgex_name, namespace=namespace).set(ready)
        self.components_unready.labels(edgex_name=edgex_name, namespace=namespace).set(
            unready
        )

    def on_status_update(
        self,
        edgex_name: str,
        namespace: str,
        update_fields: list[str],
    ) -> None:
        """Record status update."""
        for field in update_fields:
            self.status_updates.labels(
                edgex_name=edgex_name,
                namespace=namespace,
                update_field=field,
            ).inc()
