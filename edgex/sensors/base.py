"""Base sensor classes for operator monitoring.

This module defines the base OperatorSensor class that provides lifecycle hooks
for monitoring operator events. All hooks are no-ops by default, allowing
subclasses to override only the events they care about.

Hooks come in pairs where an operation has a duration: on_X_start() returns an
optional state dict that is handed back to the matching on_X_complete().
"""

from typing import Dict, Optional, Any
import logging

logger = logging.getLogger(__name__)


class OperatorSensor:
    """Base sensor class for EdgeX operator monitoring.

    Hooks cover the reconciliation lifecycle, the synchronization of child
    resources and the release of children when an EdgeX goes away.

    Example:
        class LoggingSensor(OperatorSensor):
            def on_reconcile_start(self, edgex_name, namespace, generation, trigger_source):
                return {'start_time': time.time()}

            def on_reconcile_complete(self, edgex_name, namespace, state, success, error=None):
                logger.info(f"Reconciled {edgex_name} in {time.time() - state['start_time']}s")
    """

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
        """Called when a reconciliation pass begins.

        Args:
            edgex_name: EdgeX resource name
            namespace: Kubernetes namespace
            generation: Resource generation number
            trigger_source: What triggered reconciliation (create, update, timer, child, ...)

        Returns:
            Optional state dict passed to on_reconcile_complete
        """
        pass

    def on_reconcile_complete(
        self,
        edgex_name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a reconciliation pass completes, successfully or not."""
        pass

    def on_reconcile_queued(
        self,
        edgex_name: str,
        namespace: str,
        queue_depth: int,
    ) -> None:
        """Called when a reconciliation request is queued."""
        pass

    def on_reconcile_dequeued(
        self,
        edgex_name: str,
        namespace: str,
        wait_time: float,
    ) -> None:
        """Called when a reconciliation request leaves the queue.

        Args:
            edgex_name: EdgeX resource name
            namespace: Kubernetes namespace
            wait_time: Time spent in queue (seconds)
        """
        pass

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
        """Called before a child resource is written.

        Args:
            edgex_name: EdgeX resource name
            resource_name: Name of the child being written
            namespace: Kubernetes namespace
            resource_type: service, config_map or yurt_app_set
        """
        pass

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
        """Called after a child resource write.

        Args:
            operation: create, replace, delete, or noop when nothing was written
        """
        pass

    def on_resource_drift_detected(
        self,
        edgex_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: list[str],
    ) -> None:
        """Called when a child differs from its desired state."""
        pass

    def on_owner_released(
        self,
        edgex_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        deleted: bool,
    ) -> None:
        """Called when an EdgeX drops its ownership of a child.

        Args:
            deleted: True when the child had no owner left and was deleted
        """
        pass

    # =============================================================================
    # Status Hooks
    # =============================================================================

    def on_components_ready(
        self,
        edgex_name: str,
        namespace: str,
        ready: int,
        unready: int,
    ) -> None:
        """Called with the component readiness counts of a reconciliation pass."""
        pass

    def on_status_update(
        self,
        edgex_name: str,
        namespace: str,
        update_fields: list[str],
    ) -> None:
        """Called when status is updated.

        Args:
            edgex_name: EdgeX resource name
            namespace: Kubernetes namespace
            update_fields: List of status fields that were updated
        """
        pass

    # =============================================================================
    # Utility Methods
    # =============================================================================

    def asdict(self) -> Dict[str, Any]:
        """Return sensor state as dictionary."""
        return {}
