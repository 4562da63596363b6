"""Sensor delegation for fan-out pattern.

SensorDelegate routes every sensor event to several monitoring backends.
Each backend receives the same events and keeps its own state.
"""

from typing import Set, Dict, Optional, Any
import logging

from edgex.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class SensorDelegate(OperatorSensor):
    """Delegate sensor that fans out events to multiple backends.

    State returned from start hooks is tracked per sensor, so each backend
    gets back its own state in the matching complete hook. A failing backend
    is logged and never breaks reconciliation.

    Example:
        delegate = SensorDelegate()
        delegate.add(PrometheusMonitor())
        state = delegate.on_reconcile_start("edgex-sample", "default", 5, "timer")
        delegate.on_reconcile_complete("edgex-sample", "default", state, True)
    """

    def __init__(self) -> None:
        self._sensors: Set[OperatorSensor] = set()

    def add(self, sensor: OperatorSensor) -> None:
        logger.info(f"Adding sensor: {sensor.__class__.__name__}")
        self._sensors.add(sensor)

    def remove(self, sensor: OperatorSensor) -> None:
        logger.info(f"Removing sensor: {sensor.__class__.__name__}")
        self._sensors.discard(sensor)

    def clear(self) -> None:
        logger.info(f"Clearing {len(self._sensors)} sensors")
        self._sensors.clear()

    def _each(self, hook: str, *args) -> None:
        for sensor in self._sensors:
            try:
                getattr(sensor, hook)(*args)
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )

    def _start(self, hook: str, *args) -> Optional[Dict[OperatorSensor, Any]]:
        if not self._sensors:
            return None
        states = {}
        for sensor in self._sensors:
            try:
                state = getattr(sensor, hook)(*args)
                if state is not None:
                    states[sensor] = state
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )
        return states if states else None

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        edgex_name: str,
        namespace: str,
        generation: int,
        trigger_source: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        """Delegate reconcile_start to all sensors.

        Returns:
            Dict mapping each sensor to its returned state, or None if no sensors
        """
        return self._start(
            "on_reconcile_start", edgex_name, namespace, generation, trigger_source
        )

    def on_reconcile_complete(
        self,
        edgex_name: str,
        namespace: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                sensor.on_reconcile_complete(
                    edgex_name, namespace, sensor_state, success, error
                )
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.on_reconcile_complete: {e}",
                    exc_info=True,
                )

    def on_reconcile_queued(
        self, edgex_name: str, namespace: str, queue_depth: int
    ) -> None:
        self._each("on_reconcile_queued", edgex_name, namespace, queue_depth)

    def on_reconcile_dequeued(
        self, edgex_name: str, namespace: str, wait_time: float
    ) -> None:
        self._each("on_reconcile_dequeued", edgex_name, namespace, wait_time)

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        edgex_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        return self._start(
            "on_resource_sync_start", edgex_name, resource_name, namespace, resource_type
        )

    def on_resource_sync_complete(
        self,
        edgex_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[OperatorSensor, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                sensor.on_resource_sync_complete(
                    edgex_name,
                    resource_name,
                    namespace,
                    resource_type,
                    sensor_state,
                    operation,
                    success,
                    error,
                )
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.on_resource_sync_complete: {e}",
                    exc_info=True,
                )

    def on_resource_drift_detected(
        self,
        edgex_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: list[str],
    ) -> None:
        self._each(
            "on_resource_drift_detected",
            edgex_name,
            resource_name,
            namespace,
            resource_type,
            drift_fields,
        )

    def on_owner_released(
        self,
        edgex_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        deleted: bool,
    ) -> None:
        self._each(
            "on_owner_released", edgex_name, resource_name, namespace, resource_type, deleted
        )

    # =============================================================================
    # Status Hooks
    # =============================================================================

    def on_components_ready(
        self, edgex_name: str, namespace: str, ready: int, unready: int
    ) -> None:
        self._each("on_components_ready", edgex_name, namespace, ready, unready)

    def on_status_update(
        self, edgex_name: str, namespace: str, update_fields: list[str]
    ) -> None:
        self._each("on_status_update", edgex_name, namespace, update_fields)

    def asdict(self) -> Dict[str, Any]:
        """Return combined state from all sensors."""
        return {
            sensor.__class__.__name__: sensor.asdict() for sensor in self._sensors
        }
