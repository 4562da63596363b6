"""EdgeX Operator Sensor Framework.

Hook-based instrumentation of operator lifecycle events.

Key components:
- OperatorSensor: Base class defining lifecycle hooks for operator events
- SensorDelegate: Fan-out of events to several sensor backends
- PrometheusMonitor: Prometheus metrics exporter
"""

from edgex.sensors.base import OperatorSensor
from edgex.sensors.delegate import SensorDelegate
from edgex.sensors.prometheus import PrometheusMonitor
from edgex.sensors.server import init_metrics_server

__all__ = [
    'OperatorSensor',
    'SensorDelegate',
    'PrometheusMonitor',
    'init_metrics_server',
]
