import kopf
import logging
import edgex.handlers.edgex as edgex_handlers
from edgex.types.settings import Settings
from edgex.common.catalog import Catalog
from edgex.resources.edgex import EdgeX
from edgex.sensors import init_metrics_server, SensorDelegate, PrometheusMonitor
from kubernetes_asyncio import config
from kubernetes_asyncio.client.api_client import ApiClient


# Configure Kopf settings
@kopf.on.startup()
async def setup(
    settings: kopf.OperatorSettings, memo: kopf.Memo, logger: logging.Logger, **kwargs
):
    # Load Kubernetes config - try in-cluster first (for production), then local kubeconfig (for dev)
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        logger.info("In-cluster config not found, trying local kubeconfig")
        try:
            await config.load_kube_config()
            logger.info("Loaded local Kubernetes configuration")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    memo.conf = Settings()
    EdgeX.conf = memo.conf

    # A broken catalog is fatal, a missing one leaves its variant empty
    memo.catalog = Catalog.from_directory(memo.conf.catalog_dir)
    EdgeX.catalog = memo.catalog

    # Create a shared ApiClient for all resources to prevent connection leaks
    EdgeX.shared_api_client = ApiClient()
    logger.info("Shared Kubernetes API client initialized")

    # Initialize sensor infrastructure
    sensor_delegate = SensorDelegate()
    sensor_delegate.add(PrometheusMonitor())
    memo.sensor = sensor_delegate
    EdgeX.sensor = sensor_delegate
    logger.info("Sensor infrastructure initialized with PrometheusMonitor")

    try:
        init_metrics_server()
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")
        # Don't fail operator startup if metrics server fails
        logger.warning("Continuing without metrics server")

    # Limit the number of concurrent workers to prevent flooding the API
    settings.batching.worker_limit = memo.conf.worker_limit

    # Kopf owns the finalizer: added before the first handler, removed after on_delete
    settings.persistence.finalizer = EdgeX.FINALIZER

    # Post events to the Kubernetes API for logging >= Warning
    settings.posting.enabled = True
    settings.posting.level = logging.WARNING


@kopf.on.cleanup()
async def cleanup(logger: logging.Logger, **kwargs):
    """Cleanup handler for operator shutdown."""
    logger.info("Shutting down operator...")

    for task in list(edgex_handlers.requeue_tasks.values()):
        task.cancel()
    edgex_handlers.requeue_tasks.clear()

    if EdgeX.shared_api_client:
        await EdgeX.shared_api_client.close()
        logger.info("Shared API client closed")

    logger.info("Operator shutdown complete")


__all__ = [
    "edgex_handlers",
]
