import asyncio
import kopf
import time
from logging import Logger
from collections import defaultdict
from typing import Dict, Optional
from benedict import benedict
from marshmallow import ValidationError
from kubernetes_asyncio.client import ApiException
from edgex.types.settings import RESYNC_INTERVAL_SECONDS, Settings
from edgex.types.models.edgex_spec import EdgeXSpec
from edgex.types.schemas.edgex_spec import EdgeXSpecSchema
from edgex.common.catalog import Catalog
from edgex.common.models.labels import Labels
from edgex.common.models.conditions import Conditions
from edgex.resources import EdgeX, YurtAppSet
from edgex.utils.errors import DecodeError, convert_api_exception
from edgex.utils.helpers import deep_compare_dict

EDGEX_KIND = EdgeX.KIND
GENERATED = {Labels.EDGEX_GENERATE_LABEL: kopf.PRESENT}

# Use a set to track which EdgeX objects are already queued
names_in_queue = set()
# The actual queue for ordered processing
reconciliation_queue: Dict[str, asyncio.Queue] = defaultdict(asyncio.Queue)
# Locks to prevent race conditions when enqueueing reconciliation requests
reconciliation_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
# Locks serializing reconciliation passes of one EdgeX
running_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
# Pending fixed-delay requeues, at most one per EdgeX
requeue_tasks: Dict[str, asyncio.Task] = {}


def get_sensor():
    """Get sensor from EdgeX class."""
    return getattr(EdgeX, "sensor", None)


def queue_key(name: str, namespace: str) -> str:
    return f"{namespace}/{name}"


def get_conf(memo) -> Settings:
    return getattr(memo, "conf", None) or EdgeX.conf or Settings()


def get_catalog(memo) -> Optional[Catalog]:
    return getattr(memo, "catalog", None) or EdgeX.catalog


def load_spec(spec) -> EdgeXSpec:
    try:
        return EdgeXSpecSchema().load(dict(spec or {}))
    except ValidationError as e:
        raise kopf.PermanentError(f"Invalid {EDGEX_KIND} spec: {e.messages}")


def prepare_status_update(status, desired: Dict) -> Dict:
    """Fields of `desired` that differ from the stored status."""
    _status = benedict(dict(status or {}), keypath_separator=None)
    return {
        field: value
        for field, value in desired.items()
        if not deep_compare_dict(_status.get(field), value)
    }


async def request_reconciliation(name: str, namespace: str, **kwargs):
    """Request reconciliation for the EdgeX.

    Enqueues the request only if it's not already in the queue.
    Uses a lock to ensure atomicity of the check-and-add operation.
    """
    key = queue_key(name, namespace)
    async with reconciliation_locks[key]:
        if key not in names_in_queue:
            names_in_queue.add(key)
            await reconciliation_queue[key].put(time.time())

            sensor = get_sensor()
            if sensor:
                sensor.on_reconcile_queued(
                    name, namespace, reconciliation_queue[key].qsize()
                )


def schedule_requeue(name: str, namespace: str, delay: float) -> None:
    """Request another pass after `delay` seconds unless one is already pending."""
    key = queue_key(name, namespace)
    task = requeue_tasks.get(key)
    if task is not None and not task.done():
        return

    async def _requeue():
        await asyncio.sleep(delay)
        requeue_tasks.pop(key, None)
        await request_reconciliation(name, namespace)

    requeue_tasks[key] = asyncio.create_task(_requeue())


def forget(name: str, namespace: str) -> None:
    """Drop all queue state kept for an EdgeX."""
    key = queue_key(name, namespace)
    task = requeue_tasks.pop(key, None)
    if task is not None:
        task.cancel()
    reconciliation_queue.pop(key, None)
    reconciliation_locks.pop(key, None)
    running_locks.pop(key, None)
    names_in_queue.discard(key)


async def reconcile(
    name,
    namespace,
    spec,
    meta,
    status,
    patch,
    annotations,
    logger: Logger,
    memo=None,
    trigger_source: str = "manual",
    **kwargs,
):
    """Reconcile the EdgeX and persist its status, whatever the outcome.

    Raises:
        kopf.PermanentError: the spec or its extension annotations are invalid.
        kopf.TemporaryError: the API server failed or the pass timed out.
    """
    sensor = get_sensor()
    generation = meta.get("generation", 0)
    sensor_state = None
    if sensor:
        sensor_state = sensor.on_reconcile_start(
            name, namespace, generation, trigger_source
        )

    success = True
    error = None
    conf = get_conf(memo)
    edgex = None
    try:
        async with running_locks[queue_key(name, namespace)]:
            edgex = EdgeX.from_spec(
                name,
                namespace,
                meta.get("uid"),
                load_spec(spec),
                annotations,
                status,
                catalog=get_catalog(memo),
                conf=conf,
                logger=logger,
            )
            logger.debug(f"Reconciling {EDGEX_KIND}/{name} in {namespace} namespace.")
            readiness = await asyncio.wait_for(
                edgex.reconcile(), timeout=conf.reconcile_timeout_seconds
            )
            logger.debug(
                f"Reconciled {EDGEX_KIND}/{name}: "
                f"{readiness.ready} ready, {readiness.unready} unready."
            )
            if not edgex.ready:
                schedule_requeue(name, namespace, conf.requeue_delay_seconds)
    except kopf.PermanentError as e:
        success, error = False, e
        logger.error(f"Rejected {EDGEX_KIND}/{name}: {e}")
        on_error(e, status, patch)
        raise
    except DecodeError as e:
        success, error = False, e
        logger.error(f"Failed to decode components of {EDGEX_KIND}/{name}: {e}")
        raise kopf.PermanentError(str(e))
    except asyncio.TimeoutError as e:
        success, error = False, e
        logger.warning(
            f"Reconciliation of {EDGEX_KIND}/{name} exceeded "
            f"{conf.reconcile_timeout_seconds}s, retrying."
        )
        raise kopf.TemporaryError(
            "Reconciliation timed out", delay=conf.requeue_delay_seconds
        )
    except ApiException as e:
        success, error = False, e
        logger.error(f"Kubernetes API error during reconciliation: {e.status} {e.reason}")
        convert_api_exception(e)
    except Exception as e:
        success, error = False, e
        logger.error(f"Unexpected error during reconciliation: {e}")
        logger.exception(e)
        raise
    finally:
        if edgex is not None:
            status_update = prepare_status_update(status, edgex.prepare_status())
            if status_update:
                patch.status.update(status_update)
                if sensor:
                    sensor.on_status_update(name, namespace, list(status_update.keys()))
        if sensor:
            sensor.on_reconcile_complete(name, namespace, sensor_state, success, error)


def on_error(error, status, patch, **_):
    """Record a failure that happened before a reconciliation pass could start."""
    conditions = Conditions((status or {}).get("conditions"))
    conditions.mark_false(
        Conditions.COMPONENT_AVAILABLE,
        Conditions.COMPONENT_PROVISIONING_FAILED,
        Conditions.SEVERITY_ERROR,
        str(error) if error else "Reconcile failed; see events/logs",
    )
    conditions.set_summary(Conditions.CONFIGMAP_AVAILABLE, Conditions.COMPONENT_AVAILABLE)
    patch.status["conditions"] = conditions.as_list()


@kopf.on.resume(kind=EDGEX_KIND)
@kopf.on.create(kind=EDGEX_KIND)
async def on_create(
    spec, name, meta, status, patch, namespace, annotations, logger: Logger, **kwargs
):
    """Creates EdgeX resources."""
    await reconcile(
        name,
        namespace,
        spec,
        meta,
        status,
        patch,
        annotations,
        logger,
        trigger_source="create",
        **kwargs,
    )


@kopf.on.update(kind=EDGEX_KIND, field="spec")
@kopf.on.update(kind=EDGEX_KIND, field="metadata.annotations")
async def on_update(
    spec, name, meta, status, patch, namespace, annotations, logger: Logger, **kwargs
):
    """Converge children after the spec or the extension annotations changed."""
    await reconcile(
        name,
        namespace,
        spec,
        meta,
        status,
        patch,
        annotations,
        logger,
        trigger_source="update",
        **kwargs,
    )


@kopf.on.delete(kind=EDGEX_KIND)
async def on_delete(
    spec, name, meta, status, namespace, annotations, logger: Logger, memo=None, **kwargs
):
    """Withdraw the EdgeX from its children.

    kopf removes the finalizer once this handler succeeds.
    """
    conf = get_conf(memo)
    edgex = EdgeX.from_spec(
        name,
        namespace,
        meta.get("uid"),
        load_spec(spec),
        annotations,
        status,
        catalog=get_catalog(memo),
        conf=conf,
        logger=logger,
    )
    try:
        async with running_locks[queue_key(name, namespace)]:
            await edgex.release()
    except DecodeError as e:
        # The finalizer stays until the annotations are fixed
        logger.error(f"Cannot release children of {EDGEX_KIND}/{name}: {e}")
        raise kopf.TemporaryError(str(e), delay=conf.resync_interval_seconds)
    except ApiException as e:
        convert_api_exception(e)
    logger.info(f"Released children of {EDGEX_KIND}/{name}.")
    forget(name, namespace)


@kopf.timer(EDGEX_KIND, initial_delay=3.0, interval=1.5)
async def process_reconciliation_requests(
    name,
    namespace,
    spec,
    meta,
    status,
    patch,
    annotations,
    logger: Logger,
    stopped,
    **kwargs,
):
    """Process reconciliation requests from the queue.

    Processes each request exactly once, even if it was
    requested multiple times while processing another request.
    """
    if stopped or meta.get("deletionTimestamp"):
        return
    key = queue_key(name, namespace)
    try:
        queued_at = reconciliation_queue[key].get_nowait()
    except asyncio.QueueEmpty:
        return

    sensor = get_sensor()
    if sensor:
        sensor.on_reconcile_dequeued(name, namespace, time.time() - queued_at)

    # Allow this EdgeX to be requeued while it is processed
    names_in_queue.discard(key)
    reconciliation_queue[key].task_done()
    start_time = time.time()
    try:
        await reconcile(
            name,
            namespace,
            spec,
            meta,
            status,
            patch,
            annotations,
            logger,
            trigger_source="queue",
            **kwargs,
        )
        logger.info(
            f"Reconciliation for {name} completed in {time.time() - start_time:.2f} seconds"
        )
    except kopf.PermanentError as e:
        logger.error(f"Reconciliation for {name} failed permanently: {e}")
    except kopf.TemporaryError as e:
        logger.warning(f"Reconciliation for {name} failed, will retry: {e}")
        delay = e.delay or get_conf(kwargs.get("memo")).requeue_delay_seconds
        schedule_requeue(name, namespace, delay)


@kopf.timer(EDGEX_KIND, initial_delay=5.0, interval=RESYNC_INTERVAL_SECONDS, backoff=10.0)
async def periodic_reconciliation(name, namespace, **kwargs):
    """Reconcile EdgeX resources."""
    await request_reconciliation(name, namespace, **kwargs)


@kopf.on.event(YurtAppSet.GROUP_NAME, YurtAppSet.GROUP_VERSION, YurtAppSet.PLURAL_NAME, labels=GENERATED)
@kopf.on.event("v1", "services", labels=GENERATED)
@kopf.on.event("v1", "configmaps", labels=GENERATED)
async def on_child_event(body, namespace, logger: Logger, **kwargs):
    """Queue every EdgeX owning a generated child that changed."""
    references = (body.get("metadata") or {}).get("ownerReferences") or []
    for ref in references:
        if ref.get("kind") != EDGEX_KIND:
            continue
        if not str(ref.get("apiVersion", "")).startswith(f"{EdgeX.GROUP_NAME}/"):
            continue
        logger.debug(f"Child of {EDGEX_KIND}/{ref.get('name')} changed.")
        await request_reconciliation(ref.get("name"), namespace)
