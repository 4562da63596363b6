"""Unit tests for the EdgeX kopf handlers."""

import asyncio
import logging
import json
import kopf
import pytest
from types import SimpleNamespace
from kubernetes_asyncio.client import ApiException
from edgex.handlers import edgex as handlers
from edgex.resources.edgex import EdgeX
from edgex.common.models.conditions import Conditions
from conftest import NAMESPACE

NAME = "edgex-sample"
KEY = f"{NAMESPACE}/{NAME}"

logger = logging.getLogger(__name__)


@pytest.fixture(autouse=True)
def reset_queues():
    yield
    for task in handlers.requeue_tasks.values():
        task.cancel()
    handlers.requeue_tasks.clear()
    handlers.names_in_queue.clear()
    handlers.reconciliation_queue.clear()
    handlers.reconciliation_locks.clear()
    handlers.running_locks.clear()


@pytest.fixture
def fake_apis(monkeypatch, core_v1_api, custom_objects_api):
    monkeypatch.setattr(EdgeX, "core_v1_api", core_v1_api)
    monkeypatch.setattr(EdgeX, "custom_objects_api", custom_objects_api)
    return core_v1_api, custom_objects_api


@pytest.fixture
def memo(conf, catalog):
    conf.requeue_delay_seconds = 3600
    return SimpleNamespace(conf=conf, catalog=catalog)


def make_kwargs(memo, spec=None, status=None, annotations=None):
    return dict(
        name=NAME,
        namespace=NAMESPACE,
        spec=spec or {"version": "levski", "poolName": "hangzhou"},
        meta={"uid": "uid-edgex-sample", "generation": 1},
        status=status or {},
        patch=SimpleNamespace(status={}),
        annotations=annotations or {},
        logger=logger,
        memo=memo,
    )


@pytest.mark.asyncio
async def test_request_reconciliation_is_deduplicated():
    await handlers.request_reconciliation(NAME, NAMESPACE)
    await handlers.request_reconciliation(NAME, NAMESPACE)

    assert handlers.names_in_queue == {KEY}
    assert handlers.reconciliation_queue[KEY].qsize() == 1


@pytest.mark.asyncio
async def test_schedule_requeue_keeps_one_pending_task():
    handlers.schedule_requeue(NAME, NAMESPACE, 0)
    first = handlers.requeue_tasks[KEY]
    handlers.schedule_requeue(NAME, NAMESPACE, 0)

    assert handlers.requeue_tasks[KEY] is first
    await first
    assert KEY in handlers.names_in_queue


@pytest.mark.asyncio
async def test_child_event_queues_edgex_owners():
    body = {
        "metadata": {
            "ownerReferences": [
                {"apiVersion": EdgeX.API_VERSION, "kind": "EdgeX", "name": "edgex-a", "uid": "a"},
                {"apiVersion": EdgeX.API_VERSION, "kind": "EdgeX", "name": "edgex-b", "uid": "b"},
                {"apiVersion": "apps/v1", "kind": "ReplicaSet", "name": "rs", "uid": "c"},
            ]
        }
    }

    await handlers.on_child_event(body=body, namespace=NAMESPACE, logger=logger)

    assert handlers.names_in_queue == {f"{NAMESPACE}/edgex-a", f"{NAMESPACE}/edgex-b"}


@pytest.mark.asyncio
async def test_reconcile_patches_status(fake_apis, memo):
    kwargs = make_kwargs(memo)

    await handlers.reconcile(**kwargs)

    status = kwargs["patch"].status
    assert status["initialized"] is True
    assert status["ready"] is False
    assert status["readyComponentNum"] == 0
    assert status["unreadyComponentNum"] == 2
    types = [c["type"] for c in status["conditions"]]
    assert types == [
        Conditions.CONFIGMAP_AVAILABLE,
        Conditions.COMPONENT_AVAILABLE,
        Conditions.READY,
    ]
    # components are still rolling out
    assert KEY in handlers.requeue_tasks


@pytest.mark.asyncio
async def test_unchanged_status_is_not_patched(fake_apis, memo):
    first = make_kwargs(memo)
    await handlers.reconcile(**first)

    second = make_kwargs(memo, status=first["patch"].status)
    await handlers.reconcile(**second)

    assert second["patch"].status == {}


@pytest.mark.asyncio
async def test_decode_failure_is_permanent_and_reported(fake_apis, memo):
    core_v1_api, custom_objects_api = fake_apis
    kwargs = make_kwargs(memo, annotations={"AdditionalServices": "[{]"})

    with pytest.raises(kopf.PermanentError):
        await handlers.reconcile(**kwargs)

    status = kwargs["patch"].status
    assert status["ready"] is False
    ready = next(c for c in status["conditions"] if c["type"] == Conditions.READY)
    assert ready["status"] == "False"
    assert ready["reason"] == Conditions.COMPONENT_PROVISIONING_FAILED
    assert core_v1_api.services.writes == []
    assert custom_objects_api.yurtappsets.writes == []


@pytest.mark.asyncio
async def test_invalid_spec_is_permanent(fake_apis, memo):
    kwargs = make_kwargs(memo, spec={"version": "levski"})

    with pytest.raises(kopf.PermanentError):
        await handlers.reconcile(**kwargs)

    conditions = kwargs["patch"].status["conditions"]
    assert conditions[0]["type"] == Conditions.COMPONENT_AVAILABLE
    assert conditions[0]["severity"] == Conditions.SEVERITY_ERROR


@pytest.mark.asyncio
async def test_api_errors_are_retried(fake_apis, memo, monkeypatch):
    core_v1_api, _ = fake_apis

    async def unavailable(namespace, body):
        raise ApiException(status=503, reason="Service Unavailable")

    monkeypatch.setattr(core_v1_api, "create_namespaced_config_map", unavailable)
    kwargs = make_kwargs(memo)

    with pytest.raises(kopf.TemporaryError):
        await handlers.reconcile(**kwargs)

    configmap = next(
        c
        for c in kwargs["patch"].status["conditions"]
        if c["type"] == Conditions.CONFIGMAP_AVAILABLE
    )
    assert configmap["reason"] == Conditions.CONFIGMAP_PROVISIONING_FAILED


@pytest.mark.asyncio
async def test_slow_pass_times_out(fake_apis, memo, monkeypatch):
    memo.conf.reconcile_timeout_seconds = 0.01

    async def stuck(self):
        await asyncio.sleep(10)

    monkeypatch.setattr(EdgeX, "sync_config_maps", stuck)
    kwargs = make_kwargs(memo)

    with pytest.raises(kopf.TemporaryError):
        await handlers.reconcile(**kwargs)

    assert kwargs["patch"].status["initialized"] is True


@pytest.mark.asyncio
async def test_queued_request_is_processed(fake_apis, memo):
    await handlers.request_reconciliation(NAME, NAMESPACE)
    kwargs = make_kwargs(memo)

    await handlers.process_reconciliation_requests(stopped=False, **kwargs)

    assert kwargs["patch"].status["initialized"] is True
    assert KEY not in handlers.names_in_queue
    assert handlers.reconciliation_queue[KEY].empty()


@pytest.mark.asyncio
async def test_empty_queue_is_a_noop(fake_apis, memo):
    kwargs = make_kwargs(memo)

    await handlers.process_reconciliation_requests(stopped=False, **kwargs)

    assert kwargs["patch"].status == {}


@pytest.mark.asyncio
async def test_delete_releases_children(fake_apis, memo):
    core_v1_api, custom_objects_api = fake_apis
    await handlers.reconcile(**make_kwargs(memo))
    await handlers.request_reconciliation(NAME, NAMESPACE)

    kwargs = make_kwargs(memo)
    kwargs.pop("patch")
    await handlers.on_delete(**kwargs)

    assert core_v1_api.services.names() == []
    assert core_v1_api.config_maps.names() == []
    assert custom_objects_api.yurtappsets.names() == []
    assert KEY not in handlers.names_in_queue
    assert KEY not in handlers.requeue_tasks


@pytest.mark.asyncio
async def test_delete_with_broken_annotations_keeps_finalizer(fake_apis, memo):
    core_v1_api, _ = fake_apis
    await handlers.reconcile(**make_kwargs(memo))

    kwargs = make_kwargs(
        memo, annotations={"AdditionalDeployments": json.dumps({"not": "a list"})}
    )
    kwargs.pop("patch")
    with pytest.raises(kopf.TemporaryError):
        await handlers.on_delete(**kwargs)

    assert core_v1_api.services.names() == ["edgex-redis"]
