"""In-memory stand-ins for the Kubernetes APIs used by the EdgeX resource.

Objects are stored in wire form. Every write bumps a resourceVersion and a
replace carrying a stale one fails with 409, like the API server does.
"""

import copy
import itertools
import pytest
from typing import Dict, List, Optional, Tuple
from kubernetes_asyncio.client import ApiException
from edgex.types.settings import Settings
from edgex.common.catalog import Catalog
from edgex.types.schemas.edgex_spec import EdgeXSpecSchema
from edgex.resources.edgex import EdgeX

NAMESPACE = "default"

_uids = itertools.count(1)


def parse_selector(selector: Optional[str]) -> Dict[str, str]:
    if not selector:
        return {}
    return dict(term.split("=", 1) for term in selector.split(","))


class FakeStore:
    """Objects of one kind keyed by (namespace, name)."""

    def __init__(self, kind: str):
        self.kind = kind
        self.objects: Dict[Tuple[str, str], Dict] = {}
        self.writes: List[Tuple[str, str]] = []
        self.conflicts = 0
        self._versions = itertools.count(1)

    def _missing(self, name):
        return ApiException(status=404, reason="NotFound")

    def get(self, namespace: str, name: str) -> Dict:
        try:
            return copy.deepcopy(self.objects[(namespace, name)])
        except KeyError:
            raise self._missing(name)

    def list(self, namespace: str, label_selector: str = None) -> Dict:
        wanted = parse_selector(label_selector)
        items = []
        for (ns, _), obj in sorted(self.objects.items()):
            labels = obj["metadata"].get("labels") or {}
            if ns == namespace and all(labels.get(k) == v for k, v in wanted.items()):
                items.append(copy.deepcopy(obj))
        return {"items": items}

    def create(self, namespace: str, body: Dict) -> Dict:
        name = body["metadata"]["name"]
        if (namespace, name) in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        obj = copy.deepcopy(body)
        obj["metadata"]["namespace"] = namespace
        obj["metadata"]["uid"] = f"{self.kind}-{next(_uids)}"
        obj["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[(namespace, name)] = obj
        self.writes.append(("create", name))
        return copy.deepcopy(obj)

    def replace(self, namespace: str, name: str, body: Dict) -> Dict:
        stored = self.objects.get((namespace, name))
        if stored is None:
            raise self._missing(name)
        if self.conflicts > 0:
            self.conflicts -= 1
            raise ApiException(status=409, reason="Conflict")
        version = body["metadata"].get("resourceVersion")
        if version is not None and version != stored["metadata"]["resourceVersion"]:
            raise ApiException(status=409, reason="Conflict")
        obj = copy.deepcopy(body)
        # status is a subresource, replace does not touch it
        if "status" in stored:
            obj["status"] = copy.deepcopy(stored["status"])
        else:
            obj.pop("status", None)
        obj["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[(namespace, name)] = obj
        self.writes.append(("replace", name))
        return copy.deepcopy(obj)

    def delete(self, namespace: str, name: str) -> None:
        if (namespace, name) not in self.objects:
            raise self._missing(name)
        del self.objects[(namespace, name)]
        self.writes.append(("delete", name))

    def put(self, obj: Dict, namespace: str = NAMESPACE) -> Dict:
        """Seed an object without recording a write."""
        obj = copy.deepcopy(obj)
        obj.setdefault("metadata", {})["namespace"] = namespace
        obj["metadata"].setdefault("resourceVersion", str(next(self._versions)))
        self.objects[(namespace, obj["metadata"]["name"])] = obj
        return obj

    def set_status(self, name: str, status: Dict, namespace: str = NAMESPACE) -> None:
        self.objects[(namespace, name)]["status"] = copy.deepcopy(status)

    def names(self, namespace: str = NAMESPACE) -> List[str]:
        return sorted(n for ns, n in self.objects if ns == namespace)

    def __getitem__(self, name: str) -> Dict:
        return self.objects[(NAMESPACE, name)]

    def __contains__(self, name: str) -> bool:
        return (NAMESPACE, name) in self.objects


class FakeCoreV1Api:
    def __init__(self):
        self.services = FakeStore("service")
        self.config_maps = FakeStore("configmap")

    async def read_namespaced_service(self, name, namespace):
        return self.services.get(namespace, name)

    async def list_namespaced_service(self, namespace, label_selector=None):
        return self.services.list(namespace, label_selector)

    async def create_namespaced_service(self, namespace, body):
        return self.services.create(namespace, body)

    async def replace_namespaced_service(self, name, namespace, body):
        return self.services.replace(namespace, name, body)

    async def delete_namespaced_service(self, name, namespace):
        return self.services.delete(namespace, name)

    async def read_namespaced_config_map(self, name, namespace):
        return self.config_maps.get(namespace, name)

    async def list_namespaced_config_map(self, namespace, label_selector=None):
        return self.config_maps.list(namespace, label_selector)

    async def create_namespaced_config_map(self, namespace, body):
        return self.config_maps.create(namespace, body)

    async def replace_namespaced_config_map(self, name, namespace, body):
        return self.config_maps.replace(namespace, name, body)

    async def delete_namespaced_config_map(self, name, namespace):
        return self.config_maps.delete(namespace, name)


class FakeCustomObjectsApi:
    def __init__(self):
        self.stores: Dict[str, FakeStore] = {}

    def store(self, plural: str) -> FakeStore:
        return self.stores.setdefault(plural, FakeStore(plural))

    @property
    def yurtappsets(self) -> FakeStore:
        return self.store("yurtappsets")

    async def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        return self.store(plural).get(namespace, name)

    async def list_namespaced_custom_object(
        self, group, version, namespace, plural, label_selector=None
    ):
        return self.store(plural).list(namespace, label_selector)

    async def create_namespaced_custom_object(self, group, version, namespace, plural, body):
        return self.store(plural).create(namespace, body)

    async def replace_namespaced_custom_object(
        self, group, version, namespace, plural, name, body
    ):
        return self.store(plural).replace(namespace, name, body)

    async def delete_namespaced_custom_object(self, group, version, namespace, plural, name):
        return self.store(plural).delete(namespace, name)


def deployment(name: str) -> Dict:
    return {
        "selector": {"matchLabels": {"app": name}},
        "template": {
            "metadata": {"labels": {"app": name}},
            "spec": {
                "hostname": name,
                "containers": [{"name": name, "image": f"edgexfoundry/{name}:3.0.0"}],
            },
        },
    }


def service(name: str, port: int) -> Dict:
    return {
        "selector": {"app": name},
        "ports": [
            {"name": f"tcp-{port}", "protocol": "TCP", "port": port, "targetPort": port}
        ],
    }


CATALOG = {
    "versions": [
        {
            "versionName": "levski",
            "configMaps": [
                {
                    "metadata": {"name": "common-variables-levski"},
                    "data": {"EDGEX_SECURITY_SECRET_STORE": "false"},
                }
            ],
            "components": [
                {
                    "name": "edgex-redis",
                    "service": service("edgex-redis", 6379),
                    "deployment": deployment("edgex-redis"),
                },
                {
                    "name": "edgex-core-common-config-bootstrapper",
                    "deployment": deployment("edgex-core-common-config-bootstrapper"),
                },
            ],
        },
        {
            "versionName": "minnesota",
            "configMaps": [
                {
                    "metadata": {"name": "common-variables-minnesota"},
                    "data": {"EDGEX_SECURITY_SECRET_STORE": "false"},
                }
            ],
            "components": [
                {
                    "name": "edgex-redis",
                    "service": service("edgex-redis", 6379),
                    "deployment": deployment("edgex-redis"),
                },
                {
                    "name": "edgex-ui-go",
                    "service": service("edgex-ui-go", 4000),
                    "deployment": deployment("edgex-ui-go"),
                },
            ],
        },
    ]
}


@pytest.fixture
def core_v1_api():
    return FakeCoreV1Api()


@pytest.fixture
def custom_objects_api():
    return FakeCustomObjectsApi()


@pytest.fixture
def catalog():
    return Catalog.from_dicts(no_security=CATALOG)


@pytest.fixture
def conf():
    return Settings(conflict_retries=3, conflict_retry_backoff_seconds=0)


@pytest.fixture
def make_edgex(core_v1_api, custom_objects_api, catalog, conf):
    """Build EdgeX resources wired to the fake APIs."""

    def _make(
        name: str = "edgex-sample",
        pool: str = "hangzhou",
        uid: str = None,
        version: str = "levski",
        annotations: Dict[str, str] = None,
        status: Dict = None,
        **spec,
    ) -> EdgeX:
        spec_model = EdgeXSpecSchema().load({"version": version, "poolName": pool, **spec})
        edgex = EdgeX.from_spec(
            name,
            NAMESPACE,
            uid or f"uid-{name}",
            spec_model,
            annotations,
            status,
            catalog=catalog,
            conf=conf,
        )
        edgex.core_v1_api = core_v1_api
        edgex.custom_objects_api = custom_objects_api
        return edgex

    return _make


def mark_pool_ready(store: FakeStore, name: str, *pools: str, ready: int = 1) -> None:
    """Report `pools` of a workload as rolled out."""
    store.set_status(
        name,
        {
            "replicas": len(pools),
            "readyReplicas": len(pools) * ready,
            "poolReplicas": {pool: ready for pool in pools},
            "poolReadyReplicas": {pool: ready for pool in pools},
        },
    )
