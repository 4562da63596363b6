import copy
import logging
from logging import Logger
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set
from kubernetes_asyncio.client import CoreV1Api, CustomObjectsApi
from kubernetes_asyncio.client.api_client import ApiClient

from edgex.utils.objects import cached_property
from edgex.utils.errors import DecodeError, retry_on_conflict
from edgex.types.settings import Settings
from edgex.types.models.component import Component
from edgex.types.models.edgex_spec import EdgeXSpec
from edgex.common.catalog import Catalog
from edgex.common.decoder import decode
from edgex.common.models.labels import Labels
from edgex.common.models.owners import Owners
from edgex.common.models.conditions import Conditions
from edgex.resources.base import BaseResource
from edgex.resources.yurtappset import YurtAppSet
from edgex.resources.readiness import Readiness, aggregate
from edgex.sensors import OperatorSensor


class EdgeX(BaseResource):
    """EdgeX kubernetes resource.

    One EdgeX deploys one EdgeX release into one node pool. Its children
    (Services, ConfigMaps and YurtAppSets) are named after components, so
    EdgeX objects sharing a namespace share children: ownership is a union
    and every EdgeX only edits its own pool entry of a YurtAppSet.
    """

    logger: Logger
    conf: Settings = None
    catalog: Catalog = None
    sensor: OperatorSensor = OperatorSensor()
    shared_api_client: ApiClient = None  # Shared across all EdgeX instances

    KIND = "EdgeX"
    GROUP_NAME = "device.openyurt.io"
    GROUP_VERSION = "v1alpha2"
    API_VERSION = f"{GROUP_NAME}/{GROUP_VERSION}"
    PLURAL_NAME = "edgexes"
    FINALIZER = "edgex.edgexfoundry.org"
    TOPOLOGY_KEYS_ANNOTATION = "openyurt.io/topologyKeys"
    TOPOLOGY_KEYS_NODEPOOL = "openyurt.io/nodepool"

    # Service spec fields allocated by the API server
    PRESERVED_SERVICE_FIELDS = (
        "clusterIP",
        "clusterIPs",
        "ipFamilies",
        "ipFamilyPolicy",
        "healthCheckNodePort",
    )

    name: str
    uid: str
    spec: EdgeXSpec
    annotations: Dict[str, str] = None

    # outcome of the last pass
    initialized: bool = False
    ready: bool = False
    ready_components: int = 0
    unready_components: int = 0
    conditions: Conditions
    desired: Optional[List[Component]] = None
    workloads: Dict[str, YurtAppSet] = None

    def __init__(self, name: str, namespace: str, uid: str = None):
        super().__init__(namespace=namespace)
        self.name = name
        self.uid = uid
        self.conditions = Conditions()

    @classmethod
    def from_spec(
        cls,
        name: str,
        namespace: str,
        uid: str,
        spec: EdgeXSpec,
        annotations: Optional[Dict[str, str]] = None,
        status: Optional[Dict] = None,
        catalog: Catalog = None,
        conf: Settings = None,
        logger: Logger = None,
    ) -> "EdgeX":
        edgex = EdgeX(name, namespace, uid)
        edgex.logger = logger or logging.getLogger(__name__)
        edgex.spec = spec
        edgex.annotations = dict(annotations or {})
        edgex.catalog = catalog or cls.catalog or Catalog.empty()
        edgex.conf = conf or cls.conf or Settings()
        status = status or {}
        edgex.initialized = bool(status.get("initialized", False))
        edgex.ready = bool(status.get("ready", False))
        edgex.ready_components = int(status.get("readyComponentNum") or 0)
        edgex.unready_components = int(status.get("unreadyComponentNum") or 0)
        edgex.conditions = Conditions(status.get("conditions"))
        return edgex

    @property
    def pool_name(self) -> str:
        return self.spec.pool_name

    @property
    def owner_reference(self) -> Dict:
        return Owners.reference(self.API_VERSION, self.KIND, self.name, self.uid)

    @cached_property
    def config_maps(self) -> List[Dict]:
        return self.catalog.config_maps(self.spec.version, self.spec.security)

    @cached_property
    def config_map_names(self) -> List[str]:
        return [cm["metadata"]["name"] for cm in self.config_maps]

    def desired_components(self) -> List[Component]:
        """Catalog components of the version followed by the decoded extensions.

        Raises:
            DecodeError: the extension data of this EdgeX is malformed.
        """
        return self.catalog.lookup(self.spec.version, self.spec.security) + decode(
            self.spec, self.annotations, self.config_map_names
        )

    async def reconcile(self) -> Readiness:
        """Converge every child of this EdgeX towards its desired state.

        The outcome is recorded on the instance for `prepare_status`, whatever
        the exit path.
        """
        self.initialized = True
        self.ready = False
        try:
            components = self.desired_components()
        except DecodeError as ex:
            self.conditions.mark_false(
                Conditions.COMPONENT_AVAILABLE,
                Conditions.COMPONENT_PROVISIONING_FAILED,
                Conditions.SEVERITY_WARNING,
                str(ex),
            )
            raise
        self.desired = components
        self.ready_components, self.unready_components = 0, len(components)

        try:
            await self.sync_config_maps()
        except Exception as ex:
            self.conditions.mark_false(
                Conditions.CONFIGMAP_AVAILABLE,
                Conditions.CONFIGMAP_PROVISIONING_FAILED,
                Conditions.SEVERITY_WARNING,
                str(ex),
            )
            raise
        self.conditions.mark_true(Conditions.CONFIGMAP_AVAILABLE)

        try:
            self.workloads = await self.sync_components(components)
        except Exception as ex:
            self.conditions.mark_false(
                Conditions.COMPONENT_AVAILABLE,
                Conditions.COMPONENT_PROVISIONING_FAILED,
                Conditions.SEVERITY_WARNING,
                str(ex),
            )
            raise

        readiness = aggregate(
            components,
            self.workloads,
            self.pool_name,
            config_available=self.conditions.is_true(Conditions.CONFIGMAP_AVAILABLE),
        )
        self.ready_components = readiness.ready
        self.unready_components = readiness.unready
        self.sensor.on_components_ready(
            self.name, self.namespace, readiness.ready, readiness.unready
        )
        if readiness.components_available:
            self.conditions.mark_true(Conditions.COMPONENT_AVAILABLE)
            self.ready = readiness.config_available
        else:
            self.conditions.mark_false(
                Conditions.COMPONENT_AVAILABLE,
                Conditions.COMPONENT_PROVISIONING,
                Conditions.SEVERITY_INFO,
                f"{readiness.ready}/{len(components)} components ready",
            )
        return readiness

    async def sync_config_maps(self) -> None:
        """Ensure the shared ConfigMaps of the version, then sweep stale ones."""
        for config_map in self.config_maps:
            await self.ensure_config_map(config_map)
        await self.sweep(Labels.GENERATED_CONFIG_MAP, set(self.config_map_names))

    async def sync_components(
        self, components: Iterable[Component]
    ) -> Dict[str, YurtAppSet]:
        """Ensure Services and workloads of `components`, then sweep stale ones.

        A name listed more than once is materialized from its first entry.
        Returns the live workloads by component name.
        """
        services: Set[str] = set()
        workloads: Dict[str, YurtAppSet] = {}
        for component in components:
            if component.exposes_ports and component.name not in services:
                services.add(component.name)
                await self.ensure_service(component)
            if component.has_workload and component.name not in workloads:
                workloads[component.name] = await self.ensure_workload(component)
        await self.sweep(Labels.GENERATED_SERVICE, services)
        await self.sweep(Labels.GENERATED_DEPLOYMENT, set(workloads))
        return workloads

    async def _instrumented(
        self,
        resource_name: str,
        resource_type: str,
        fn: Callable[[], Awaitable],
    ):
        """Run a conflict-retried write and report its outcome to the sensor.

        `fn` returns ``(result, operation)``, operation being None when
        nothing had to be written.
        """
        sensor_state = self.sensor.on_resource_sync_start(
            self.name, resource_name, self.namespace, resource_type
        )
        operation, success, error = "noop", True, None
        try:
            result, operation = await retry_on_conflict(
                fn,
                retries=self.conf.conflict_retries,
                backoff=self.conf.conflict_retry_backoff_seconds,
                description=f"{resource_type} {self.namespace}/{resource_name}",
            )
            operation = operation or "noop"
            return result
        except Exception as ex:
            success, error = False, ex
            raise
        finally:
            self.sensor.on_resource_sync_complete(
                self.name,
                resource_name,
                self.namespace,
                resource_type,
                sensor_state,
                operation,
                success,
                error,
            )

    # Services

    def prepare_service_spec(self, component: Component) -> Dict:
        spec = copy.deepcopy(component.service)
        if self.spec.service_type:
            spec["type"] = self.spec.service_type
        return spec

    def prepare_service(self, name: str, spec: Dict, hash: str) -> Dict:
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {
                "name": name,
                "namespace": self.namespace,
                "labels": self.prepare_labels(Labels.GENERATED_SERVICE, name).as_dict(),
                "annotations": self.prepare_service_annotations(hash),
                "ownerReferences": [self.owner_reference],
            },
            "spec": spec,
        }

    def prepare_service_annotations(self, hash: str) -> Dict[str, str]:
        return {
            self.TOPOLOGY_KEYS_ANNOTATION: self.TOPOLOGY_KEYS_NODEPOOL,
            **self.prepare_hash_annotation(hash),
        }

    def merge_service_spec(self, actual: Dict, desired: Dict) -> Dict:
        """Desired spec carrying over the fields the API server allocated."""
        merged = copy.deepcopy(desired)
        for field in self.PRESERVED_SERVICE_FIELDS:
            if field in actual and field not in merged:
                merged[field] = actual[field]
        return merged

    async def ensure_service(self, component: Component) -> Dict:
        name = component.name
        desired_spec = self.prepare_service_spec(component)
        desired_hash = self.compute_hash(desired_spec)

        async def _sync():
            service = await self.fetch_service(self.core_v1_api, name, self.namespace)
            if service is None:
                service = self.prepare_service(name, desired_spec, desired_hash)
                await self.create_service(self.core_v1_api, self.namespace, service)
                return service, "create"
            metadata = service.setdefault("metadata", {})
            changed = False
            annotations = metadata.get("annotations") or {}
            # a Service shared with other EdgeX objects keeps the spec it was created with
            if self.sole_owner(service) and (
                annotations.get(self.HASH_ANNOTATION) != desired_hash
            ):
                self.sensor.on_resource_drift_detected(
                    self.name, name, self.namespace, "service", ["spec"]
                )
                service["spec"] = self.merge_service_spec(
                    service.get("spec") or {}, desired_spec
                )
                annotations.update(self.prepare_service_annotations(desired_hash))
                metadata["annotations"] = annotations
                changed = True
            changed = self.include_labels(metadata, Labels.GENERATED_SERVICE, name) or changed
            changed = self.include_owner(service) or changed
            if not changed:
                return service, None
            await self.replace_service(self.core_v1_api, name, self.namespace, service)
            return service, "replace"

        return await self._instrumented(name, "service", _sync)

    # ConfigMaps

    def prepare_config_map(self, template: Dict, hash: str) -> Dict:
        metadata = template.get("metadata") or {}
        name = metadata["name"]
        labels = Labels(metadata.get("labels")).update(
            self.prepare_labels(Labels.GENERATED_CONFIG_MAP).as_dict()
        )
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": name,
                "namespace": self.namespace,
                "labels": labels.as_dict(),
                "annotations": self.prepare_hash_annotation(hash),
                "ownerReferences": [self.owner_reference],
            },
            "data": copy.deepcopy(template.get("data") or {}),
        }

    async def ensure_config_map(self, template: Dict) -> Dict:
        name = template["metadata"]["name"]
        desired_data = template.get("data") or {}
        desired_hash = self.compute_hash(desired_data)

        async def _sync():
            config_map = await self.fetch_config_map(
                self.core_v1_api, name, self.namespace
            )
            if config_map is None:
                config_map = self.prepare_config_map(template, desired_hash)
                await self.create_config_map(
                    self.core_v1_api, self.namespace, config_map
                )
                return config_map, "create"
            metadata = config_map.setdefault("metadata", {})
            changed = False
            annotations = metadata.get("annotations") or {}
            if annotations.get(self.HASH_ANNOTATION) != desired_hash:
                self.sensor.on_resource_drift_detected(
                    self.name, name, self.namespace, "config_map", ["data"]
                )
                config_map["data"] = copy.deepcopy(desired_data)
                annotations.update(self.prepare_hash_annotation(desired_hash))
                metadata["annotations"] = annotations
                changed = True
            changed = self.include_labels(metadata, Labels.GENERATED_CONFIG_MAP) or changed
            changed = self.include_owner(config_map) or changed
            if not changed:
                return config_map, None
            await self.replace_config_map(
                self.core_v1_api, name, self.namespace, config_map
            )
            return config_map, "replace"

        return await self._instrumented(name, "config_map", _sync)

    # YurtAppSets

    async def fetch_workload(self, name: str) -> Optional[YurtAppSet]:
        body = await self.get_custom_object(
            self.custom_objects_api,
            self.namespace,
            YurtAppSet.GROUP_NAME,
            YurtAppSet.GROUP_VERSION,
            YurtAppSet.PLURAL_NAME,
            name,
        )
        return YurtAppSet(body) if body is not None else None

    async def ensure_workload(self, component: Component) -> YurtAppSet:
        """Make sure the workload of `component` runs in this EdgeX's pool.

        An existing workload template is left as it is; only the pool entry
        and the owner reference are added when missing.
        """
        name = component.name

        async def _sync():
            workload = await self.fetch_workload(name)
            if workload is None:
                workload = YurtAppSet.prepare(
                    name,
                    self.namespace,
                    component.deployment,
                    self.pool_name,
                    self.prepare_labels(Labels.GENERATED_DEPLOYMENT, name),
                    self.owner_reference,
                )
                created = await self.create_custom_object(
                    self.custom_objects_api,
                    self.namespace,
                    YurtAppSet.GROUP_NAME,
                    YurtAppSet.GROUP_VERSION,
                    YurtAppSet.PLURAL_NAME,
                    workload.body,
                )
                return YurtAppSet(created or workload.body), "create"
            changed = workload.add_pool(self.pool_name)
            changed = self.include_owner(workload.body) or changed
            if not changed:
                return workload, None
            replaced = await self.replace_custom_object(
                self.custom_objects_api,
                self.namespace,
                YurtAppSet.GROUP_NAME,
                YurtAppSet.GROUP_VERSION,
                YurtAppSet.PLURAL_NAME,
                name,
                workload.body,
            )
            return YurtAppSet(replaced or workload.body), "replace"

        return await self._instrumented(name, "yurt_app_set", _sync)

    # Ownership and garbage collection

    def sole_owner(self, obj: Dict) -> bool:
        """True when no EdgeX other than this one owns `obj`."""
        return all(uid == self.uid for uid in Owners.of(obj).uids)

    def include_owner(self, obj: Dict) -> bool:
        owners = Owners.of(obj)
        if not owners.add(self.owner_reference):
            return False
        owners.apply(obj)
        return True

    def include_labels(self, metadata: Dict, kind: str, app: str = None) -> bool:
        labels = Labels(metadata.get("labels"))
        desired = self.prepare_labels(kind, app)
        if labels.contains(desired):
            return False
        metadata["labels"] = labels.update(desired.as_dict()).as_dict()
        return True

    def prepare_labels(self, kind: str, app: str = None) -> Labels:
        labels = Labels.generate_default_labels(kind, self.EDGEX_OPERATOR_NAME)
        if app:
            labels.include_app(app)
        return labels

    async def list_generated(self, kind: str) -> List[Dict]:
        selector = Labels.generated(kind).as_str()
        if kind == Labels.GENERATED_SERVICE:
            return await self.list_services(self.core_v1_api, self.namespace, selector)
        if kind == Labels.GENERATED_CONFIG_MAP:
            return await self.list_config_maps(self.core_v1_api, self.namespace, selector)
        return await self.list_custom_objects(
            self.custom_objects_api,
            self.namespace,
            YurtAppSet.GROUP_NAME,
            YurtAppSet.GROUP_VERSION,
            YurtAppSet.PLURAL_NAME,
            label_selector=selector,
        )

    async def fetch_generated(self, kind: str, name: str) -> Optional[Dict]:
        if kind == Labels.GENERATED_SERVICE:
            return await self.fetch_service(self.core_v1_api, name, self.namespace)
        if kind == Labels.GENERATED_CONFIG_MAP:
            return await self.fetch_config_map(self.core_v1_api, name, self.namespace)
        workload = await self.fetch_workload(name)
        return workload.body if workload is not None else None

    async def replace_generated(self, kind: str, name: str, obj: Dict) -> None:
        if kind == Labels.GENERATED_SERVICE:
            await self.replace_service(self.core_v1_api, name, self.namespace, obj)
        elif kind == Labels.GENERATED_CONFIG_MAP:
            await self.replace_config_map(self.core_v1_api, name, self.namespace, obj)
        else:
            await self.replace_custom_object(
                self.custom_objects_api,
                self.namespace,
                YurtAppSet.GROUP_NAME,
                YurtAppSet.GROUP_VERSION,
                YurtAppSet.PLURAL_NAME,
                name,
                obj,
            )

    async def delete_generated(self, kind: str, name: str) -> None:
        if kind == Labels.GENERATED_SERVICE:
            await self.delete_service(self.core_v1_api, name, self.namespace)
        elif kind == Labels.GENERATED_CONFIG_MAP:
            await self.delete_config_map(self.core_v1_api, name, self.namespace)
        else:
            await self.delete_custom_object(
                self.custom_objects_api,
                self.namespace,
                YurtAppSet.GROUP_NAME,
                YurtAppSet.GROUP_VERSION,
                YurtAppSet.PLURAL_NAME,
                name,
            )

    async def sweep(self, kind: str, desired_names: Set[str]) -> List[str]:
        """Release every generated child of `kind` owned here but no longer desired.

        Returns the names that were released.
        """
        released = []
        for obj in await self.list_generated(kind):
            name = (obj.get("metadata") or {}).get("name")
            if name in desired_names or not Owners.of(obj).contains(self.uid):
                continue
            if await self.remove_owner(kind, name) is not None:
                released.append(name)
        return released

    async def remove_owner(self, kind: str, name: str) -> Optional[str]:
        """Drop this EdgeX from the owners of a child, deleting it when none remain.

        The pool entry of this EdgeX goes away with the ownership of a
        workload. Returns the operation performed, None if there was nothing
        to do.
        """
        resource_type = self.resource_type(kind)

        async def _release():
            obj = await self.fetch_generated(kind, name)
            if obj is None:
                return None, None
            owners = Owners.of(obj)
            owned = owners.remove(self.uid)
            pooled = kind == Labels.GENERATED_DEPLOYMENT and YurtAppSet(obj).remove_pool(
                self.pool_name
            )
            if not (owned or pooled):
                return None, None
            if owned and owners.orphaned:
                await self.delete_generated(kind, name)
                return "delete", "delete"
            owners.apply(obj)
            await self.replace_generated(kind, name, obj)
            return "replace", "replace"

        operation = await self._instrumented(name, resource_type, _release)
        if operation is not None:
            self.logger.info(
                f"Released {resource_type} {self.namespace}/{name} ({operation})."
            )
            self.sensor.on_owner_released(
                self.name, name, self.namespace, resource_type, operation == "delete"
            )
        return operation

    @classmethod
    def resource_type(cls, kind: str) -> str:
        return {
            Labels.GENERATED_SERVICE: "service",
            Labels.GENERATED_CONFIG_MAP: "config_map",
        }.get(kind, "yurt_app_set")

    async def release(self) -> None:
        """Withdraw this EdgeX from every child before it is deleted.

        Workloads of the desired components lose this EdgeX's pool entry,
        owned or not. Everything else it owns is released like a sweep with
        nothing desired.

        Raises:
            DecodeError: the desired components cannot be computed.
        """
        components = self.desired_components()
        for name in dict.fromkeys(c.name for c in components if c.has_workload):
            await self.remove_owner(Labels.GENERATED_DEPLOYMENT, name)
        for kind in (
            Labels.GENERATED_DEPLOYMENT,
            Labels.GENERATED_SERVICE,
            Labels.GENERATED_CONFIG_MAP,
        ):
            await self.sweep(kind, set())

    def prepare_status(self) -> Dict:
        self.conditions.set_summary(
            Conditions.CONFIGMAP_AVAILABLE, Conditions.COMPONENT_AVAILABLE
        )
        return {
            "initialized": self.initialized,
            "ready": self.ready,
            "readyComponentNum": self.ready_components,
            "unreadyComponentNum": self.unready_components,
            "conditions": self.conditions.as_list(),
        }

    @cached_property
    def api_client(self) -> ApiClient:
        # Use the shared API client if available, otherwise create a new one
        if self.shared_api_client is not None:
            return self.shared_api_client
        return ApiClient()

    @cached_property
    def core_v1_api(self) -> CoreV1Api:
        return CoreV1Api(self.api_client)

    @cached_property
    def custom_objects_api(self) -> CustomObjectsApi:
        return CustomObjectsApi(self.api_client)
