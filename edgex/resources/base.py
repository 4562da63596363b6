import mmh3
import hashlib
from typing import Any, Dict, List, Optional, Union
from edgex.utils.helpers import canonicalize_dict
from edgex.utils.errors import not_found_error
from kubernetes_asyncio.client import (
    ApiException,
    CoreV1Api,
    CustomObjectsApi,
)
from kubernetes_asyncio.client.api_client import ApiClient


class BaseResource:
    """Base resource model.

    Objects are exchanged with the API server in their wire form, plain
    dictionaries with camelCase keys, whatever client method served them.
    Replacements carry the resourceVersion that was read, so a concurrent
    writer makes them fail with 409.
    """

    EDGEX_OPERATOR_NAME = "edgex-operator"
    HASH_ANNOTATION = "device.openyurt.io/resource-hash"

    _namespace: str
    _api_client: ApiClient = None

    def __init__(self, namespace: str):
        self._namespace = namespace

    @property
    def namespace(self) -> str:
        return self._namespace

    def compute_hash(self, data: Union[Dict, str]) -> str:
        """Compute a murmur3 hash."""
        if isinstance(data, dict):
            _data = canonicalize_dict(data)
        elif isinstance(data, str):
            _data = data.encode()
        else:
            raise ValueError(f"Hash of {type(data)} is not supported.")
        mumur_str = str(mmh3.hash128(_data))

        hash_obj = hashlib.sha256(mumur_str.encode("utf-8"))
        full_hash = hash_obj.hexdigest()

        # First 16 characters are enough for an annotation
        return full_hash[:16]

    def prepare_hash_annotation(self, hash: Union[str, int]) -> Dict[str, str]:
        """Prepare hash annotation for k8s resources."""
        return {self.HASH_ANNOTATION: str(hash)}

    def serialize(self, obj: Any) -> Optional[Dict]:
        """Wire form of an object returned by the typed client."""
        if obj is None or isinstance(obj, dict):
            return obj
        return self.api_client.sanitize_for_serialization(obj)

    def items(self, obj: Any) -> List[Dict]:
        return list((self.serialize(obj) or {}).get("items") or [])

    # Services

    async def fetch_service(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> Optional[Dict]:
        """Retrieve the latest state of a service"""
        try:
            return self.serialize(
                await core_v1_api.read_namespaced_service(name=name, namespace=namespace)
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def list_services(
        self, core_v1_api: CoreV1Api, namespace: str, label_selector: str
    ) -> List[Dict]:
        return self.items(
            await core_v1_api.list_namespaced_service(
                namespace=namespace, label_selector=label_selector
            )
        )

    async def create_service(
        self, core_v1_api: CoreV1Api, namespace: str, service: Dict
    ) -> None:
        await core_v1_api.create_namespaced_service(namespace=namespace, body=service)

    async def replace_service(
        self, core_v1_api: CoreV1Api, name: str, namespace: str, service: Dict
    ) -> None:
        await core_v1_api.replace_namespaced_service(
            name=name,
            namespace=namespace,
            body=service,
        )

    async def delete_service(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> None:
        try:
            await core_v1_api.delete_namespaced_service(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    # ConfigMaps

    async def fetch_config_map(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> Optional[Dict]:
        try:
            return self.serialize(
                await core_v1_api.read_namespaced_config_map(name=name, namespace=namespace)
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def list_config_maps(
        self, core_v1_api: CoreV1Api, namespace: str, label_selector: str
    ) -> List[Dict]:
        return self.items(
            await core_v1_api.list_namespaced_config_map(
                namespace=namespace, label_selector=label_selector
            )
        )

    async def create_config_map(
        self, core_v1_api: CoreV1Api, namespace: str, config_map: Dict
    ) -> None:
        await core_v1_api.create_namespaced_config_map(namespace=namespace, body=config_map)

    async def replace_config_map(
        self, core_v1_api: CoreV1Api, name: str, namespace: str, config_map: Dict
    ) -> None:
        await core_v1_api.replace_namespaced_config_map(
            name=name,
            namespace=namespace,
            body=config_map,
        )

    async def delete_config_map(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> None:
        try:
            await core_v1_api.delete_namespaced_config_map(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    # Custom objects

    async def get_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
    ) -> Optional[Dict]:
        try:
            return await custom_objects_api.get_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def list_custom_objects(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        label_selector: str = None,
    ) -> List[Dict]:
        kwargs = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        return self.items(
            await custom_objects_api.list_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                **kwargs,
            )
        )

    async def create_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        body: Dict,
    ) -> Dict:
        return await custom_objects_api.create_namespaced_custom_object(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            body=body,
        )

    async def replace_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
        body: Dict,
    ) -> Dict:
        return await custom_objects_api.replace_namespaced_custom_object(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            name=name,
            body=body,
        )

    async def delete_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
    ) -> None:
        try:
            await custom_objects_api.delete_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
            )
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise
