"""Normalize the extension encodings of an EdgeX into plain components.

Two encodings are supported besides the catalog:

* ``AdditionalDeployments`` / ``AdditionalServices`` annotations, JSON
  arrays of ``{"metadata": {"name": ...}, "spec": {...}}`` written by the
  v1alpha1 to v1alpha2 conversion.
* ``spec.additionalComponents``, whose entries either carry structured
  ``service``/``deployment`` specs or the raw ``image``/``ports``/``env``/
  ``volumes`` fields.
"""
import json
import copy
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence
from marshmallow import ValidationError
from edgex.utils.errors import DecodeError
from edgex.types.models.component import Component
from edgex.types.models.edgex_spec import EdgeXSpec
from edgex.types.models.legacy import LegacyTemplate
from edgex.types.schemas.legacy import LegacyTemplateSchema

ADDITIONAL_DEPLOYMENTS = "AdditionalDeployments"
ADDITIONAL_SERVICES = "AdditionalServices"

PULL_IF_NOT_PRESENT = "IfNotPresent"
HOST_PATH_TYPE = "DirectoryOrCreate"
ANONYMOUS_VOLUME_PREFIX = "anonymous-volume"
TMPFS_VOLUME_PREFIX = "tmpfs-volume"


def load_templates(annotations: Optional[Dict[str, str]], key: str) -> List[LegacyTemplate]:
    raw = (annotations or {}).get(key)
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as ex:
        raise DecodeError(key, str(ex)) from ex
    if not isinstance(data, list):
        raise DecodeError(key, "expected a JSON array")
    try:
        return LegacyTemplateSchema(many=True).load(data)
    except ValidationError as ex:
        raise DecodeError(key, str(ex.messages)) from ex


def decode_annotations(annotations: Optional[Dict[str, str]]) -> List[Component]:
    """Merge annotation fragments sharing a name into components.

    Components with a deployment come first, in annotation order, followed
    by the service-only ones in their own order.
    """
    deployments = load_templates(annotations, ADDITIONAL_DEPLOYMENTS)
    services = load_templates(annotations, ADDITIONAL_SERVICES)

    with_workload: Dict[str, Component] = OrderedDict()
    for template in deployments:
        component = with_workload.setdefault(template.name, Component(name=template.name))
        component.deployment = copy.deepcopy(template.spec)

    service_only: Dict[str, Component] = OrderedDict()
    for template in services:
        component = with_workload.get(template.name)
        if component is None:
            component = service_only.setdefault(
                template.name, Component(name=template.name)
            )
        component.service = copy.deepcopy(template.spec)

    return list(with_workload.values()) + list(service_only.values())


def resolve_image(image: str, image_registry: Optional[str]) -> str:
    """Prefix `image` with `image_registry` unless it already names a registry."""
    if not image_registry:
        return image
    first, sep, _ = image.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        return image
    return f"{image_registry.rstrip('/')}/{image}"


def _raw_ports(component: Component):
    service_ports, container_ports = [], []
    for port in component.ports or []:
        if "port" not in port:
            raise DecodeError(component.name, f"port entry {port} has no `port`")
        protocol = str(port.get("protocol") or "TCP").upper()
        target = port.get("targetPort") or port["port"]
        name = port.get("name") or f"{protocol.lower()}-{port['port']}"
        service_ports.append(
            {"name": name, "protocol": protocol, "port": port["port"], "targetPort": target}
        )
        container_ports.append(
            {"name": name, "protocol": protocol, "containerPort": target}
        )
    return service_ports, container_ports


def _raw_volumes(component: Component):
    volumes, mounts = [], []
    anonymous = tmpfs = 0
    for volume in component.volumes or []:
        if not volume.get("mountPath"):
            raise DecodeError(component.name, f"volume entry {volume} has no `mountPath`")
        host_path = volume.get("hostPath")
        name = volume.get("name")
        if host_path:
            if not name:
                anonymous += 1
                name = f"{ANONYMOUS_VOLUME_PREFIX}{anonymous}"
            source = {"hostPath": {"path": host_path, "type": HOST_PATH_TYPE}}
        else:
            if not name:
                tmpfs += 1
                name = f"{TMPFS_VOLUME_PREFIX}{tmpfs}"
            source = {"emptyDir": {}}
        volumes.append({"name": name, **source})
        mounts.append({"name": name, "mountPath": volume["mountPath"]})
    return volumes, mounts


def normalize_component(
    component: Component,
    config_maps: Sequence[str] = (),
    image_registry: Optional[str] = None,
) -> Component:
    """Fold the raw fields of a flat component into service and deployment specs.

    Structured components come back as copies, untouched.
    """
    normalized = component.copy()
    if not component.is_raw:
        return normalized

    name = component.name
    service_ports, container_ports = _raw_ports(component)
    volumes, mounts = _raw_volumes(component)

    if normalized.service is None and service_ports:
        normalized.service = {"selector": {"app": name}, "ports": service_ports}

    if normalized.deployment is None:
        container = {
            "name": name,
            "image": resolve_image(component.image, image_registry),
            "imagePullPolicy": PULL_IF_NOT_PRESENT,
        }
        if container_ports:
            container["ports"] = container_ports
        if component.env:
            container["env"] = [
                {"name": k, "value": str(v)} for k, v in sorted(component.env.items())
            ]
        if config_maps:
            container["envFrom"] = [{"configMapRef": {"name": cm}} for cm in config_maps]
        if mounts:
            container["volumeMounts"] = mounts
        pod_spec = {"hostname": name, "containers": [container]}
        if volumes:
            pod_spec["volumes"] = volumes
        normalized.deployment = {
            "selector": {"matchLabels": {"app": name}},
            "template": {"metadata": {"labels": {"app": name}}, "spec": pod_spec},
        }

    normalized.image = normalized.ports = normalized.env = normalized.volumes = None
    return normalized


def decode_additional_components(
    components: Iterable[Component],
    config_maps: Sequence[str] = (),
    image_registry: Optional[str] = None,
) -> List[Component]:
    return [normalize_component(c, config_maps, image_registry) for c in components or []]


def decode(
    spec: EdgeXSpec,
    annotations: Optional[Dict[str, str]],
    config_maps: Sequence[str] = (),
) -> List[Component]:
    """All extension components of an EdgeX: annotations first, then the explicit list.

    Raises:
        DecodeError: an annotation or a raw component entry is malformed.
    """
    return decode_annotations(annotations) + decode_additional_components(
        getattr(spec, "additional_components", None) or [],
        config_maps,
        getattr(spec, "image_registry", None),
    )
