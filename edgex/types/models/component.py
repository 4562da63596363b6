from typing import Optional, Dict, List
from edgex.types.base import BaseModel


class Component(BaseModel):
    """A named unit of an EdgeX bundle.

    ``service`` and ``deployment`` hold Service and Deployment spec bodies in
    their Kubernetes wire form (camelCase keys). ``image``, ``ports``, ``env``
    and ``volumes`` are the raw fields of the flat component schema; they are
    folded into ``service``/``deployment`` by the decoder and never read after.
    """

    name: str
    service: Optional[Dict] = None
    deployment: Optional[Dict] = None
    image: Optional[str] = None
    ports: Optional[List[Dict]] = None
    env: Optional[Dict[str, str]] = None
    volumes: Optional[List[Dict]] = None

    @property
    def exposes_ports(self) -> bool:
        """True when a Service has to exist for this component."""
        return bool(self.service and self.service.get("ports"))

    @property
    def has_workload(self) -> bool:
        return self.deployment is not None

    @property
    def is_raw(self) -> bool:
        return self.image is not None
