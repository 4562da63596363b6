from typing import Dict, List
from edgex.types.base import BaseModel
from edgex.types.models.component import Component


class CatalogVersion(BaseModel):
    """Components and shared ConfigMaps of one EdgeX release."""

    name: str
    config_maps: List[Dict]
    components: List[Component]


class CatalogManifest(BaseModel):
    """Contents of a catalog file."""

    versions: List[CatalogVersion]
