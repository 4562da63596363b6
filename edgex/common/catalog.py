import os
import copy
import yaml
import logging
from typing import Dict, List, Optional
from edgex.types.models.component import Component
from edgex.types.models.catalog import CatalogVersion, CatalogManifest
from edgex.types.schemas.catalog import CatalogManifestSchema

logger = logging.getLogger(__name__)

VersionIndex = Dict[str, CatalogVersion]


class Catalog:
    """Read-only table of EdgeX releases.

    Each release lists the components it is made of and the shared
    ConfigMaps every component loads its environment from. Two variants
    exist per release, with and without the security services. Lookups
    hand out copies, so callers may mutate what they get back.
    """

    SECURITY_FILE = "config.yaml"
    NO_SECURITY_FILE = "config-nosecty.yaml"
    DEFAULT_DIR = os.path.join(os.path.dirname(__file__), os.pardir, "data", "catalog")

    _security: VersionIndex
    _no_security: VersionIndex

    def __init__(
        self,
        security: Optional[VersionIndex] = None,
        no_security: Optional[VersionIndex] = None,
    ) -> None:
        self._security = dict(security or {})
        self._no_security = dict(no_security or {})

    @classmethod
    def empty(cls) -> "Catalog":
        return Catalog()

    @classmethod
    def from_manifests(
        cls,
        security: Optional[CatalogManifest] = None,
        no_security: Optional[CatalogManifest] = None,
    ) -> "Catalog":
        return Catalog(cls.index(security), cls.index(no_security))

    @classmethod
    def from_dicts(cls, security: Dict = None, no_security: Dict = None) -> "Catalog":
        """Build a catalog from already parsed catalog documents."""
        schema = CatalogManifestSchema()
        return cls.from_manifests(
            schema.load(security) if security else None,
            schema.load(no_security) if no_security else None,
        )

    @classmethod
    def from_directory(cls, path: str = None) -> "Catalog":
        """Load both variants from `path`, the packaged catalog by default.

        A missing file leaves its variant empty. A malformed file raises.
        """
        path = os.path.abspath(path or cls.DEFAULT_DIR)
        catalog = Catalog(
            cls.index(cls.load_file(os.path.join(path, cls.SECURITY_FILE))),
            cls.index(cls.load_file(os.path.join(path, cls.NO_SECURITY_FILE))),
        )
        logger.info(
            f"Loaded EdgeX catalog from {path}: "
            f"security={catalog.versions(security=True)}, "
            f"no-security={catalog.versions(security=False)}"
        )
        return catalog

    @classmethod
    def load_file(cls, path: str) -> Optional[CatalogManifest]:
        if not os.path.exists(path):
            logger.warning(f"Catalog file {path} not found, variant left empty.")
            return None
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return CatalogManifestSchema().load(data or {})

    @classmethod
    def index(cls, manifest: Optional[CatalogManifest]) -> VersionIndex:
        if manifest is None:
            return {}
        return {version.name: version for version in manifest.versions}

    def _variant(self, security: bool) -> VersionIndex:
        return self._security if security else self._no_security

    def lookup(self, version: str, security: bool = False) -> List[Component]:
        """Ordered components of `version`; empty for an unknown version."""
        entry = self._variant(security).get(version)
        if entry is None:
            return []
        return [component.copy() for component in entry.components]

    def config_maps(self, version: str, security: bool = False) -> List[Dict]:
        """Shared ConfigMap templates of `version`; empty for an unknown version."""
        entry = self._variant(security).get(version)
        if entry is None:
            return []
        return copy.deepcopy(entry.config_maps)

    def config_map_names(self, version: str, security: bool = False) -> List[str]:
        return [
            (cm.get("metadata") or {}).get("name")
            for cm in self.config_maps(version, security)
        ]

    def versions(self, security: bool = False) -> List[str]:
        return list(self._variant(security).keys())

    def __contains__(self, version: str) -> bool:
        return version in self._security or version in self._no_security
