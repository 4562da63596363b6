from typing import Dict
from edgex.types.base import BaseModel


class LegacyMetadata(BaseModel):
    name: str


class LegacyTemplate(BaseModel):
    """A Deployment or Service fragment stored in an EdgeX annotation."""

    metadata: LegacyMetadata
    spec: Dict

    @property
    def name(self) -> str:
        return self.metadata.name
