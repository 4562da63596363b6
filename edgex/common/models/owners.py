from typing import Dict, Iterator, List, Optional


class Owners:
    """Owner references of a generated child, treated as a set keyed by uid.

    Several EdgeX objects may own the same child. References are never
    marked as controller, since Kubernetes allows only one controller per
    object.
    """

    _references: List[Dict]

    def __init__(self, references: Optional[List[Dict]] = None) -> None:
        self._references = [dict(ref) for ref in references or []]

    @classmethod
    def of(cls, obj: Dict) -> "Owners":
        """Owners of a child object in wire form."""
        metadata = (obj or {}).get("metadata") or {}
        return cls(metadata.get("ownerReferences"))

    @staticmethod
    def reference(api_version: str, kind: str, name: str, uid: str) -> Dict:
        return {
            "apiVersion": api_version,
            "kind": kind,
            "name": name,
            "uid": uid,
        }

    @property
    def uids(self) -> List[str]:
        return [ref.get("uid") for ref in self._references]

    @property
    def orphaned(self) -> bool:
        """True once no owner is left and the child should be deleted."""
        return not self._references

    def contains(self, uid: str) -> bool:
        return uid in self.uids

    def add(self, reference: Dict) -> bool:
        """Add an owner. Returns False when it was already present."""
        if self.contains(reference["uid"]):
            return False
        self._references.append(dict(reference))
        return True

    def remove(self, uid: str) -> bool:
        """Remove an owner. Returns False when it was not present."""
        if not self.contains(uid):
            return False
        self._references = [ref for ref in self._references if ref.get("uid") != uid]
        return True

    def as_list(self) -> List[Dict]:
        return [dict(ref) for ref in self._references]

    def apply(self, obj: Dict) -> Dict:
        """Write these owners into the metadata of `obj` and return it."""
        obj.setdefault("metadata", {})["ownerReferences"] = self.as_list()
        return obj

    def __len__(self) -> int:
        return len(self._references)

    def __iter__(self) -> Iterator[Dict]:
        return iter(self.as_list())

    def __repr__(self) -> str:
        return f"Owners<{self.uids}>"
