from typing import Dict, List, Optional, Sequence
from edgex.utils.helpers import upsert_condition, find_condition

_OPTIONAL_FIELDS = ("reason", "severity", "message")


class Conditions:
    """Typed status conditions of an EdgeX, merged by type."""

    READY = "Ready"
    CONFIGMAP_AVAILABLE = "ConfigmapAvailable"
    COMPONENT_AVAILABLE = "ComponentAvailable"

    CONFIGMAP_PROVISIONING = "ConfigmapProvisioning"
    CONFIGMAP_PROVISIONING_FAILED = "ConfigmapProvisioningFailed"
    COMPONENT_PROVISIONING = "ComponentProvisioning"
    COMPONENT_PROVISIONING_FAILED = "ComponentProvisioningFailed"

    SEVERITY_ERROR = "Error"
    SEVERITY_WARNING = "Warning"
    SEVERITY_INFO = "Info"

    _conditions: List[Dict]

    def __init__(self, conditions: Optional[Sequence[Dict]] = None) -> None:
        self._conditions = [dict(c) for c in conditions or []]

    def _set(self, condition: Dict) -> None:
        merged = upsert_condition(self._conditions, condition)
        self._conditions = [
            {k: v for k, v in c.items() if v is not None} for c in merged
        ]

    def mark_true(self, type_: str) -> None:
        self._set(
            {"type": type_, "status": "True", "reason": None, "severity": None, "message": None}
        )

    def mark_false(
        self, type_: str, reason: str, severity: str, message: str = ""
    ) -> None:
        self._set(
            {
                "type": type_,
                "status": "False",
                "reason": reason,
                "severity": severity,
                "message": message or None,
            }
        )

    def get(self, type_: str) -> Optional[Dict]:
        return find_condition(self._conditions, type_)

    def is_true(self, type_: str) -> bool:
        condition = self.get(type_)
        return condition is not None and condition.get("status") == "True"

    def set_summary(self, *types: str) -> None:
        """Derive `Ready` from the given conditions.

        The first false condition lends its reason, severity and message.
        Nothing is written until at least one of them is set.
        """
        present = [c for c in (self.get(t) for t in types) if c is not None]
        if not present:
            return
        for condition in present:
            if condition.get("status") != "True":
                self.mark_false(
                    self.READY,
                    condition.get("reason"),
                    condition.get("severity"),
                    condition.get("message"),
                )
                return
        self.mark_true(self.READY)

    def as_list(self) -> List[Dict]:
        return [dict(c) for c in self._conditions]
