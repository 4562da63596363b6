from typing import Dict


class ResourceLabels:
    EDGEX_DOMAIN: str = "www.edgexfoundry.org/"

    #: Generation marker carried by every child the operator creates
    EDGEX_GENERATE_LABEL = EDGEX_DOMAIN + "generate"

    GENERATED_CONFIG_MAP = "Configmap"

    GENERATED_SERVICE = "Service"

    GENERATED_DEPLOYMENT = "Deployment"

    APP_LABEL = "app"


class Labels(ResourceLabels):
    KUBERNETES_DOMAIN = "app.kubernetes.io/"

    KUBERNETES_PART_OF_LABEL = KUBERNETES_DOMAIN + "part-of"

    KUBERNETES_MANAGED_BY_LABEL = KUBERNETES_DOMAIN + "managed-by"

    APPLICATION_NAME = "edgex"

    _labels: Dict[str, str]

    def __init__(self, labels: Dict[str, str] = None) -> None:
        self._labels = dict(labels) if labels else dict()

    def update(self, labels: Dict[str, str]) -> "Labels":
        self._labels.update(labels.copy())
        return self

    def as_dict(self) -> Dict[str, str]:
        """Return labels as dictionary."""
        return self._labels.copy()

    def as_str(self):
        """Return labels as comma separated string."""
        return ",".join([f"{k}={v}" for k, v in self._labels.items()])

    def include(self, label: str, value: str) -> "Labels":
        self.update({label: value})
        return self

    def include_generated(self, kind: str) -> "Labels":
        return self.include(self.EDGEX_GENERATE_LABEL, kind)

    def include_app(self, name: str) -> "Labels":
        return self.include(self.APP_LABEL, name)

    def include_kubernetes_part_of(self) -> "Labels":
        return self.include(self.KUBERNETES_PART_OF_LABEL, self.APPLICATION_NAME)

    def include_kubernetes_managed_by(self, operator_name: str) -> "Labels":
        return self.include(self.KUBERNETES_MANAGED_BY_LABEL, operator_name)

    def contains(self, other: "Labels"):
        """Returns True if all labels in `other` are contained."""
        return all(
            key in self._labels and self._labels[key] == value
            for key, value in other.as_dict().items()
        )

    def __str__(self):
        return f"Labels<{self._labels}>"

    @classmethod
    def empty(cls) -> "Labels":
        return Labels({})

    @classmethod
    def generated(cls, kind: str) -> "Labels":
        """Selector matching every child of one generated kind."""
        return Labels().include_generated(kind)

    @classmethod
    def generate_default_labels(cls, kind: str, managed_by: str) -> "Labels":
        return (
            Labels()
            .include_generated(kind)
            .include_kubernetes_part_of()
            .include_kubernetes_managed_by(managed_by)
        )
