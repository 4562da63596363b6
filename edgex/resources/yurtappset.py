import copy
from typing import Dict, List, Optional
from benedict import benedict
from edgex.common.models.labels import Labels


class YurtAppSet:
    """OpenYurt multi-pool workload, wrapped around its wire form.

    The workload template is written once at creation. Afterwards only the
    topology pools and the owner references change, and each EdgeX touches
    nothing but the pool entry of its own node pool.
    """

    GROUP_NAME = "apps.openyurt.io"
    GROUP_VERSION = "v1alpha1"
    API_VERSION = f"{GROUP_NAME}/{GROUP_VERSION}"
    KIND = "YurtAppSet"
    PLURAL_NAME = "yurtappsets"
    NODEPOOL_LABEL = "apps.openyurt.io/nodepool"
    DEFAULT_POOL_REPLICAS = 1

    body: Dict

    def __init__(self, body: Dict) -> None:
        self.body = body

    @classmethod
    def prepare(
        cls,
        name: str,
        namespace: str,
        deployment: Dict,
        pool_name: str,
        labels: Labels,
        owner_reference: Dict,
    ) -> "YurtAppSet":
        """A new workload running `deployment` in `pool_name` only."""
        return YurtAppSet(
            {
                "apiVersion": cls.API_VERSION,
                "kind": cls.KIND,
                "metadata": {
                    "name": name,
                    "namespace": namespace,
                    "labels": labels.as_dict(),
                    "ownerReferences": [dict(owner_reference)],
                },
                "spec": {
                    "selector": {"matchLabels": {Labels.APP_LABEL: name}},
                    "workloadTemplate": {
                        "deploymentTemplate": {
                            "metadata": {"labels": {Labels.APP_LABEL: name}},
                            "spec": copy.deepcopy(deployment),
                        }
                    },
                    "topology": {"pools": [cls.prepare_pool(pool_name)]},
                },
            }
        )

    @classmethod
    def prepare_pool(cls, pool_name: str, replicas: int = None) -> Dict:
        return {
            "name": pool_name,
            "replicas": replicas if replicas is not None else cls.DEFAULT_POOL_REPLICAS,
            "nodeSelectorTerm": {
                "matchExpressions": [
                    {
                        "key": cls.NODEPOOL_LABEL,
                        "operator": "In",
                        "values": [pool_name],
                    }
                ]
            },
        }

    @property
    def name(self) -> str:
        return (self.body.get("metadata") or {}).get("name")

    @property
    def pools(self) -> List[Dict]:
        spec = self.body.setdefault("spec", {})
        topology = spec.get("topology")
        if topology is None:
            topology = spec["topology"] = {}
        if topology.get("pools") is None:
            topology["pools"] = []
        return topology["pools"]

    @property
    def status(self) -> benedict:
        # pool names may contain dots, so keypaths stay disabled
        return benedict(self.body.get("status") or {}, keypath_separator=None)

    def find_pool(self, pool_name: str) -> Optional[Dict]:
        for pool in self.pools:
            if pool.get("name") == pool_name:
                return pool
        return None

    def has_pool(self, pool_name: str) -> bool:
        return self.find_pool(pool_name) is not None

    def add_pool(self, pool_name: str) -> bool:
        """Append a pool entry unless one exists. Returns True if added."""
        if self.has_pool(pool_name):
            return False
        self.pools.append(self.prepare_pool(pool_name))
        return True

    def remove_pool(self, pool_name: str) -> bool:
        """Drop the entry of `pool_name`, leaving the others in place."""
        pools = self.pools
        kept = [pool for pool in pools if pool.get("name") != pool_name]
        if len(kept) == len(pools):
            return False
        pools[:] = kept
        return True

    def pool_target_replicas(self, pool_name: str) -> Optional[int]:
        pool = self.find_pool(pool_name)
        if pool is None:
            return None
        replicas = pool.get("replicas")
        return self.DEFAULT_POOL_REPLICAS if replicas is None else int(replicas)

    def pool_ready(self, pool_name: str) -> bool:
        """True when the workload controller reports the pool fully ready.

        Per-pool ready counts are used when reported. Otherwise the pool has
        to be listed in ``status.poolReplicas`` and the object-wide ready
        count has to match the object-wide replica count.
        """
        target = self.pool_target_replicas(pool_name)
        if target is None:
            return False
        status = self.status
        per_pool_ready = status.get("poolReadyReplicas") or {}
        if pool_name in per_pool_ready:
            return int(per_pool_ready[pool_name] or 0) == target
        if pool_name not in (status.get("poolReplicas") or {}):
            return False
        return int(status.get("readyReplicas") or 0) == int(status.get("replicas") or 0)
