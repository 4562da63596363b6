from typing import Mapping, NamedTuple, Optional, Sequence
from edgex.types.models.component import Component
from edgex.resources.yurtappset import YurtAppSet


class Readiness(NamedTuple):
    ready: int
    unready: int
    config_available: bool
    components_available: bool


def component_ready(
    component: Component, workload: Optional[YurtAppSet], pool_name: str
) -> bool:
    """A component without a workload is ready as soon as it is materialized."""
    if not component.has_workload:
        return True
    if workload is None:
        return False
    return workload.pool_ready(pool_name)


def aggregate(
    components: Sequence[Component],
    workloads: Mapping[str, YurtAppSet],
    pool_name: str,
    config_available: bool = True,
) -> Readiness:
    """Count ready components against the live workloads of `pool_name`.

    Every entry of `components` is counted, duplicates included, so
    ``ready + unready == len(components)``.
    """
    ready = sum(
        1
        for component in components
        if component_ready(component, workloads.get(component.name), pool_name)
    )
    return Readiness(
        ready=ready,
        unready=len(components) - ready,
        config_available=config_available,
        components_available=ready == len(components),
    )
