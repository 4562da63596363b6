from .yurtappset import YurtAppSet
from .readiness import Readiness, aggregate
from .edgex import EdgeX

__all__ = ["EdgeX", "YurtAppSet", "Readiness", "aggregate"]
