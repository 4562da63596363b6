from edgex.handlers import probes, edgex

__all__ = ["probes", "edgex"]
