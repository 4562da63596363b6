import os
from typing import Any

_TRUE, _FALSE = {"True", "true", "yes", "1"}, {"False", "false", "no", "0"}


def _getenv(name: str, *default: Any) -> Any:
    try:
        v = os.environ[name]
        if v in _TRUE:
            return True
        elif v in _FALSE:
            return False
        else:
            return v
    except KeyError:
        pass
    if default:
        return default[0]
    raise KeyError(name)


# ------------------------------------------------
# ---- Defaults and environment variables ----
# ------------------------------------------------

#: Seconds to wait before re-checking an EdgeX whose components are still rolling out
REQUEUE_DELAY_SECONDS = float(_getenv("REQUEUE_DELAY_SECONDS", 10.0))

#: Seconds between periodic full reconciliations of every EdgeX
RESYNC_INTERVAL_SECONDS = float(_getenv("RESYNC_INTERVAL_SECONDS", 30.0))

#: Deadline in seconds for a single reconciliation pass
RECONCILE_TIMEOUT_SECONDS = float(_getenv("RECONCILE_TIMEOUT_SECONDS", 60.0))

#: Attempts made for a read-modify-write before a version conflict is surfaced
CONFLICT_RETRIES = int(_getenv("CONFLICT_RETRIES", 5))

#: Base delay in seconds between conflict retries, grows linearly per attempt
CONFLICT_RETRY_BACKOFF_SECONDS = float(_getenv("CONFLICT_RETRY_BACKOFF_SECONDS", 0.2))

#: Maximum number of EdgeX objects reconciled concurrently
WORKER_LIMIT = int(_getenv("WORKER_LIMIT", 4))

#: Directory holding config.yaml and config-nosecty.yaml; packaged catalog when unset
CATALOG_DIR = _getenv("CATALOG_DIR", None)


class Settings:
    """Operator settings"""

    requeue_delay_seconds: float = REQUEUE_DELAY_SECONDS
    resync_interval_seconds: float = RESYNC_INTERVAL_SECONDS
    reconcile_timeout_seconds: float = RECONCILE_TIMEOUT_SECONDS
    conflict_retries: int = CONFLICT_RETRIES
    conflict_retry_backoff_seconds: float = CONFLICT_RETRY_BACKOFF_SECONDS
    worker_limit: int = WORKER_LIMIT
    catalog_dir: str = CATALOG_DIR

    def __init__(
        self,
        *args,
        requeue_delay_seconds: float = None,
        resync_interval_seconds: float = None,
        reconcile_timeout_seconds: float = None,
        conflict_retries: int = None,
        conflict_retry_backoff_seconds: float = None,
        worker_limit: int = None,
        catalog_dir: str = None,
        **kwargs,
    ):
        if requeue_delay_seconds is not None:
            self.requeue_delay_seconds = requeue_delay_seconds

        if resync_interval_seconds is not None:
            self.resync_interval_seconds = resync_interval_seconds

        if reconcile_timeout_seconds is not None:
            self.reconcile_timeout_seconds = reconcile_timeout_seconds

        if conflict_retries is not None:
            self.conflict_retries = conflict_retries

        if conflict_retry_backoff_seconds is not None:
            self.conflict_retry_backoff_seconds = conflict_retry_backoff_seconds

        if worker_limit is not None:
            self.worker_limit = worker_limit

        if catalog_dir is not None:
            self.catalog_dir = catalog_dir
