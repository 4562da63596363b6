import json
import asyncio
import logging
import kopf
import kubernetes_asyncio
from typing import Any, Awaitable, Callable, Dict, TypeVar

_ALREADY_EXISTS = "alreadyexists"
_NOT_FOUND = "notfound"
_CONFLICT = "conflict"

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DecodeError(Exception):
    """Stored extension data on an EdgeX could not be decoded.

    No retry fixes this; the descriptor itself has to be corrected.
    """

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to decode `{source}`: {reason}")


def _error_body(ex: kubernetes_asyncio.client.ApiException) -> Dict[str, Any]:
    if not ex.body:
        return {}
    try:
        body = json.loads(ex.body)
    except (json.JSONDecodeError, TypeError):
        return {}
    return body if isinstance(body, dict) else {}


def _reason(ex: kubernetes_asyncio.client.ApiException) -> str:
    return str(_error_body(ex).get("reason") or ex.reason or "").lower()


def already_exists_error(ex: Exception) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409 and _reason(ex) == _ALREADY_EXISTS


def not_found_error(ex: Exception) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 404 or _reason(ex) == _NOT_FOUND


def conflict_error(ex: Exception) -> bool:
    """Optimistic concurrency failure: stale resourceVersion or a racing create."""
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409


async def retry_on_conflict(
    fn: Callable[[], Awaitable[T]],
    retries: int = 5,
    backoff: float = 0.2,
    description: str = None,
) -> T:
    """Run a read-modify-write coroutine until it stops hitting conflicts.

    `fn` must re-read the object it mutates on every call, so each attempt
    works on a fresh copy. Non-conflict errors are raised immediately; the
    last conflict is raised once `retries` attempts are exhausted.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except kubernetes_asyncio.client.ApiException as ex:
            if not conflict_error(ex) or attempt >= retries:
                raise
            what = "Lost create race for" if already_exists_error(ex) else "Conflict while updating"
            logger.debug(
                f"{what} {description or 'object'} "
                f"(attempt {attempt}/{retries}), retrying with a fresh read."
            )
            await asyncio.sleep(backoff * attempt)


def convert_api_exception(
    ex: kubernetes_asyncio.client.ApiException, permanent: bool = None
):
    """
    Convert kubernetes ApiException to a Kopf-friendly exception.

    Args:
        ex: The ApiException to convert
        permanent: If True, raises PermanentError (won't retry). If False, raises TemporaryError (will retry).
                   If None, automatically determines based on status code.

    Raises:
        kopf.TemporaryError or kopf.PermanentError with serializable error details
    """
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        raise ex

    error_msg = f"Kubernetes API error ({ex.status}): {ex.reason}"
    message = _error_body(ex).get("message")
    if message:
        error_msg = f"{error_msg} - {message}"

    # 4xx errors are permanent, except timeouts, throttling and conflicts
    if permanent is None:
        is_permanent = (
            ex.status is not None
            and 400 <= ex.status < 500
            and ex.status not in (408, 409, 429)
        )
    else:
        is_permanent = permanent

    if is_permanent:
        raise kopf.PermanentError(error_msg)
    else:
        raise kopf.TemporaryError(error_msg, delay=30)
