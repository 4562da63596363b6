import json
import logging
import kopf
import pytest
from kubernetes_asyncio.client import ApiException
from edgex.utils.errors import (
    already_exists_error,
    conflict_error,
    convert_api_exception,
    not_found_error,
    retry_on_conflict,
)


def api_error(status, reason=None, message=None):
    ex = ApiException(status=status, reason=reason)
    if reason or message:
        ex.body = json.dumps({"reason": reason, "message": message})
    return ex


def test_error_classification():
    assert already_exists_error(api_error(409, "AlreadyExists"))
    assert not already_exists_error(api_error(409, "Conflict"))
    assert conflict_error(api_error(409, "Conflict"))
    assert not_found_error(api_error(404, "NotFound"))
    assert not not_found_error(ValueError("404"))


@pytest.mark.asyncio
async def test_retry_on_conflict_reruns_until_success():
    calls = []

    async def update():
        calls.append(1)
        if len(calls) < 3:
            raise api_error(409, "Conflict")
        return "done"

    assert await retry_on_conflict(update, retries=3, backoff=0) == "done"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_retry_on_conflict_rereads_after_lost_create_race(caplog):
    calls = []

    async def create():
        calls.append(1)
        if len(calls) == 1:
            raise api_error(409, "AlreadyExists")
        return "joined"

    with caplog.at_level(logging.DEBUG, logger="edgex.utils.errors"):
        assert await retry_on_conflict(create, retries=3, backoff=0, description="x") == "joined"

    assert len(calls) == 2
    assert "Lost create race for x" in caplog.text


@pytest.mark.asyncio
async def test_retry_on_conflict_gives_up():
    calls = []

    async def update():
        calls.append(1)
        raise api_error(409, "Conflict")

    with pytest.raises(ApiException) as exc:
        await retry_on_conflict(update, retries=2, backoff=0)
    assert exc.value.status == 409
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_retry_on_conflict_raises_other_errors_at_once():
    calls = []

    async def update():
        calls.append(1)
        raise api_error(500, "InternalError")

    with pytest.raises(ApiException):
        await retry_on_conflict(update, retries=5, backoff=0)
    assert len(calls) == 1


@pytest.mark.parametrize(
    "status,expected",
    [
        (400, kopf.PermanentError),
        (404, kopf.PermanentError),
        (409, kopf.TemporaryError),
        (429, kopf.TemporaryError),
        (500, kopf.TemporaryError),
    ],
)
def test_convert_api_exception(status, expected):
    with pytest.raises(expected):
        convert_api_exception(api_error(status, "Reason", "details"))


def test_convert_api_exception_carries_message():
    with pytest.raises(kopf.TemporaryError) as exc:
        convert_api_exception(api_error(503, "ServiceUnavailable", "etcd is down"))
    assert "etcd is down" in str(exc.value)


def test_convert_api_exception_can_be_forced():
    with pytest.raises(kopf.TemporaryError):
        convert_api_exception(api_error(404), permanent=False)
