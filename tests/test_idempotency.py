import json
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from fridgemind.infra.idempotency import (
    idempotency_clear_key,
    idempotency_precheck,
    idempotency_store_result,
)


@pytest.fixture
def fake_redis():
    return FakeAsyncRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis_client(fake_redis):
    with patch("fridgemind.infra.idempotency.get_redis", return_value=fake_redis):
        yield


def make_request(key=None, body=b'{"servings_cooked": 2}'):
    req = AsyncMock(spec=Request)
    req.headers = {"Idempotency-Key": key} if key else {}
    req.method = "POST"
    req.url.path = "/api/recipes/r1/cook"
    req.body = AsyncMock(return_value=body)
    return req


@pytest.mark.asyncio
async def test_missing_header_passes_through():
    assert await idempotency_precheck(make_request(), workspace_id="ws1", route_key="cook") is None


@pytest.mark.asyncio
async def test_missing_header_rejected_when_required():
    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(make_request(), workspace_id="ws1", route_key="cook", required=True)
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_idempotency_flow(fake_redis):
    key = str(uuid.uuid4())
    req = make_request(key)

    ticket = await idempotency_precheck(req, workspace_id="ws1", route_key="cook")
    rkey, _ = ticket
    assert rkey == f"fridgemind:idemp:ws1:cook:{key}"
    assert json.loads(await fake_redis.get(rkey))["state"] == "processing"

    # Concurrent duplicate while the first is still running
    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(req, workspace_id="ws1", route_key="cook")
    assert exc.value.status_code == 409

    await idempotency_store_result(ticket, status=200, body={"times_cooked": 1})
    data = json.loads(await fake_redis.get(rkey))
    assert (data["state"], data["status"]) == ("done", 200)

    replay = await idempotency_precheck(req, workspace_id="ws1", route_key="cook")
    assert isinstance(replay, JSONResponse)
    assert json.loads(replay.body) == {"times_cooked": 1}


@pytest.mark.asyncio
async def test_key_reuse_with_other_payload(fake_redis):
    ticket = await idempotency_precheck(make_request("k"), workspace_id="ws1", route_key="cook")
    await idempotency_store_result(ticket, status=200, body={})

    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(make_request("k", b'{"servings_cooked": 4}'), workspace_id="ws1", route_key="cook")
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_keys_are_scoped_per_workspace():
    await idempotency_precheck(make_request("k"), workspace_id="ws1", route_key="cook")
    ticket = await idempotency_precheck(make_request("k"), workspace_id="ws2", route_key="cook")
    assert isinstance(ticket, tuple)


@pytest.mark.asyncio
async def test_clear_key_allows_retry(fake_redis):
    req = make_request("k")
    ticket = await idempotency_precheck(req, workspace_id="ws1", route_key="cook")
    await idempotency_clear_key(ticket)
    assert await fake_redis.get(ticket[0]) is None
    assert isinstance(await idempotency_precheck(req, workspace_id="ws1", route_key="cook"), tuple)
