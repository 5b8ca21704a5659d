"""Replay-safe POST handling keyed by the Idempotency-Key header.

The first request with a key takes a short processing lock in Redis; the
finished response is stored for a day and replayed to retries. Reusing a
key with a different body is a conflict. Requests without the header are
not deduplicated.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from .redis_client import get_redis

logger = logging.getLogger("fridgemind.idempotency")

DONE_TTL_SEC = 60 * 60 * 24
PROCESSING_TTL_SEC = 60

IdempotencyTicket = tuple[str, str]


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _hash_request(method: str, path: str, body_bytes: bytes) -> str:
    h = hashlib.sha256()
    h.update(method.encode("utf-8"))
    h.update(b"|")
    h.update(path.encode("utf-8"))
    h.update(b"|")
    h.update(body_bytes or b"")
    return h.hexdigest()


def _idemp_redis_key(workspace_id: str, route_key: str, idem_key: str) -> str:
    return f"fridgemind:idemp:{workspace_id}:{route_key}:{idem_key}"


async def idempotency_precheck(
    request: Request, *, workspace_id: str, route_key: str, required: bool = False,
) -> Union[IdempotencyTicket, JSONResponse, None]:
    """Decide how to handle a possibly repeated request.

    Returns None when there is no key (and one is not required), a stored
    JSONResponse to replay, or a (redis_key, request_hash) ticket the
    handler hands back to idempotency_store_result when it is done.
    """
    idem_key = request.headers.get("Idempotency-Key")
    if not idem_key:
        if required:
            raise HTTPException(status_code=400, detail="Missing Idempotency-Key header")
        return None

    body_bytes = await request.body()
    req_hash = _hash_request(request.method, request.url.path, body_bytes)
    rkey = _idemp_redis_key(workspace_id, route_key, idem_key)

    try:
        r = await get_redis()
        raw = await r.get(rkey)
        if raw:
            data = json.loads(raw)
            if data.get("request_hash") and data["request_hash"] != req_hash:
                raise HTTPException(status_code=409, detail="Idempotency-Key reused with different request payload")
            if data.get("state") == "done":
                logger.info(f"Replaying stored response for {route_key} key={idem_key}")
                return JSONResponse(
                    content=data.get("body"),
                    status_code=int(data.get("status", 200)),
                    headers={"Idempotent-Replay": "true"},
                )
            raise HTTPException(status_code=409, detail="Request with this Idempotency-Key is still processing. Retry shortly.")

        processing_payload = {
            "state": "processing",
            "status": None,
            "body": None,
            "created_at": _iso_now(),
            "completed_at": None,
            "request_hash": req_hash,
        }
        ok = await r.set(rkey, json.dumps(processing_payload), ex=PROCESSING_TTL_SEC, nx=True)
    except RedisError as e:
        # No dedup store: serve the request rather than fail it
        logger.error(f"Idempotency store unavailable for {route_key}: {e}")
        return None

    if not ok:
        raise HTTPException(status_code=409, detail="Request with this Idempotency-Key is still processing. Retry shortly.")

    return (rkey, req_hash)


async def idempotency_store_result(ticket: Optional[IdempotencyTicket], *, status: int, body: dict) -> None:
    if ticket is None:
        return
    redis_key, req_hash = ticket
    payload = {
        "state": "done",
        "status": int(status),
        "body": body,
        "created_at": None,
        "completed_at": _iso_now(),
        "request_hash": req_hash,
    }
    try:
        r = await get_redis()
        await r.set(redis_key, json.dumps(payload), ex=DONE_TTL_SEC)
    except RedisError as e:
        logger.error(f"Failed to store idempotent result for {redis_key}: {e}")


async def idempotency_clear_key(ticket: Optional[IdempotencyTicket]) -> None:
    """Release the processing lock so the client may retry after an error."""
    if ticket is None:
        return
    try:
        r = await get_redis()
        await r.delete(ticket[0])
    except RedisError as e:
        logger.warning(f"Failed to clear idempotency key {ticket[0]}: {e}")
