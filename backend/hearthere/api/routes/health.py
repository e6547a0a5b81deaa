"""Health check endpoints.

- /health: liveness, always 200
- /healthz: checks Redis connectivity; 503 when it is configured but unreachable
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError

from backend.hearthere.api.deps import get_redis_client

router = APIRouter()


async def check_redis(client: Redis | None) -> tuple[bool, str]:
    """Check Redis connectivity.

    Returns:
        (is_ok, status_message)
    """
    if client is None:
        return (True, "not_configured")

    try:
        await client.ping()
        return (True, "ok")
    except (RedisError, OSError) as e:
        return (False, f"error: {type(e).__name__}")


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s."""
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(
    client: Annotated[Redis | None, Depends(get_redis_client)],
) -> dict[str, Any] | JSONResponse:
    """Component health; 503 if the cache store is down."""
    redis_ok, redis_status = await check_redis(client)

    body = {
        "status": "ok" if redis_ok else "degraded",
        "components": {"redis": redis_status},
    }
    if not redis_ok:
        return JSONResponse(content=body, status_code=503)
    return body
