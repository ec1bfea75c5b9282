"""
Cache administration routes.

Each action maps to one CacheManager (or InvalidationSignal) method:

    GET    /cache-management?action=health|stats
    POST   /cache-management  {"action": "clear" | "invalidate" | ..., "pattern"?, "key"?}
    DELETE /cache-management
    POST   /admin/clear-landing-cache  {"since"?: ms}   (polled by clients)
"""

from collections.abc import Awaitable, Callable
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from storycache.invalidation import InvalidationSignal
from storycache.logger import get_logger
from storycache.manager import CacheManager

logger = get_logger(__name__)

SUPPORTED_ACTIONS = (
    "clear",
    "invalidate",
    "invalidate-stats",
    "invalidate-users",
    "invalidate-stories",
    "invalidate-engagement",
    "signal-clients",
)


class CacheActionRequest(BaseModel):
    action: str
    pattern: str | None = None
    key: str | None = None


class SignalCheckRequest(BaseModel):
    since: int | None = None


def _fail(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content)


def get_cache_manager(request: Request) -> CacheManager:
    """The manager built by the app lifespan."""
    return request.app.state.cache_manager


def get_invalidation_signal(request: Request) -> InvalidationSignal:
    return request.app.state.invalidation_signal


CacheManagerDep = Annotated[CacheManager, Depends(get_cache_manager)]
InvalidationSignalDep = Annotated[InvalidationSignal, Depends(get_invalidation_signal)]


def _family_invalidators(
    manager: CacheManager,
) -> dict[str, tuple[Callable[[], Awaitable[int]], str]]:
    return {
        "invalidate-stats": (manager.invalidate_stats, "Statistics cache invalidated successfully"),
        "invalidate-users": (manager.invalidate_users, "User cache invalidated successfully"),
        "invalidate-stories": (manager.invalidate_stories, "Story cache invalidated successfully"),
        "invalidate-engagement": (
            manager.invalidate_engagement,
            "Engagement cache invalidated successfully",
        ),
    }


def create_cache_router() -> APIRouter:
    """Build the admin router.

    Components are resolved per request from ``app.state``, so the router can
    be mounted once while each app lifespan installs fresh ones.
    """
    router = APIRouter(tags=["Cache"])

    @router.get("/cache-management")
    async def get_cache_info(manager: CacheManagerDep, action: str | None = None):
        """Cache health, statistics, or both with an endpoint index."""
        try:
            if action == "health":
                return {"success": True, "health": await manager.health_check()}
            if action == "stats":
                return {"success": True, "stats": (await manager.get_stats()).to_dict()}
            return {
                "success": True,
                "cache": {
                    "health": await manager.health_check(),
                    "stats": (await manager.get_stats()).to_dict(),
                    "endpoints": {
                        "health": "/cache-management?action=health",
                        "stats": "/cache-management?action=stats",
                        "clear": "POST /cache-management with action=clear",
                        "invalidate": "POST /cache-management with action=invalidate&pattern=*",
                    },
                },
            }
        except Exception as exc:
            logger.exception("cache_management_failed", action=action)
            return _fail(500, "Cache management operation failed", str(exc))

    @router.post("/cache-management")
    async def run_cache_action(
        request: CacheActionRequest,
        manager: CacheManagerDep,
        signal: InvalidationSignalDep,
    ):
        """Clear or invalidate the server cache."""
        action = request.action
        try:
            if action == "clear":
                await manager.clear()
                return {"success": True, "message": "All cache cleared successfully"}

            if action == "invalidate":
                if request.pattern:
                    removed = await manager.invalidate_pattern(request.pattern)
                    return {
                        "success": True,
                        "message": f"Cache pattern '{request.pattern}' invalidated successfully",
                        "removed": removed,
                    }
                if request.key:
                    await manager.invalidate(request.key)
                    return {
                        "success": True,
                        "message": f"Cache key '{request.key}' invalidated successfully",
                    }
                return _fail(400, "Either 'pattern' or 'key' must be provided for invalidation")

            named = _family_invalidators(manager)
            if action in named:
                invalidator, message = named[action]
                removed = await invalidator()
                return {"success": True, "message": message, "removed": removed}

            if action == "signal-clients":
                raised_at = await signal.raise_signal()
                return {
                    "success": True,
                    "message": "Client cache clear signal raised",
                    "raisedAt": raised_at,
                }

            return _fail(
                400, f"Invalid action. Supported actions: {', '.join(SUPPORTED_ACTIONS)}"
            )
        except Exception as exc:
            logger.exception("cache_management_failed", action=action)
            return _fail(500, "Cache management operation failed", str(exc))

    @router.delete("/cache-management")
    async def clear_cache(manager: CacheManagerDep):
        """Quick clear of the whole server cache."""
        try:
            await manager.clear()
        except Exception as exc:
            logger.exception("cache_management_failed", action="delete")
            return _fail(500, "Cache management operation failed", str(exc))
        return {"success": True, "message": "All cache cleared successfully"}

    @router.post("/admin/clear-landing-cache")
    async def check_client_invalidation(
        signal: InvalidationSignalDep,
        request: SignalCheckRequest | None = Body(default=None),
    ):
        """Tell polling clients whether they must clear their local cache."""
        since = request.since if request is not None else None
        try:
            return await signal.check(since)
        except Exception as exc:
            logger.exception("invalidation_check_failed")
            return _fail(500, "Failed to check cache invalidation", str(exc))

    return router
