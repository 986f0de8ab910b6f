"""FastAPI adapter that feeds HTTP requests to the :class:`RequestDispatcher`."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import anyio
from fastapi import FastAPI, Request, Response

from .dispatcher import RequestDispatcher

logger = logging.getLogger("usermgmt.api")


def _to_http_response(envelope: Dict[str, Any]) -> Response:
    return Response(
        content=envelope["body"],
        status_code=int(envelope["statusCode"]),
        headers=dict(envelope.get("headers") or {}),
    )


def create_app(
    *,
    dispatcher: RequestDispatcher,
    service_name: str = "usermgmt",
    table_name: Optional[str] = None,
) -> FastAPI:
    """Create the HTTP application around an already configured dispatcher."""

    app = FastAPI(
        title="User Management",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.dispatcher = dispatcher

    async def _dispatch(event: Dict[str, Any]) -> Response:
        # Store calls block, so keep them off the event loop.
        envelope = await anyio.to_thread.run_sync(dispatcher.handle, event)
        return _to_http_response(envelope)

    async def forward_request(request: Request) -> Response:
        raw = await request.body()
        event: Dict[str, Any] = {
            "httpMethod": request.method,
            "path": request.url.path,
            "body": raw.decode("utf-8", errors="replace") if raw else None,
        }
        return await _dispatch(event)

    app.add_api_route("/", forward_request, methods=["POST", "OPTIONS"], include_in_schema=False)
    app.add_api_route("/users", forward_request, methods=["POST", "OPTIONS"], include_in_schema=False)

    @app.get("/users/{user_id}")
    async def get_user(user_id: str) -> Response:
        return await _dispatch({"httpMethod": "GET", "action": "get_user", "userId": user_id})

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "healthy", "service": service_name, "table": table_name}

    logger.debug("HTTP adapter ready for %s", service_name)
    return app


__all__ = ["create_app"]
