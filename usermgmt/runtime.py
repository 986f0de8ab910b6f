"""Entry point for event-driven runtimes that invoke ``handler(event, context)``."""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from .dispatcher import RequestDispatcher, internal_error_response

logger = logging.getLogger("usermgmt.runtime")

_dispatcher: Optional[RequestDispatcher] = None
_lock = threading.Lock()


def get_dispatcher() -> RequestDispatcher:
    """Return the process-wide dispatcher, building it from configuration on first use."""

    global _dispatcher
    if _dispatcher is None:
        with _lock:
            if _dispatcher is None:
                from .application import build_dispatcher, load_default_settings

                settings = load_default_settings()
                logger.info("Using table %s in %s", settings.table_name, settings.region)
                _dispatcher = build_dispatcher(settings)
    return _dispatcher


def set_dispatcher(dispatcher: Optional[RequestDispatcher]) -> None:
    """Install ``dispatcher`` for subsequent invocations; ``None`` forces a rebuild."""

    global _dispatcher
    with _lock:
        _dispatcher = dispatcher


def handler(event: Any, context: Any = None) -> Dict[str, Any]:
    try:
        dispatcher = get_dispatcher()
    except Exception as exc:
        logger.exception("Failed to build the request dispatcher")
        return internal_error_response(exc).to_envelope()
    return dispatcher.handle(event)


__all__ = ["get_dispatcher", "handler", "set_dispatcher"]
