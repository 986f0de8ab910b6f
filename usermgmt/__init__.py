"""User-management request handler backed by a key-value table."""

from __future__ import annotations

from typing import Any

from .config import Settings, load_settings
from .models import User
from .store import AlreadyExists, StoreError, UserStore


def create_application(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


def handler(event: Any, context: Any = None):
    """Serverless entry point; see :mod:`usermgmt.runtime`."""

    from .runtime import handler as _handler

    return _handler(event, context)


__all__ = [
    "AlreadyExists",
    "Settings",
    "StoreError",
    "User",
    "UserStore",
    "create_application",
    "handler",
    "load_settings",
]
