"""Application factory wiring settings, store, service and dispatcher together."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from .api import create_app
from .config import Settings, load_settings, resolve_config_path
from .dispatcher import RequestDispatcher
from .service import UserService
from .store import UserStore


def load_default_settings() -> Settings:
    return load_settings(resolve_config_path(os.getenv("USERMGMT_CONFIG")))


def build_dispatcher(settings: Settings, *, store: Optional[UserStore] = None) -> RequestDispatcher:
    """Create a dispatcher over an initialised store for ``settings``."""

    if store is None:
        store = UserStore.from_settings(settings)
        store.initialize()
    service = UserService(store)
    return RequestDispatcher(
        service,
        transport_wrapped=settings.transport_wrapped,
        cors_allow_origin=settings.cors_allow_origin,
    )


def create_application(
    *,
    settings: Optional[Settings] = None,
    config_path: Optional[Path] = None,
) -> FastAPI:
    """Create the ASGI application."""

    if settings is None:
        if config_path is not None:
            settings = load_settings(config_path)
        else:
            settings = load_default_settings()

    dispatcher = build_dispatcher(settings)
    app = create_app(
        dispatcher=dispatcher,
        service_name=settings.service_name,
        table_name=settings.table_name,
    )
    app.state.settings = settings
    return app


__all__ = ["build_dispatcher", "create_application", "load_default_settings"]
