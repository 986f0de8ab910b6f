"""Configuration management for the user-management handler."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

DEFAULT_TABLE_NAME = "UserTable"
DEFAULT_REGION = "eu-west-1"


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _resolve_path(raw: str, base_path: Path | None) -> Path:
    candidate = Path(raw).expanduser()
    if candidate.is_absolute() or base_path is None:
        return candidate.resolve(strict=False)
    return (base_path / candidate).resolve(strict=False)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path of the SQLite file backing the user table."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (_project_root() / "data" / "usermgmt.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (_project_root() / "config" / "usermgmt.yaml").resolve(strict=False)


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, built once at start-up and passed to each component."""

    database_path: Path
    service_name: str = "usermgmt"
    table_name: str = DEFAULT_TABLE_NAME
    region: str = DEFAULT_REGION
    transport_wrapped: bool = True
    cors_allow_origin: str = "*"
    store_timeout: float = 5.0

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""
        raw_db_path = data.get("database_path")
        if raw_db_path:
            database_path = _resolve_path(str(raw_db_path), base_path)
        else:
            database_path = resolve_database_path(None)

        table_name = str(data.get("table_name") or DEFAULT_TABLE_NAME).strip()
        if not table_name:
            raise ValueError("table_name must not be empty")

        try:
            store_timeout = float(data.get("store_timeout", 5.0))  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid store_timeout value {data.get('store_timeout')!r}") from exc
        if store_timeout <= 0:
            raise ValueError("store_timeout must be positive")

        transport_wrapped = data.get("transport_wrapped", True)
        if isinstance(transport_wrapped, str):
            transport_wrapped = _env_bool(transport_wrapped, True)

        return Settings(
            database_path=database_path,
            service_name=str(data.get("service_name") or "usermgmt"),
            table_name=table_name,
            region=str(data.get("region") or DEFAULT_REGION),
            transport_wrapped=bool(transport_wrapped),
            cors_allow_origin=str(data.get("cors_allow_origin") or "*"),
            store_timeout=store_timeout,
        )


def _apply_environment(settings: Settings, environ: Mapping[str, str]) -> Settings:
    overrides: Dict[str, object] = {}

    table_name = environ.get("STORAGE_USERTABLE_NAME", "").strip()
    if table_name:
        overrides["table_name"] = table_name
    region = environ.get("AWS_REGION", "").strip()
    if region:
        overrides["region"] = region
    db_path = environ.get("USERMGMT_DB_PATH", "").strip()
    if db_path:
        overrides["database_path"] = resolve_database_path(db_path)
    if "USERMGMT_TRANSPORT_WRAPPED" in environ:
        overrides["transport_wrapped"] = _env_bool(environ["USERMGMT_TRANSPORT_WRAPPED"], True)
    origin = environ.get("USERMGMT_CORS_ORIGIN", "").strip()
    if origin:
        overrides["cors_allow_origin"] = origin
    timeout = environ.get("USERMGMT_STORE_TIMEOUT", "").strip()
    if timeout:
        try:
            overrides["store_timeout"] = float(timeout)
        except ValueError as exc:
            raise ValueError(f"Invalid USERMGMT_STORE_TIMEOUT value {timeout!r}") from exc
        if overrides["store_timeout"] <= 0:  # type: ignore[operator]
            raise ValueError("USERMGMT_STORE_TIMEOUT must be positive")

    if not overrides:
        return settings
    return replace(settings, **overrides)


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, then apply environment overrides."""

    if environ is None:
        environ = os.environ

    raw: Mapping[str, object] = {}
    base_path: Path | None = None
    if config_path is not None and config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        section = loaded.get("usermgmt", loaded)
        if not isinstance(section, dict):
            raise ValueError("The 'usermgmt' configuration section must be a mapping")
        raw = section
        base_path = config_path.parent

    return _apply_environment(Settings.from_dict(raw, base_path=base_path), environ)


__all__ = [
    "DEFAULT_REGION",
    "DEFAULT_TABLE_NAME",
    "Settings",
    "load_settings",
    "resolve_config_path",
    "resolve_database_path",
]
