"""Command-line interface for the user-management service."""

from __future__ import annotations
import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Sequence, TextIO

try:
    import httpx
except ImportError as exc:  # pragma: no cover - exercised in environments missing deps
    raise SystemExit(
        "The 'httpx' package is required. Execute `pip install -e .` to install dependencies."
    ) from exc

from usermgmt.config import Settings, load_settings, resolve_config_path
from usermgmt.store import StoreError, UserStore

logger = logging.getLogger("usermgmt.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User management service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: USERMGMT_CONFIG or config/usermgmt.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the user table if it does not exist")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP API (default: 8000)",
    )

    invoke_parser = subparsers.add_parser(
        "invoke", help="Dispatch a single JSON request event and print the response"
    )
    invoke_parser.add_argument(
        "event_file",
        nargs="?",
        default=None,
        help="File containing the JSON event (default: read from stdin)",
    )
    invoke_parser.add_argument(
        "--service-url",
        default=None,
        help="POST the event to a running service instead of dispatching it locally",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "invoke"}

    # Global options may precede the sub-command.
    index = 0
    while index < len(args_list):
        if args_list[index] == "--config":
            index += 2
        elif args_list[index].startswith("--config="):
            index += 1
        else:
            break
    head, rest = args_list[:index], args_list[index:]

    if not rest:
        rest = ["serve"]
    else:
        first = rest[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*head, *rest])
        if first not in known_commands:
            if any(flag in rest for flag in ("-h", "--help")):
                return parser.parse_args([*head, *rest])
            rest = ["serve", *rest]

    return parser.parse_args([*head, *rest])


def _load_settings(config: str | None) -> Settings:
    config_path = resolve_config_path(config or os.getenv("USERMGMT_CONFIG"))
    return load_settings(config_path)


def _initialise_store(settings: Settings) -> UserStore:
    store = UserStore.from_settings(settings)
    store.initialize()
    logger.info("Table %s initialised at %s", settings.table_name, settings.database_path)
    return store


def _serve(*, settings: Settings, host: str, port: int) -> None:
    from usermgmt.application import create_application
    import uvicorn

    logger.info("Starting user service on http://%s:%s", host, port)
    app = create_application(settings=settings)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _read_event(event_file: str | None, stdin: TextIO) -> Any:
    if event_file:
        text = Path(event_file).read_text(encoding="utf-8")
    else:
        text = stdin.read()
    try:
        return json.loads(text)
    except ValueError as exc:
        raise SystemExit(f"Event is not valid JSON: {exc}") from exc


def _post_event(service_url: str, event: Any) -> Dict[str, Any]:
    endpoint = service_url.rstrip("/") + "/"
    try:
        response = httpx.post(endpoint, json=event, timeout=10.0)
    except httpx.HTTPError as exc:
        raise SystemExit(f"Failed to contact user service: {exc}") from exc
    return {
        "statusCode": response.status_code,
        "headers": {"Content-Type": response.headers.get("content-type", "application/json")},
        "body": response.text,
    }


def _invoke(
    *,
    settings: Settings,
    event_file: str | None,
    service_url: str | None,
    stdin: TextIO = sys.stdin,
    stdout: TextIO = sys.stdout,
) -> int:
    event = _read_event(event_file, stdin)

    if service_url:
        envelope = _post_event(service_url, event)
    else:
        from usermgmt.application import build_dispatcher

        envelope = build_dispatcher(settings).handle(event)

    print(json.dumps(envelope, indent=2), file=stdout)
    return 0 if envelope["statusCode"] < 400 else 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = _load_settings(args.config)

    if args.command == "serve":
        _initialise_store(settings)
        _serve(settings=settings, host=args.host, port=args.port)
    elif args.command == "init-db":
        try:
            _initialise_store(settings)
        except StoreError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        print("Database initialisation complete.")
    elif args.command == "invoke":
        return _invoke(settings=settings, event_file=args.event_file, service_url=args.service_url)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
