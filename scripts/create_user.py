import argparse
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from usermgmt.config import load_settings, resolve_config_path, resolve_database_path
from usermgmt.service import UserService, UserServiceError
from usermgmt.store import StoreError, UserStore


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a user record")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address")
    parser.add_argument("--phone", default=None, help="Optional phone number")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to USERMGMT_DB_PATH or data/usermgmt.sqlite3)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    settings = load_settings(resolve_config_path(os.getenv("USERMGMT_CONFIG")))
    db_path = resolve_database_path(args.db_path) if args.db_path else settings.database_path

    store = UserStore(db_path, table_name=settings.table_name, timeout=settings.store_timeout)
    service = UserService(store)

    try:
        store.initialize()
        user = service.create_user({"name": args.name, "email": args.email, "phone": args.phone})
    except (UserServiceError, StoreError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
