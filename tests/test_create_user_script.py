from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts import create_user  # noqa: E402
from usermgmt.store import UserStore  # noqa: E402


def test_creates_user_and_rejects_duplicate(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("USERMGMT_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("STORAGE_USERTABLE_NAME", raising=False)
    db_path = tmp_path / "users.sqlite3"

    assert create_user.main(["Ada", "Ada@Example.com", "--phone", " 555 ", "--db", str(db_path)]) == 0
    out = capsys.readouterr().out
    assert "<ada@example.com>" in out

    stored = UserStore(db_path).get_by_email("ada@example.com")
    assert stored is not None
    assert stored.phone == "555"

    assert create_user.main(["Ada Again", "ada@example.com", "--db", str(db_path)]) == 1
    assert "already exists" in capsys.readouterr().err


def test_invalid_email_exits_with_error(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("USERMGMT_CONFIG", str(tmp_path / "absent.yaml"))

    assert create_user.main(["Ada", "not-an-email", "--db", str(tmp_path / "users.sqlite3")]) == 1
    assert "Invalid email format" in capsys.readouterr().err
