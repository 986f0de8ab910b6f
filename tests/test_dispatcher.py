from __future__ import annotations

import base64
import json
import re
import sys
from pathlib import Path
from typing import Any, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from usermgmt.dispatcher import RequestDispatcher  # noqa: E402
from usermgmt.service import UserService  # noqa: E402
from usermgmt.store import StoreError, UserStore  # noqa: E402

ID_PATTERN = re.compile(r"^user_\d+_[0-9a-f]{8}$")


class ExplodingService:
    """Service double that must never be reached or that fails unexpectedly."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or AssertionError("service should not be called")
        self.calls = 0

    def create_user(self, data: Any) -> Any:
        self.calls += 1
        raise self.error

    def get_user_by_id(self, user_id: Any) -> Any:
        self.calls += 1
        raise self.error


@pytest.fixture()
def store(tmp_path: Path) -> UserStore:
    user_store = UserStore(tmp_path / "users.sqlite3")
    user_store.initialize()
    return user_store


@pytest.fixture()
def dispatcher(store: UserStore) -> RequestDispatcher:
    return RequestDispatcher(UserService(store))


def _body(envelope: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(envelope["body"])


def test_add_user_returns_created_user(dispatcher: RequestDispatcher) -> None:
    envelope = dispatcher.handle(
        {"action": "add_user", "data": {"name": "A", "email": "a@b.com"}}
    )

    assert envelope["statusCode"] == 200
    body = _body(envelope)
    assert body["success"] is True
    assert ID_PATTERN.match(body["data"]["id"])
    assert body["data"]["email"] == "a@b.com"
    assert body["data"]["phone"] is None
    assert body["data"]["createdAt"] == body["data"]["updatedAt"]


def test_get_user_returns_stored_user(dispatcher: RequestDispatcher) -> None:
    created = _body(
        dispatcher.handle({"action": "add_user", "data": {"name": "Macron", "email": "macron@brigitte.com"}})
    )["data"]

    envelope = dispatcher.handle({"action": "get_user", "userId": created["id"]})

    assert envelope["statusCode"] == 200
    assert _body(envelope) == {"success": True, "data": created}


def test_get_user_for_unknown_id_returns_null(dispatcher: RequestDispatcher) -> None:
    envelope = dispatcher.handle({"action": "get_user", "userId": "user_0_00000000"})

    assert envelope["statusCode"] == 200
    assert _body(envelope) == {"success": True, "data": None}


def test_missing_action_is_client_error(dispatcher: RequestDispatcher) -> None:
    envelope = dispatcher.handle({"data": {"name": "A", "email": "a@b.com"}})

    assert envelope["statusCode"] == 400
    assert _body(envelope) == {"success": False, "error": "Action is required"}


def test_unknown_action_is_client_error() -> None:
    service = ExplodingService()
    dispatcher = RequestDispatcher(service)  # type: ignore[arg-type]

    envelope = dispatcher.handle({"action": "bogus"})

    assert envelope["statusCode"] == 400
    assert _body(envelope) == {"success": False, "error": "Unknown action: bogus"}
    assert service.calls == 0


def test_service_errors_are_reported_as_internal_errors(dispatcher: RequestDispatcher) -> None:
    missing = dispatcher.handle({"action": "add_user", "data": {"name": "A"}})
    assert missing["statusCode"] == 500
    assert missing["headers"] == {"Content-Type": "application/json", "Access-Control-Allow-Origin": "*"}
    assert _body(missing) == {"success": False, "error": "Name and email are required"}

    invalid = dispatcher.handle({"action": "add_user", "data": {"name": "A", "email": "nope"}})
    assert invalid["statusCode"] == 500
    assert _body(invalid)["error"] == "Invalid email format"

    dispatcher.handle({"action": "add_user", "data": {"name": "A", "email": "a@b.com"}})
    duplicate = dispatcher.handle({"action": "add_user", "data": {"name": "B", "email": "A@B.com"}})
    assert duplicate["statusCode"] == 500
    assert _body(duplicate) == {"success": False, "error": "User with this email already exists"}

    no_id = dispatcher.handle({"action": "get_user"})
    assert no_id["statusCode"] == 500
    assert _body(no_id) == {"success": False, "error": "User ID is required"}


def test_wrongly_typed_payload_is_rejected(dispatcher: RequestDispatcher) -> None:
    envelope = dispatcher.handle({"action": "add_user", "data": "name=A"})

    assert envelope["statusCode"] == 400
    body = _body(envelope)
    assert body["success"] is False
    assert body["error"].startswith("Invalid request payload: data")


def test_store_failure_maps_to_internal_error() -> None:
    service = ExplodingService(StoreError("DynamoDB error"))
    dispatcher = RequestDispatcher(service)  # type: ignore[arg-type]

    envelope = dispatcher.handle({"action": "get_user", "userId": "user_1_aaaaaaaa"})

    assert envelope["statusCode"] == 500
    assert _body(envelope) == {"success": False, "error": "DynamoDB error"}
    assert envelope["headers"] == {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": "*",
    }


def test_unexpected_error_without_message_uses_generic_text() -> None:
    dispatcher = RequestDispatcher(ExplodingService(RuntimeError()))  # type: ignore[arg-type]

    envelope = dispatcher.handle({"action": "add_user", "data": {"name": "A", "email": "a@b.com"}})

    assert envelope["statusCode"] == 500
    assert _body(envelope)["error"] == "Internal server error"


def test_options_preflight_short_circuits() -> None:
    service = ExplodingService()
    dispatcher = RequestDispatcher(service, cors_allow_origin="https://app.example.com")  # type: ignore[arg-type]

    envelope = dispatcher.handle({"httpMethod": "OPTIONS"})

    assert envelope["statusCode"] == 200
    assert _body(envelope) == {"message": "CORS preflight"}
    assert envelope["headers"]["Access-Control-Allow-Origin"] == "https://app.example.com"
    assert envelope["headers"]["Access-Control-Allow-Methods"] == "POST, GET, OPTIONS"
    assert service.calls == 0


def test_transport_envelope_with_string_body(dispatcher: RequestDispatcher) -> None:
    event = {
        "httpMethod": "POST",
        "body": json.dumps({"action": "add_user", "data": {"name": "A", "email": "a@b.com"}}),
    }

    envelope = dispatcher.handle(event)

    assert envelope["statusCode"] == 200
    assert _body(envelope)["data"]["name"] == "A"


def test_transport_envelope_with_base64_body(dispatcher: RequestDispatcher) -> None:
    raw = json.dumps({"action": "get_user", "userId": "user_0_00000000"}).encode("utf-8")
    event = {"httpMethod": "POST", "isBase64Encoded": True, "body": base64.b64encode(raw).decode("ascii")}

    envelope = dispatcher.handle(event)

    assert envelope["statusCode"] == 200
    assert _body(envelope) == {"success": True, "data": None}


@pytest.mark.parametrize("body", ["{not json", "[1, 2]", "42"])
def test_body_that_is_not_a_json_object_is_rejected(dispatcher: RequestDispatcher, body: str) -> None:
    envelope = dispatcher.handle({"httpMethod": "POST", "body": body})

    assert envelope["statusCode"] == 400
    assert _body(envelope) == {"success": False, "error": "Request body must be a JSON object"}


def test_bare_mode_has_no_cors_and_no_preflight(dispatcher: RequestDispatcher, store: UserStore) -> None:
    bare = RequestDispatcher(UserService(store), transport_wrapped=False)

    envelope = bare.handle({"httpMethod": "OPTIONS"})

    assert envelope["statusCode"] == 400
    assert envelope["headers"] == {"Content-Type": "application/json"}
    assert _body(envelope)["error"] == "Action is required"


def test_dispatch_exposes_structured_response(dispatcher: RequestDispatcher) -> None:
    response = dispatcher.dispatch({"action": "get_user", "userId": "user_0_00000000"})

    assert response.status_code == 200
    assert response.body == {"success": True, "data": None}
    assert response.headers["Content-Type"] == "application/json"
