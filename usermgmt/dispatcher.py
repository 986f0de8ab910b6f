"""Translate action-tagged request envelopes into :class:`UserService` calls."""
from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .service import UserService, UserServiceError

logger = logging.getLogger("usermgmt.dispatcher")

KNOWN_ACTIONS = ("add_user", "get_user")


class NewUserPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class AddUserRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: Literal["add_user"]
    data: Optional[NewUserPayload] = None


class GetUserRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    action: Literal["get_user"]
    user_id: Optional[str] = Field(default=None, alias="userId")


ActionRequest = Annotated[Union[AddUserRequest, GetUserRequest], Field(discriminator="action")]

_REQUEST_ADAPTER: TypeAdapter[Union[AddUserRequest, GetUserRequest]] = TypeAdapter(ActionRequest)


class MalformedRequest(ValueError):
    """Raised when the inbound envelope cannot be turned into a request."""


@dataclass(frozen=True)
class Response:
    """Transport-neutral response; :meth:`to_envelope` renders the wire shape."""

    status_code: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)

    def to_envelope(self) -> Dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "headers": dict(self.headers),
            "body": json.dumps(self.body),
        }


def _format_payload_error(exc: pydantic.ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request payload"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in KNOWN_ACTIONS)
    message = first.get("msg", "invalid value")
    if location:
        return f"Invalid request payload: {location}: {message}"
    return f"Invalid request payload: {message}"


def internal_error_response(exc: Exception, *, cors_allow_origin: Optional[str] = "*") -> Response:
    """Render a failure as a 500 carrying the exception message, never its traceback."""

    headers = {"Content-Type": "application/json"}
    if cors_allow_origin is not None:
        headers["Access-Control-Allow-Origin"] = cors_allow_origin
    message = str(exc) or "Internal server error"
    return Response(status_code=500, body={"success": False, "error": message}, headers=headers)


class RequestDispatcher:
    """Route ``add_user``/``get_user`` requests and shape every outcome as a response.

    This is the only layer that converts exceptions into responses; nothing
    raised by the service escapes :meth:`dispatch`.
    """

    def __init__(
        self,
        service: UserService,
        *,
        transport_wrapped: bool = True,
        cors_allow_origin: str = "*",
    ) -> None:
        self._service = service
        self._transport_wrapped = transport_wrapped
        self._cors_allow_origin = cors_allow_origin

    @property
    def transport_wrapped(self) -> bool:
        return self._transport_wrapped

    def handle(self, event: Any) -> Dict[str, Any]:
        """Dispatch ``event`` and return the ``statusCode``/``headers``/``body`` envelope."""

        return self.dispatch(event).to_envelope()

    def dispatch(self, event: Any) -> Response:
        if self._transport_wrapped and isinstance(event, Mapping) and event.get("httpMethod") == "OPTIONS":
            return self._respond(200, {"message": "CORS preflight"})

        try:
            request_data = self._extract_request(event)
        except MalformedRequest as exc:
            logger.warning("Rejected request: %s", exc)
            return self._respond(400, {"success": False, "error": str(exc)})

        action = request_data.get("action")
        if not action:
            logger.warning("Rejected request without an action")
            return self._respond(400, {"success": False, "error": "Action is required"})
        if action not in KNOWN_ACTIONS:
            logger.warning("Rejected unknown action %r", action)
            return self._respond(400, {"success": False, "error": f"Unknown action: {action}"})

        logger.debug("Dispatching action %s", action)
        try:
            request = _REQUEST_ADAPTER.validate_python(request_data)
        except pydantic.ValidationError as exc:
            message = _format_payload_error(exc)
            logger.warning("Rejected %s request: %s", action, message)
            return self._respond(400, {"success": False, "error": message})

        try:
            if isinstance(request, AddUserRequest):
                payload = request.data.model_dump() if request.data is not None else None
                result = self._service.create_user(payload)
            else:
                result = self._service.get_user_by_id(request.user_id)
        except UserServiceError as exc:
            logger.warning("%s failed: %s", action, exc)
            return self._error_response(exc)
        except Exception as exc:
            logger.exception("Unexpected failure while handling %s", action)
            return self._error_response(exc)

        data = result.to_item() if result is not None else None
        return self._respond(200, {"success": True, "data": data})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _extract_request(self, event: Any) -> Mapping[str, Any]:
        if not isinstance(event, Mapping):
            raise MalformedRequest("Request body must be a JSON object")

        body = event.get("body")
        if body is None or body == "":
            return event
        if isinstance(body, Mapping):
            return body

        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        if not isinstance(body, str):
            raise MalformedRequest("Request body must be a JSON object")
        if event.get("isBase64Encoded"):
            try:
                body = base64.b64decode(body, validate=True).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as exc:
                raise MalformedRequest("Request body is not valid base64") from exc

        try:
            parsed = json.loads(body)
        except ValueError as exc:
            raise MalformedRequest("Request body must be a JSON object") from exc
        if not isinstance(parsed, dict):
            raise MalformedRequest("Request body must be a JSON object")
        return parsed

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._transport_wrapped:
            headers.update(
                {
                    "Access-Control-Allow-Origin": self._cors_allow_origin,
                    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
                    "Access-Control-Allow-Headers": "Content-Type",
                }
            )
        return headers

    def _respond(self, status_code: int, body: Dict[str, Any]) -> Response:
        return Response(status_code=status_code, body=body, headers=self._headers())

    def _error_response(self, exc: Exception) -> Response:
        origin = self._cors_allow_origin if self._transport_wrapped else None
        return internal_error_response(exc, cors_allow_origin=origin)


__all__ = [
    "AddUserRequest",
    "GetUserRequest",
    "KNOWN_ACTIONS",
    "NewUserPayload",
    "RequestDispatcher",
    "Response",
    "internal_error_response",
]
