"""
podium/errors.py
Error taxonomy of the prediction API.

Every failure leaves the service as:
{
    "success": false,
    "error": "Conflict",
    "message": "Only scored rounds can be published",
    "code": "INVALID_STATE",
    "details": {"status": "locked"}      (only when there is something to add)
}

Status codes:
- 400 malformed ids, duplicate picks, missing reasons, bad scoring config
- 401 no token, bad token, inactive account
- 403 not an admin, not a season participant, feature switched off
- 404 unknown round, season, race or score row
- 409 wrong round status, duplicate round, stale round version
- 422 request body rejected by pydantic
- 500 never for caller mistakes; carries a log id instead of internals
"""

import logging
import uuid
from typing import Optional, Dict, Any

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorCode:
    """Machine-readable codes; clients switch on these, never on messages"""

    # 400 / 422
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_ID = "INVALID_ID"
    MISSING_FIELD = "MISSING_FIELD"
    DUPLICATE_PICK = "DUPLICATE_PICK"
    TEAM_NOT_IN_SEASON = "TEAM_NOT_IN_SEASON"

    # 401
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"

    # 403
    FORBIDDEN = "FORBIDDEN"
    NOT_PARTICIPANT = "NOT_PARTICIPANT"
    NO_TEAM_ASSIGNMENT = "NO_TEAM_ASSIGNMENT"
    FEATURE_DISABLED = "FEATURE_DISABLED"

    # 404
    NOT_FOUND = "NOT_FOUND"

    # 409
    CONFLICT = "CONFLICT"
    INVALID_STATE = "INVALID_STATE"
    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"
    DUPLICATE_ROUND = "DUPLICATE_ROUND"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # 500
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """OpenAPI shape of an error body"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


class APIError(Exception):
    """
    Base of all errors the routes turn into JSON.

    Subclasses fix status_code, the error label and the default code;
    raise sites pass the message and optionally a narrower code.
    """
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Error"
    default_code: str = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class ValidationError(APIError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Bad Request"
    default_code = ErrorCode.VALIDATION_ERROR


class UnauthorizedError(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"
    default_code = ErrorCode.AUTH_REQUIRED

    def __init__(self, message: str = "Authentication required", code: Optional[str] = None):
        super().__init__(message, code)


class ForbiddenError(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"
    default_code = ErrorCode.FORBIDDEN


class NotFoundError(APIError):
    """Raised with the resource name, e.g. NotFoundError("Race", 12)."""
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not Found"
    default_code = ErrorCode.NOT_FOUND

    def __init__(self, resource: str, identifier: Any = None, code: Optional[str] = None):
        if identifier is None:
            message = f"{resource} not found"
            details = {"resource": resource}
        else:
            message = f"{resource} with id '{identifier}' not found"
            details = {"resource": resource, "id": identifier}
        super().__init__(message, code, details)


class ConflictError(APIError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"
    default_code = ErrorCode.CONFLICT


class InvalidTransitionError(ConflictError):
    """Round status edge that the lifecycle does not allow."""
    default_code = ErrorCode.STATE_TRANSITION_INVALID

    def __init__(self, from_status: str, to_status: str):
        super().__init__(
            f"Invalid status transition: {from_status} -> {to_status}",
            details={"from_status": from_status, "to_status": to_status}
        )


class InternalError(APIError):
    error = "Internal Error"

    def __init__(self, message: str = "An internal error occurred", log_id: Optional[str] = None):
        super().__init__(message, details={"log_id": log_id} if log_id else None)


def new_log_id() -> str:
    return str(uuid.uuid4())[:8]


def log_and_raise_internal(error: Exception, context: str = ""):
    """Log a database or programming failure and raise a 500 that only exposes a log id"""
    log_id = new_log_id()
    logger.error(f"[{log_id}] Internal error in {context}: {type(error).__name__}: {error}")
    raise InternalError(
        message="An internal error occurred. Please try again later.",
        log_id=log_id
    ) from error
