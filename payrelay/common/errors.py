"""Error taxonomy shared by every component.

Only `InvalidRequest`, `SignatureInvalid` and `GatewayError` ever reach a
client. Persistence and notification failures are logged and swallowed where
they happen; their kinds exist so failure hooks and logs can label them.
"""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_REQUEST = "InvalidRequest"
    SIGNATURE_INVALID = "SignatureInvalid"
    GATEWAY_ERROR = "GatewayError"
    PERSISTENCE_ERROR = "PersistenceError"
    NOTIFICATION_ERROR = "NotificationError"


class RelayError(Exception):
    """Base error carrying a stable kind and the HTTP status it maps to."""

    kind: ErrorKind = ErrorKind.INVALID_REQUEST
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict:
        return {"success": False, "error": self.message, "errorKind": self.kind.value}


class InvalidRequestError(RelayError):
    kind = ErrorKind.INVALID_REQUEST
    status_code = 400


class SignatureInvalidError(RelayError):
    kind = ErrorKind.SIGNATURE_INVALID
    status_code = 400


class GatewayError(RelayError):
    kind = ErrorKind.GATEWAY_ERROR
    status_code = 502


class PersistenceError(RelayError):
    kind = ErrorKind.PERSISTENCE_ERROR
    status_code = 500


class NotificationError(RelayError):
    kind = ErrorKind.NOTIFICATION_ERROR
    status_code = 500
