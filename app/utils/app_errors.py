"""Application error types.

Every failure that reaches a caller is an ``AppError`` carrying a stable
``errcode`` (machine readable), a free text ``errmesg`` and the HTTP status the
API layer should answer with. ``kind`` groups codes into the error taxonomy
used by the domain services.
"""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    OK = 200
    CREATED = 201
    ACCEPTED = 202
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    PAYMENT_REQUIRED = 402
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    UNPROCESSABLE_ENTITY = 422
    TOO_MANY_REQUESTS = 429
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    UNAUTHENTICATED = "Unauthenticated"
    UNAUTHORIZED = "Unauthorized"
    FORBIDDEN = "Forbidden"
    CONFLICT = "Conflict"
    INVALID_INPUT = "InvalidInput"
    RATE_LIMITED = "RateLimited"
    DEPENDENCY_FAILURE = "DependencyFailure"
    PARTIAL_FAILURE = "PartialFailure"
    INTERNAL = "Internal"


class AppErrorCode(str, Enum):
    # Generic
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_PARAMS = "E_INVALID_PARAMS"
    E_BAD_TOKEN = "E_BAD_TOKEN"
    E_UNAUTHORIZED = "E_UNAUTHORIZED"
    E_FORBIDDEN = "E_FORBIDDEN"
    E_VERSION_CONFLICT = "E_VERSION_CONFLICT"

    # Stream session registry
    E_STREAM_NOT_FOUND = "E_STREAM_NOT_FOUND"
    E_STREAM_ALREADY_LIVE = "E_STREAM_ALREADY_LIVE"
    E_OWNER_ALREADY_LIVE = "E_OWNER_ALREADY_LIVE"
    E_STREAM_NOT_ACTIVE = "E_STREAM_NOT_ACTIVE"
    E_STREAM_ENDED = "E_STREAM_ENDED"
    E_STREAM_ACTIVE = "E_STREAM_ACTIVE"
    E_INVALID_STREAM_KEY = "E_INVALID_STREAM_KEY"
    E_RECORDING_UNAVAILABLE = "E_RECORDING_UNAVAILABLE"

    # VOD conversion
    E_STREAM_NOT_ENDED = "E_STREAM_NOT_ENDED"
    E_RECORDING_NOT_ENABLED = "E_RECORDING_NOT_ENABLED"
    E_VOD_ALREADY_EXISTS = "E_VOD_ALREADY_EXISTS"
    E_VOD_NOT_FOUND = "E_VOD_NOT_FOUND"
    E_VOD_NOT_READY = "E_VOD_NOT_READY"
    E_VOD_PROCESSING_IN_PROGRESS = "E_VOD_PROCESSING_IN_PROGRESS"
    E_VOD_NOTHING_TO_RETRY = "E_VOD_NOTHING_TO_RETRY"
    E_JOB_NOT_FOUND = "E_JOB_NOT_FOUND"
    E_UPLOAD_NOT_FOUND = "E_UPLOAD_NOT_FOUND"
    E_STAGE_FAILED = "E_STAGE_FAILED"
    E_MEDIA_UNAVAILABLE = "E_MEDIA_UNAVAILABLE"
    E_STORAGE_UNAVAILABLE = "E_STORAGE_UNAVAILABLE"

    # Access grants
    E_VIDEO_NOT_FOUND = "E_VIDEO_NOT_FOUND"
    E_SUBSCRIPTION_INACTIVE = "E_SUBSCRIPTION_INACTIVE"
    E_INSUFFICIENT_SUBSCRIPTION_TIER = "E_INSUFFICIENT_SUBSCRIPTION_TIER"
    E_PRIVATE_CONTENT = "E_PRIVATE_CONTENT"
    E_INVALID_REFRESH_TOKEN = "E_INVALID_REFRESH_TOKEN"
    E_REFRESH_WINDOW_CLOSED = "E_REFRESH_WINDOW_CLOSED"
    E_REFRESH_LIMIT_EXCEEDED = "E_REFRESH_LIMIT_EXCEEDED"
    E_GRANT_ALREADY_REFRESHED = "E_GRANT_ALREADY_REFRESHED"
    E_SESSION_INVALID = "E_SESSION_INVALID"
    E_GRANT_EXPIRED = "E_GRANT_EXPIRED"
    E_GRANT_MISMATCH = "E_GRANT_MISMATCH"
    E_GRANT_INVALID = "E_GRANT_INVALID"
    E_ACCESS_REVOKED = "E_ACCESS_REVOKED"
    E_BILLING_UNAVAILABLE = "E_BILLING_UNAVAILABLE"

    # Appeals
    E_INVALID_APPEAL = "E_INVALID_APPEAL"
    E_APPEAL_NOT_FOUND = "E_APPEAL_NOT_FOUND"
    E_MODERATION_UNAVAILABLE = "E_MODERATION_UNAVAILABLE"


_STATUS_TO_KIND: dict[int, ErrorKind] = {
    HttpStatusCode.BAD_REQUEST: ErrorKind.INVALID_INPUT,
    HttpStatusCode.UNPROCESSABLE_ENTITY: ErrorKind.INVALID_INPUT,
    HttpStatusCode.UNAUTHORIZED: ErrorKind.UNAUTHENTICATED,
    HttpStatusCode.PAYMENT_REQUIRED: ErrorKind.FORBIDDEN,
    HttpStatusCode.FORBIDDEN: ErrorKind.FORBIDDEN,
    HttpStatusCode.NOT_FOUND: ErrorKind.NOT_FOUND,
    HttpStatusCode.CONFLICT: ErrorKind.CONFLICT,
    HttpStatusCode.TOO_MANY_REQUESTS: ErrorKind.RATE_LIMITED,
    HttpStatusCode.BAD_GATEWAY: ErrorKind.DEPENDENCY_FAILURE,
    HttpStatusCode.SERVICE_UNAVAILABLE: ErrorKind.DEPENDENCY_FAILURE,
}


def kind_for_status(status_code: int) -> ErrorKind:
    return _STATUS_TO_KIND.get(int(status_code), ErrorKind.INTERNAL)


class AppError(Exception):
    """Error raised by domain services and converted to an ApiFailure at the API edge.

    Args:
        errcode: Stable error code.
        errmesg: Human readable message.
        status_code: HTTP status the API layer answers with.
        kind: Taxonomy kind; derived from ``status_code`` when omitted.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: int = HttpStatusCode.INTERNAL_SERVER_ERROR,
        kind: ErrorKind | None = None,
    ):
        super().__init__(errmesg)
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.kind = kind or kind_for_status(self.status_code)
        self.erresid = uuid4().hex[:10]

        caller_frame = inspect.stack()[1]
        module = inspect.getmodule(caller_frame.frame)
        module_name = (
            module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
        )
        self.caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.errcode}, {self.errmesg!r}, {self.status_code})"


class VideoAccessError(AppError):
    """Playback access was refused for a viewer."""

    def __init__(
        self,
        errcode: AppErrorCode | str,
        errmesg: str,
        status_code: int = HttpStatusCode.FORBIDDEN,
    ):
        super().__init__(errcode, errmesg, status_code)
