from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """Caller-visible failure with a machine-checkable code.

    Rendered by the application handler as
    ``{error_code, message, details, trace_id}``.
    """

    status_code = 400
    error_code = 'API_ERROR'
    default_message = 'Request failed'

    def __init__(self, message: str | None = None, *, error_code: str | None = None, details: Any = None) -> None:
        self.message = message or self.default_message
        if error_code:
            self.error_code = error_code
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {'error_code': self.error_code, 'message': self.message, 'details': self.details}


class InvalidParameterError(ApiError):
    status_code = 400
    error_code = 'INVALID_PARAMETER'
    default_message = 'Invalid parameter'


class LimitTooLargeError(InvalidParameterError):
    error_code = 'LIMIT_TOO_LARGE'
    default_message = 'Requested limit exceeds the configured maximum'


class AuthenticationError(ApiError):
    status_code = 401
    error_code = 'INVALID_TOKEN'
    default_message = 'Invalid API token'


class AccessDeniedError(ApiError):
    status_code = 403
    error_code = 'ACCESS_DENIED'
    default_message = 'Access denied'


class MethodNotAllowedError(ApiError):
    status_code = 405
    error_code = 'INVALID_REQUEST_METHOD'
    default_message = 'Only POST requests are allowed'


class SyncInProgressError(ApiError):
    status_code = 409
    error_code = 'SYNC_IN_PROGRESS'
    default_message = 'Another sync pass is already running'


class RateLimitExceededError(ApiError):
    status_code = 429
    error_code = 'RATE_LIMIT_EXCEEDED'
    default_message = 'Daily request limit reached. Try again tomorrow.'


class UnknownSettingError(ApiError):
    status_code = 400
    error_code = 'UNKNOWN_SETTING'
    default_message = 'Unknown company setting'


class InvalidSettingError(ApiError):
    status_code = 400
    error_code = 'INVALID_SETTING_VALUE'
    default_message = 'Invalid value for company setting'


class ReportingUnavailableError(ApiError):
    status_code = 503
    error_code = 'REPORTING_UNAVAILABLE'
    default_message = 'Reporting data is temporarily unavailable'
