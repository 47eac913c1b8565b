# gatehouse/core/errors.py
"""
Error types shared by the startup path and the request pipeline.

Startup errors (ConfigurationError, StorageConnectionError) are fatal to the
process. Request body errors carry the HTTP status and error code that the
body parsing stages render back to the client.
"""


class ConfigurationError(Exception):
    """Settings are missing or malformed; the server must not start."""


class StorageConnectionError(Exception):
    """The single database connection attempt at startup failed."""


class RequestBodyError(Exception):
    """
    Base class for errors raised while reading a request body.

    Attributes:
        status_code: HTTP status returned to the client
        code: Machine-readable error code placed in the response envelope
    """
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PayloadTooLarge(RequestBodyError):
    status_code = 413
    code = "PAYLOAD_TOO_LARGE"


class BadRequestBody(RequestBodyError):
    status_code = 400
    code = "BAD_REQUEST_BODY"


class UnsupportedCharset(RequestBodyError):
    status_code = 415
    code = "UNSUPPORTED_CHARSET"
