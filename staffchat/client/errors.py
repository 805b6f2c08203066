from typing import Optional


class ApiError(Exception):
    """A call to the messaging service failed."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthorizationError(ApiError):
    """The session is missing or expired (401/403)."""


class NetworkError(ApiError):
    """The request never got an HTTP answer (connection error, timeout)."""


class SendError(Exception):
    """A message could not be delivered; the optimistic copy was rolled back."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class UploadError(Exception):
    """One file failed to upload. `reason` is shown to the user verbatim."""

    def __init__(self, filename: str, reason: str):
        super().__init__(f"Failed to upload {filename}: {reason}")
        self.filename = filename
        self.reason = reason
