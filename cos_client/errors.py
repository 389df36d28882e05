"""Error types raised by the object storage client.

Every failure surfaced by the client is one of a closed set of kinds:

- TransportError: the request never produced an HTTP response
- ResponseError: the server answered with a non-2xx status
  (AuthenticationError for 401/403)
- DecodeError: the response body did not have the expected XML shape
- ProtocolError: a multipart upload call was made in the wrong state

CompleteFailedError and AbortFailedError report a failed multipart
completion and the outcome of the cleanup that followed it.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from cos_client.models import UploadSession


class CosError(Exception):
    """Base class for all client errors."""

    pass


class TransportError(CosError):
    """Raised when the HTTP transport fails before a response arrives."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ResponseError(CosError):
    """Raised when the server returns a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        body: str,
        method: str = "",
        url: str = "",
    ):
        super().__init__(
            f"request failed: {method} {url} code='{status_code}' body='{body}'"
        )
        self.status_code = status_code
        self.body = body
        self.method = method
        self.url = url


class AuthenticationError(ResponseError):
    """Raised for 401/403 responses, including signature mismatches."""

    pass


class DecodeError(CosError):
    """Raised when a response body cannot be decoded."""

    def __init__(self, message: str, body: str = ""):
        super().__init__(message)
        self.body = body


class ProtocolError(CosError):
    """Raised when a multipart call is made in the wrong state."""

    pass


class CompleteFailedError(CosError):
    """Raised when completing a multipart upload failed.

    The upload was aborted successfully afterwards.
    """

    def __init__(self, session: "UploadSession", cause: BaseException):
        super().__init__(
            f"failed to complete upload {session.upload_id} for "
            f"{session.bucket}/{session.key}: {cause}"
        )
        self.session = session
        self.cause = cause


class AbortFailedError(CosError):
    """Raised when an upload failed and the abort issued after it failed too.

    Both errors are kept: ``error`` is the original failure and
    ``abort_error`` the failed cleanup.
    """

    def __init__(
        self,
        session: "UploadSession",
        error: BaseException,
        abort_error: BaseException,
    ):
        super().__init__(
            f"upload {session.upload_id} for {session.bucket}/{session.key} "
            f"failed ({error}) and abort failed too ({abort_error})"
        )
        self.session = session
        self.error = error
        self.abort_error = abort_error

    @property
    def errors(self) -> list[BaseException]:
        """Both failures, original first."""
        return [self.error, self.abort_error]


def raise_for_status(response, method: str = "", url: str = "") -> None:
    """Raise ResponseError (or AuthenticationError) for a non-2xx response.

    Args:
        response: A cos_client.models.Response.
        method: HTTP method of the request, for the error message.
        url: URL of the request, for the error message.
    """
    if response.ok:
        return
    error_class = AuthenticationError if response.status_code in (401, 403) else ResponseError
    raise error_class(response.status_code, response.text, method=method, url=url)
