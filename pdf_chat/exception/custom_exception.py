import sys
import traceback
from typing import Optional


class PdfChatException(Exception):
    """
    Base exception for the project.

    Captures where the underlying error was raised (file, line, traceback)
    so that the log line carries enough context without re-raising.
    `error_details` can be the causing exception, the `sys` module
    (current exc_info is used) or None.
    """

    status_code: int = 500
    kind: str = "internal_error"

    def __init__(self, error_message: str, error_details: object = None):
        self.error_message = str(error_message)
        super().__init__(self.error_message)

        exc_type = exc_value = exc_tb = None
        if error_details is None or error_details is sys:
            exc_type, exc_value, exc_tb = sys.exc_info()
        elif isinstance(error_details, BaseException):
            exc_type, exc_value, exc_tb = (
                type(error_details),
                error_details,
                error_details.__traceback__,
            )

        # walk to the last frame, which is where the error actually happened
        last_tb = exc_tb
        while last_tb is not None and last_tb.tb_next is not None:
            last_tb = last_tb.tb_next

        self.file_name: Optional[str] = (
            last_tb.tb_frame.f_code.co_filename if last_tb else None
        )
        self.lineno: Optional[int] = last_tb.tb_lineno if last_tb else None
        self.cause: Optional[BaseException] = exc_value
        self.traceback_str = (
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
            if exc_type and exc_tb
            else ""
        )

    def __str__(self) -> str:
        if self.file_name is None:
            return self.error_message
        base = (
            f"Error in [{self.file_name}] at line [{self.lineno}] | "
            f"Message: {self.error_message}"
        )
        if self.cause is not None:
            base = f"{base} | Cause: {self.cause}"
        return base

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.error_message!r})"


class Unauthenticated(PdfChatException):
    status_code = 401
    kind = "unauthenticated"


class NotFound(PdfChatException):
    status_code = 404
    kind = "not_found"


class ValidationFailure(PdfChatException):
    status_code = 422
    kind = "validation_failure"


class LimitExceeded(PdfChatException):
    status_code = 429
    kind = "limit_exceeded"


class UpstreamFailure(PdfChatException):
    status_code = 502
    kind = "upstream_failure"
