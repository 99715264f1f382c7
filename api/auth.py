import secrets
from typing import Optional

from fastapi import Request

from pdf_chat.exception.custom_exception import Unauthenticated

USER_HEADER = "X-User-Id"
API_KEY_HEADER = "X-API-Key"


class Authenticator:
    """
    Identity gate for every document and chat route.

    The caller identity comes from the X-User-Id header set by the trusted
    front end; when an API key is configured the X-API-Key header must match.
    """

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key

    def protect(self, request: Request) -> None:
        if self.api_key:
            presented = request.headers.get(API_KEY_HEADER, "")
            # bytes: compare_digest rejects non-ASCII str
            if not secrets.compare_digest(
                presented.encode("utf-8"), self.api_key.encode("utf-8")
            ):
                raise Unauthenticated("Invalid API key")
        if not request.headers.get(USER_HEADER, "").strip():
            raise Unauthenticated("No authenticated user")

    def current_user_id(self, request: Request) -> str:
        self.protect(request)
        return request.headers[USER_HEADER].strip()


def require_user(request: Request) -> str:
    """FastAPI dependency returning the authenticated user id."""
    return request.app.state.container.authenticator.current_user_id(request)
