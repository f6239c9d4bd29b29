# app/core/errors.py
"""
Error taxonomy for the API.

Every error is an HTTPException so services can raise them the same way
they raise plain HTTPException, and FastAPI renders them as
`{"detail": ...}` with the right status code.
"""

from typing import Any

from fastapi import HTTPException, status


class Unauthorized(HTTPException):
    """No session / token, or the token is invalid or expired."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    """Authenticated, but not the owner of the resource."""

    def __init__(self, detail: str = "Access denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ValidationError(HTTPException):
    """
    Business-rule validation failure (400).

    Schema-level failures are reported by FastAPI itself as 422.
    """

    def __init__(self, detail: Any = "Invalid request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InsufficientTokens(HTTPException):
    """
    Token balance gate failure, surfaced as 402 Payment Required.

    Detail shape:
        {"error": "Insufficient tokens", "required": 6, "current": 2}
    """

    def __init__(self, required: int, current: int):
        self.required = required
        self.current = current
        super().__init__(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "error": "Insufficient tokens",
                "required": required,
                "current": current,
            },
        )


class UpstreamProviderError(HTTPException):
    """Replicate / Stripe / Google / SMTP failure."""

    def __init__(self, detail: str = "Upstream provider error"):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


class InternalError(HTTPException):
    def __init__(self, detail: str = "Internal server error"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
        )
