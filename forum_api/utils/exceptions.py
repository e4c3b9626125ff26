from fastapi import HTTPException, status


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES: machine-readable constants for frontend switch/case
# ═══════════════════════════════════════════════════════════════════════════════
class ErrorCode:
    VALIDATION_ERROR        = "VALIDATION_ERROR"
    UNAUTHORIZED            = "UNAUTHORIZED"
    INVALID_CREDENTIALS     = "INVALID_CREDENTIALS"
    TOKEN_EXPIRED           = "TOKEN_EXPIRED"
    REFRESH_TOKEN_INVALID   = "REFRESH_TOKEN_INVALID"
    ACCOUNT_INACTIVE        = "ACCOUNT_INACTIVE"
    DUPLICATE_ENTRY         = "DUPLICATE_ENTRY"
    SERVICE_UNAVAILABLE     = "SERVICE_UNAVAILABLE"
    INTERNAL_SERVER_ERROR   = "INTERNAL_SERVER_ERROR"


# ═══════════════════════════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════════════════════════
class AppException(HTTPException):
    """
    Base exception for all application-level errors.
    Carries a machine-readable error_code for frontend handling, plus optional
    top-level response fields (e.g. shouldRefresh).
    """
    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: str,
        details: list | None = None,
        field: str | None = None,
        extra: dict | None = None,
    ):
        super().__init__(status_code=status_code, detail={
            "message": message,
            "error": {
                "code": error_code,
                "details": details,
                "field": field,
            },
            "extra": extra or {},
        })


# ═══════════════════════════════════════════════════════════════════════════════
# CONCRETE EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════════

class UnauthorizedException(AppException):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, message, ErrorCode.UNAUTHORIZED)


class InvalidCredentialsException(AppException):
    """Same response for unknown login, wrong password and inactive account."""
    def __init__(self):
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Invalid credentials", ErrorCode.INVALID_CREDENTIALS)


class TokenExpiredException(AppException):
    def __init__(self):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            "Session expired. Attempting to refresh...",
            ErrorCode.TOKEN_EXPIRED,
            extra={"shouldRefresh": True},
        )


class RefreshTokenInvalidException(AppException):
    def __init__(self, message: str = "Invalid refresh token"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, message, ErrorCode.REFRESH_TOKEN_INVALID)


class AccountInactiveException(AppException):
    def __init__(self):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            "User account is inactive or deleted",
            ErrorCode.ACCOUNT_INACTIVE,
        )


class DuplicateEntryException(AppException):
    def __init__(self, message: str = "Record already exists", field: str | None = None):
        super().__init__(status.HTTP_409_CONFLICT, message, ErrorCode.DUPLICATE_ENTRY, field=field)


class ServiceUnavailableException(AppException):
    def __init__(self, message: str = "Service temporarily unavailable. Please try again."):
        super().__init__(status.HTTP_503_SERVICE_UNAVAILABLE, message, ErrorCode.SERVICE_UNAVAILABLE)
