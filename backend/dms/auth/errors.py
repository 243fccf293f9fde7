class AuthError(Exception):
    """Base class for session and authorization failures.

    Each subclass carries the HTTP status and a stable ``error_code`` that the
    API layer renders; callers should never need to inspect the message.
    """

    status_code: int = 401
    error_code: str = "unauthorized"
    message: str = "Unauthorized"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    error_code = "invalid_credentials"
    message = "Invalid credentials"


class TwoFactorRequired(AuthError):
    error_code = "two_factor_required"
    message = "2FA code required"


class InvalidTwoFactorCode(AuthError):
    error_code = "invalid_two_factor_code"
    message = "Invalid 2FA code"


class MalformedToken(AuthError):
    error_code = "malformed_token"
    message = "Invalid refresh token format"


class InvalidOrExpiredToken(AuthError):
    error_code = "invalid_token"
    message = "Invalid or expired refresh token"


class ReuseDetected(AuthError):
    # Deliberately indistinguishable from a plain invalid token for the client.
    error_code = "invalid_token"
    message = "Invalid or expired refresh token"


class Unauthenticated(AuthError):
    error_code = "unauthenticated"
    message = "Invalid/expired token"


class Forbidden(AuthError):
    status_code = 403
    error_code = "forbidden"
    message = "Insufficient permissions"


class AlreadyEnabled(AuthError):
    status_code = 400
    error_code = "already_enabled"
    message = "2FA already enabled"


class TooManyAttempts(AuthError):
    status_code = 429
    error_code = "rate_limited"
    message = "Too many failed attempts"


class UserNotFound(AuthError):
    status_code = 404
    error_code = "not_found"
    message = "User not found"


class AdminAlreadyExists(AuthError):
    status_code = 409
    error_code = "conflict"
    message = "Admin user already exists"


class EmailAlreadyRegistered(AuthError):
    status_code = 409
    error_code = "conflict"
    message = "User with this email already exists"


__all__ = [
    "AuthError",
    "AdminAlreadyExists",
    "AlreadyEnabled",
    "EmailAlreadyRegistered",
    "Forbidden",
    "InvalidCredentials",
    "InvalidOrExpiredToken",
    "InvalidTwoFactorCode",
    "MalformedToken",
    "ReuseDetected",
    "TooManyAttempts",
    "TwoFactorRequired",
    "Unauthenticated",
    "UserNotFound",
]
