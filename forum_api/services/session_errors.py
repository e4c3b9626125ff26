"""
Failure kinds raised by the session manager.

The HTTP layer maps each kind to a status code and message. None of these
carry credential material.
"""


class AuthError(Exception):
    """Base class for every session manager failure."""

    default_message = "Authentication failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class MissingCredential(AuthError):
    default_message = "No credential supplied"


class InvalidCredential(AuthError):
    """Bad signature, wrong token type, or no matching usable session record."""
    default_message = "Credential is invalid"


class Expired(AuthError):
    """Access credential past its lifetime; a rotation attempt is sensible."""
    default_message = "Credential has expired"


class InactiveOrMissingUser(AuthError):
    default_message = "User account is inactive or deleted"


class TransientFailure(AuthError):
    """Storage unavailable, or the nonce collision retry budget ran out."""
    default_message = "Temporary failure, please retry"
