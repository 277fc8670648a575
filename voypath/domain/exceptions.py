"""Domain semantic exceptions."""


class DomainError(Exception):
    """Base domain exception."""

    status_code = 400


class ValidationFailed(DomainError):
    """Input is semantically invalid for the requested operation."""


class AuthenticationRequired(DomainError):
    status_code = 401


class PermissionDenied(DomainError):
    status_code = 403


class NotFound(DomainError):
    status_code = 404


class Conflict(DomainError):
    """State conflict: duplicate membership, trip full, palette exhausted."""

    status_code = 409


class Gone(DomainError):
    """Resource existed but can no longer be used (expired or exhausted invitation)."""

    status_code = 410
