"""Error kinds raised across the blood bank service."""


class BloodBankError(Exception):
    """Base class for blood bank errors."""

    pass


class ConfigError(BloodBankError):
    """Raised when backend configuration is missing or invalid."""

    pass


class AuthError(BloodBankError):
    """Raised when the identity provider rejects a sign-in or sign-out."""

    pass


class SyncError(BloodBankError):
    """Raised when the live inventory subscription cannot be established."""

    pass


class ValidationError(BloodBankError):
    """Raised when a blood request fails form validation."""

    pass


class WriteError(BloodBankError):
    """Raised when an inventory update is rejected by the document store."""

    pass
