"""Vault exceptions for the Horizen secrets vault."""


class VaultError(Exception):
    """Base exception for vault operations."""

    pass


class VaultLockedError(VaultError):
    """Raised when secrets are accessed while the session is locked."""

    def __init__(self, message: str = "Session is locked. Please unlock with your password."):
        super().__init__(message)


class DecryptionError(VaultError):
    """
    Raised when AEAD verification fails.

    A wrong key and corrupted ciphertext produce the same error on purpose.
    """

    def __init__(self, message: str = "Incorrect password or corrupted data."):
        super().__init__(message)


class EncryptionError(VaultError):
    """Raised when encryption fails."""

    def __init__(self, message: str = "Failed to encrypt data."):
        super().__init__(message)


class VaultCorruptedError(VaultError):
    """Raised when stored vault records cannot be parsed."""

    def __init__(self, message: str = "Vault data is corrupted."):
        super().__init__(message)


class KeyRotationError(VaultError):
    """Raised when secrets cannot be re-encrypted under a new key."""

    def __init__(
        self,
        message: str = "Failed to re-encrypt secrets. Your data is safe but the encryption switch failed.",
    ):
        super().__init__(message)


class ExportError(VaultError):
    """Raised when an export request is not allowed."""

    def __init__(self, message: str = "Export failed."):
        super().__init__(message)


class ImportValidationError(VaultError):
    """Raised when an import file has an invalid shape."""

    def __init__(self, message: str = "Invalid import file format."):
        super().__init__(message)


class IntegrityError(VaultError):
    """Raised when an export bundle fails its content hash check."""

    def __init__(self, message: str = "File integrity check failed. The file may have been modified."):
        super().__init__(message)


class PasswordRequiredError(VaultError):
    """Raised when an encrypted backup is imported without a password."""

    def __init__(self, message: str = "This backup is password-protected. Please provide the password."):
        super().__init__(message)
