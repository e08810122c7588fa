"""Migration tools for switching key regimes.

Provides:
- Re-encryption of the secret record from one key to another
- Enabling password protection (device key -> password key)
- Disabling password protection (password key -> fresh device key)
- Changing the password (old password key -> new password key)
- Resetting protection after a forgotten password

In every flow the secrets are re-encrypted before the security config is
saved, so a failure part-way never reports protection as switched.
"""

from ..storage import VERIFICATION_TOKEN_KEY
from ..utils.logging import get_logger
from .crypto import KeyDerivation
from .exceptions import KeyRotationError, VaultError, VaultLockedError
from .secret_vault import SecretVault, decrypt_record, encrypt_record
from .session import SessionManager

logger = get_logger(__name__)


def reencrypt_secrets(vault: SecretVault, old_key: bytes, new_key: bytes) -> bool:
    """
    Re-encrypt the stored secret record under a new key.

    The record is fully decrypted under ``old_key`` before anything is
    written, so on failure the stored blob is untouched.

    Args:
        vault: Secret vault to rotate
        old_key: Key the blob is currently encrypted under
        new_key: Key to encrypt under

    Returns:
        True if a record was re-encrypted, False if the vault was empty

    Raises:
        KeyRotationError: If the blob cannot be decrypted under old_key
    """
    try:
        blob = vault.read_raw()
        if blob is None:
            logger.info("No secrets to re-encrypt")
            return False
        record = decrypt_record(blob, old_key)
    except VaultError as e:
        logger.error(f"Failed to re-encrypt secrets: {e}")
        raise KeyRotationError() from e

    vault.write_raw(encrypt_record(record, new_key))
    logger.info(f"Re-encrypted secrets ({len(record)} provider(s))")
    return True


def enable_password_protection(session: SessionManager, vault: SecretVault, password: str) -> None:
    """
    Enable password protection, moving existing secrets to the password key.

    Args:
        session: Session manager
        vault: Secret vault
        password: New password

    Raises:
        ValueError: If password is too short
        VaultLockedError: If protection is already enabled and the session is locked
        KeyRotationError: If existing secrets cannot be read
    """
    pending = session.prepare_password(password)

    if vault.has_blob():
        if session.is_protection_enabled():
            old_key = session.get_derived_key()
            if old_key is None:
                raise VaultLockedError()
        else:
            old_key = vault.device_keys.load()
            if old_key is None:
                raise KeyRotationError("Device key is missing; existing secrets cannot be read.")
        reencrypt_secrets(vault, old_key, pending.key)

    session.commit_password(pending)
    vault.device_keys.clear()


def disable_password_protection(session: SessionManager, vault: SecretVault) -> None:
    """
    Disable password protection, moving secrets to a fresh device key.

    Raises:
        VaultLockedError: If the session is locked
        KeyRotationError: If the secrets cannot be re-encrypted
    """
    if not session.is_protection_enabled():
        session.disable_protection()
        return

    old_key = session.get_derived_key()
    if old_key is None:
        raise VaultLockedError()

    new_key = KeyDerivation.generate_device_key()
    vault.device_keys.save(new_key)
    try:
        reencrypt_secrets(vault, old_key, new_key)
    except KeyRotationError:
        # A device key may only exist while protection is disabled
        vault.device_keys.clear()
        raise

    session.disable_protection()


def change_password(
    session: SessionManager,
    vault: SecretVault,
    old_password: str,
    new_password: str,
) -> bool:
    """
    Change the vault password.

    Re-encrypts the secrets with a key derived from the new password and a
    new salt.

    Args:
        session: Session manager
        vault: Secret vault
        old_password: Current password
        new_password: New password

    Returns:
        False if protection is disabled or old_password is wrong (nothing
        changes), True once the new password is in place

    Raises:
        ValueError: If new_password is too short
    """
    if not session.is_protection_enabled():
        return False

    session.validate_new_password(new_password)

    if not session.unlock(old_password):
        return False

    old_key = session.get_derived_key()
    if old_key is None:
        raise VaultLockedError()

    pending = session.prepare_password(new_password)
    reencrypt_secrets(vault, old_key, pending.key)
    session.commit_password(pending)

    logger.info("Password changed")
    return True


def reset_protection(session: SessionManager, vault: SecretVault) -> None:
    """
    Recover from a forgotten password.

    Secrets encrypted under the lost password are discarded. Protection is
    disabled and an empty record is stored under a fresh device key.
    """
    vault.delete()
    session.store.delete(VERIFICATION_TOKEN_KEY)

    new_key = KeyDerivation.generate_device_key()
    vault.device_keys.save(new_key)
    vault.write_raw(encrypt_record({}, new_key))

    session.disable_protection()
    logger.warning("Password protection reset; stored secrets were discarded")
