"""Session management for password-protected secrets.

Holds the password-derived key in memory so the user only needs to enter
their password once per session. The key is never written to storage.

A SessionManager is created by the VaultManager that owns it and is passed
to collaborators explicitly; there is no module-level session.
"""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional

from ..storage import SECRETS_VAULT_KEY, VERIFICATION_TOKEN_KEY, KeyValueStore
from ..utils.logging import get_logger
from .config import VaultConfig, get_vault_config
from .crypto import VERIFICATION_PLAINTEXT, AEADCipher, KeyDerivation, decode_b64, encode_b64
from .exceptions import DecryptionError, VaultCorruptedError
from .security_config import SecurityConfig, SecurityConfigStore

logger = get_logger(__name__)


@dataclass
class SessionState:
    """In-memory session state. Never serialized."""

    unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    derived_key: Optional[bytes] = field(default=None, repr=False)


@dataclass
class PendingPassword:
    """Key material for a new password that has not been persisted yet."""

    config: SecurityConfig
    key: bytes = field(repr=False)
    verification_token: bytes = field(repr=False)


class SessionManager:
    """
    Lock/unlock state machine for the password regime.

    States are Locked and Unlocked. While protection is disabled the session
    always reports unlocked and holds no key.
    """

    def __init__(self, store: KeyValueStore, config: Optional[VaultConfig] = None):
        """
        Initialize session manager.

        Args:
            store: Storage holding the security config and vault records
            config: Vault configuration (uses global if not provided)
        """
        self.store = store
        self.config = config or get_vault_config()
        self.security = SecurityConfigStore(store)
        self._state = SessionState()
        self._session_lock = threading.RLock()

    @property
    def state(self) -> SessionState:
        """Live session state."""
        return self._state

    def is_protection_enabled(self) -> bool:
        """Check whether password protection is enabled."""
        return self.security.is_enabled()

    def validate_new_password(self, password: str) -> None:
        """
        Reject passwords below the minimum length.

        Raises:
            ValueError: If password is too short
        """
        if len(password) < self.config.min_password_length:
            raise ValueError(
                f"Password must be at least {self.config.min_password_length} characters"
            )

    def prepare_password(self, password: str) -> PendingPassword:
        """
        Derive key material for a new password without persisting anything.

        A fresh salt is generated every time, including re-enabling after
        protection was disabled.
        """
        self.validate_new_password(password)

        salt = KeyDerivation.generate_salt(self.config.salt_size)
        iterations = self.config.pbkdf2_iterations
        key = KeyDerivation.derive_key(password, salt, iterations)
        token = AEADCipher(key).encrypt(VERIFICATION_PLAINTEXT)

        config = SecurityConfig(
            enabled=True,
            salt=salt,
            iterations=iterations,
            session_timeout_minutes=self.config.session_timeout_minutes,
        )
        return PendingPassword(config=config, key=key, verification_token=token)

    def commit_password(self, pending: PendingPassword) -> None:
        """Persist the verification token, then the config, then unlock."""
        self.store.set(VERIFICATION_TOKEN_KEY, encode_b64(pending.verification_token))
        self.security.save(pending.config)

        with self._session_lock:
            self._state = SessionState(
                unlocked=True,
                unlocked_at=datetime.now(),
                derived_key=pending.key,
            )
        logger.info("Password protection enabled; session unlocked")

    def setup_password(self, password: str) -> None:
        """
        Enable password protection with a new password.

        Raises:
            ValueError: If password is too short
        """
        self.commit_password(self.prepare_password(password))

    def unlock(self, password: str) -> bool:
        """
        Unlock the session with a password.

        The candidate key is checked by decrypting the secrets blob if one
        exists, otherwise the verification token.

        Args:
            password: Candidate password

        Returns:
            True if unlocked. A wrong password returns False and leaves the
            previous state untouched.
        """
        security = self.security.load()
        if security is None or not security.enabled:
            return True

        try:
            candidate = KeyDerivation.derive_key(password, security.salt, security.iterations)
        except ValueError as e:
            logger.error(f"Unlock failed: {e}")
            return False

        stored_blob = self.store.get(SECRETS_VAULT_KEY) or self.store.get(VERIFICATION_TOKEN_KEY)
        if stored_blob is None:
            logger.warning("Unlock failed: nothing to verify the password against")
            return False

        try:
            AEADCipher(candidate).decrypt(decode_b64(stored_blob))
        except (DecryptionError, VaultCorruptedError):
            logger.info("Unlock failed: incorrect password")
            return False

        with self._session_lock:
            self._state = SessionState(
                unlocked=True,
                unlocked_at=datetime.now(),
                derived_key=candidate,
            )
        logger.info("Session unlocked")
        return True

    def lock(self) -> None:
        """Drop the in-memory key."""
        with self._session_lock:
            # Python doesn't guarantee memory clearing, but the reference goes
            self._state = SessionState()
        logger.debug("Session locked")

    def _timeout(self) -> Optional[timedelta]:
        security = self.security.load()
        minutes = security.session_timeout_minutes if security else self.config.session_timeout_minutes
        if minutes == 0:  # No timeout
            return None
        return timedelta(minutes=minutes)

    def is_unlocked(self) -> bool:
        """
        Check whether secrets are currently accessible.

        Crossing the inactivity timeout locks the session as a side effect.
        """
        if not self.is_protection_enabled():
            return True

        with self._session_lock:
            state = self._state
            if not state.unlocked or state.derived_key is None or state.unlocked_at is None:
                return False

            timeout = self._timeout()
            if timeout is not None and datetime.now() - state.unlocked_at >= timeout:
                logger.info(f"Session timed out after {timeout} of inactivity")
                self.lock()
                return False

            return True

    def refresh(self) -> None:
        """Extend the session on user activity without re-deriving the key."""
        with self._session_lock:
            if self._state.unlocked:
                self._state = replace(self._state, unlocked_at=datetime.now())

    def get_derived_key(self) -> Optional[bytes]:
        """
        Get the password-derived key.

        Returns:
            Key bytes, or None when locked or when protection is disabled
        """
        if not self.is_unlocked():
            return None
        return self._state.derived_key

    def time_remaining(self) -> Optional[timedelta]:
        """Get time remaining before the session expires."""
        if not self.is_unlocked() or self._state.unlocked_at is None:
            return None
        timeout = self._timeout()
        if timeout is None:
            return None
        remaining = timeout - (datetime.now() - self._state.unlocked_at)
        return max(remaining, timedelta(0))

    def disable_protection(self) -> None:
        """
        Turn password protection off.

        The session is permanently unlocked afterwards. The secrets blob is
        left as is; re-encrypting it is the caller's job.
        """
        security = self.security.load()
        if security is None:
            security = SecurityConfig(
                enabled=False,
                salt=KeyDerivation.generate_salt(self.config.salt_size),
                iterations=self.config.pbkdf2_iterations,
                session_timeout_minutes=self.config.session_timeout_minutes,
            )
        else:
            security.enabled = False

        self.security.save(security)

        with self._session_lock:
            self._state = SessionState(unlocked=True, unlocked_at=datetime.now())
        logger.info("Password protection disabled")
