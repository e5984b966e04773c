"""Local user-presence check used to gate protected reads."""

from __future__ import annotations

import getpass
import hashlib
import hmac
import logging
import secrets
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from keychain_demo.secrets.base import SecretStoreError

LOGGER = logging.getLogger(__name__)

HASH_SCHEME = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 200_000


class PresenceConfigError(SecretStoreError):
    """Raised when the configured passcode hash is unusable."""


class PresenceResult(str, Enum):
    VERIFIED = "VERIFIED"
    CANCELED = "CANCELED"
    FAILED = "FAILED"


def hash_passcode(passcode: str, salt: Optional[bytes] = None, iterations: int = DEFAULT_ITERATIONS) -> str:
    if not passcode:
        raise PresenceConfigError("passcode must not be empty")
    salt = salt if salt is not None else secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", passcode.encode("utf-8"), salt, iterations)
    return f"{HASH_SCHEME}${iterations}${salt.hex()}${digest.hex()}"


def parse_passcode_hash(encoded: str) -> tuple[int, bytes, bytes]:
    """Split a pbkdf2_sha256 value into (iterations, salt, digest)."""
    parts = (encoded or "").split("$")
    if len(parts) != 4 or parts[0] != HASH_SCHEME:
        raise PresenceConfigError("passcode hash must look like pbkdf2_sha256$<iter>$<salt>$<hash>")
    try:
        iterations = int(parts[1])
        salt = bytes.fromhex(parts[2])
        expected = bytes.fromhex(parts[3])
    except ValueError as exc:
        raise PresenceConfigError("passcode hash has malformed fields") from exc
    if iterations <= 0:
        raise PresenceConfigError("passcode hash iterations must be > 0")
    if not salt or not expected:
        raise PresenceConfigError("passcode hash salt and digest must not be empty")
    return iterations, salt, expected


def verify_passcode(passcode: str, encoded: str) -> bool:
    iterations, salt, expected = parse_passcode_hash(encoded)
    digest = hashlib.pbkdf2_hmac("sha256", passcode.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(digest, expected)


class PresenceVerifier(ABC):
    @property
    @abstractmethod
    def available(self) -> bool:
        """True when the device has a way to prove presence (passcode set)."""

    @abstractmethod
    def verify(self, prompt: str) -> PresenceResult:
        """Ask the user to prove presence. May block indefinitely."""


class PasscodePresenceVerifier(PresenceVerifier):
    def __init__(
        self,
        passcode_hash: str,
        max_attempts: int = 3,
        read_passcode: Callable[[str], str] = getpass.getpass,
    ) -> None:
        if max_attempts < 1:
            raise PresenceConfigError("max_attempts must be >= 1")
        if passcode_hash:
            parse_passcode_hash(passcode_hash)
        self._passcode_hash = passcode_hash
        self._max_attempts = max_attempts
        self._read_passcode = read_passcode

    @property
    def available(self) -> bool:
        return bool(self._passcode_hash)

    def verify(self, prompt: str) -> PresenceResult:
        if not self.available:
            return PresenceResult.FAILED

        for attempt in range(1, self._max_attempts + 1):
            try:
                entered = self._read_passcode(f"{prompt}: ")
            except (EOFError, KeyboardInterrupt):
                LOGGER.info("presence check canceled")
                return PresenceResult.CANCELED
            if not entered:
                LOGGER.info("presence check canceled")
                return PresenceResult.CANCELED
            if verify_passcode(entered, self._passcode_hash):
                return PresenceResult.VERIFIED
            LOGGER.warning("presence check rejected attempt=%s/%s", attempt, self._max_attempts)

        return PresenceResult.FAILED
