"""Secure store factory based on the active keyring backend."""

from __future__ import annotations

import importlib
import logging
import platform
from typing import Optional

from keychain_demo.config.settings import Settings
from keychain_demo.secrets.base import SecretStoreError
from keychain_demo.secrets.keyring_store import KeyringSecureStore
from keychain_demo.secrets.presence import PasscodePresenceVerifier, PresenceVerifier

LOGGER = logging.getLogger(__name__)


def _require_os_backend() -> None:
    keyring = importlib.import_module("keyring")
    fail_backends = importlib.import_module("keyring.backends.fail")
    backend = keyring.get_keyring()
    if isinstance(backend, fail_backends.Keyring):
        raise SecretStoreError(
            f"no OS credential store available on {platform.system()} "
            "(supported: macOS Keychain, Windows Credential Manager, Secret Service)"
        )
    LOGGER.debug("keyring backend=%s", type(backend).__name__)


def create_secure_store(settings: Settings) -> KeyringSecureStore:
    verifier: Optional[PresenceVerifier] = None
    if settings.auth.passcode_hash:
        verifier = PasscodePresenceVerifier(
            passcode_hash=settings.auth.passcode_hash,
            max_attempts=settings.auth.max_attempts,
        )
    store = KeyringSecureStore(presence_verifier=verifier)
    _require_os_backend()
    return store
