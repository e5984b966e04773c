"""OS credential store adapter (macOS Keychain, Windows Credential Manager, Secret Service)."""

from __future__ import annotations

import base64
import binascii
import importlib
import logging
import platform
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from keychain_demo.secrets.base import (
    AccessControl,
    AccessControlCreationError,
    AccessControlFlag,
    ProtectionPolicy,
    SecretIdentifier,
    SecretStoreError,
    SecureStore,
    StoreStatus,
)
from keychain_demo.secrets.presence import PresenceResult, PresenceVerifier

LOGGER = logging.getLogger(__name__)

_STORE_LABELS = {
    "darwin": "Keychain",
    "windows": "Credential Manager",
}


class StoredRecord(BaseModel):
    """JSON envelope persisted as the keyring password string."""

    model_config = ConfigDict(extra="forbid")

    version: Literal[1] = 1
    protection: ProtectionPolicy
    user_presence: bool = False
    interactive_auth: bool = True
    data: str

    def payload(self) -> bytes:
        return base64.b64decode(self.data.encode("ascii"), validate=True)


class KeyringSecureStore(SecureStore):
    def __init__(self, presence_verifier: Optional[PresenceVerifier] = None) -> None:
        self._presence_verifier = presence_verifier
        try:
            self._keyring = importlib.import_module("keyring")
            self._errors = importlib.import_module("keyring.errors")
        except Exception as exc:  # pragma: no cover - import guarded at runtime
            raise SecretStoreError("keyring package is required for OS credential store access") from exc

    @property
    def label(self) -> str:
        return _STORE_LABELS.get(platform.system().lower(), "Secret Service")

    def create_access_control(
        self,
        protection: ProtectionPolicy,
        flags: frozenset[AccessControlFlag] = frozenset(),
    ) -> AccessControl:
        needs_presence = (
            protection == ProtectionPolicy.WHEN_PASSCODE_SET_REQUIRES_PRESENCE
            or AccessControlFlag.USER_PRESENCE in flags
        )
        if needs_presence and (self._presence_verifier is None or not self._presence_verifier.available):
            raise AccessControlCreationError(
                f"{protection.value} requires a local passcode (auth.passcode_hash is not set)"
            )
        return AccessControl(protection=protection, flags=frozenset(flags))

    def delete(self, identifier: SecretIdentifier) -> StoreStatus:
        try:
            self._keyring.delete_password(identifier.service, identifier.account)
        except self._errors.PasswordDeleteError:
            return StoreStatus.ITEM_NOT_FOUND
        except Exception:
            LOGGER.warning("%s delete failed account=%s", self.label, identifier.account, exc_info=True)
            return StoreStatus.UNEXPECTED
        return StoreStatus.SUCCESS

    def insert(
        self,
        identifier: SecretIdentifier,
        data: bytes,
        access_control: AccessControl,
        interactive_auth_allowed: bool = True,
    ) -> StoreStatus:
        try:
            if self._keyring.get_password(identifier.service, identifier.account) is not None:
                return StoreStatus.DUPLICATE_ITEM
            record = StoredRecord(
                protection=access_control.protection,
                user_presence=access_control.requires_presence,
                interactive_auth=interactive_auth_allowed,
                data=base64.b64encode(data).decode("ascii"),
            )
            self._keyring.set_password(identifier.service, identifier.account, record.model_dump_json())
        except Exception:
            LOGGER.warning("%s insert failed account=%s", self.label, identifier.account, exc_info=True)
            return StoreStatus.UNEXPECTED
        return StoreStatus.SUCCESS

    def query(
        self,
        identifier: SecretIdentifier,
        return_data: bool = True,
        operation_prompt: str = "",
    ) -> tuple[StoreStatus, Optional[bytes]]:
        try:
            raw = self._keyring.get_password(identifier.service, identifier.account)
        except self._errors.KeyringLocked:
            return StoreStatus.INTERACTION_NOT_ALLOWED, None
        except Exception:
            LOGGER.warning("%s query failed account=%s", self.label, identifier.account, exc_info=True)
            return StoreStatus.UNEXPECTED, None
        if raw is None:
            return StoreStatus.ITEM_NOT_FOUND, None

        try:
            record = StoredRecord.model_validate_json(raw)
            payload = record.payload()
        except (ValidationError, binascii.Error, ValueError):
            LOGGER.warning("%s entry is not a recognised record account=%s", self.label, identifier.account)
            return StoreStatus.UNEXPECTED, None

        if record.user_presence:
            status = self._check_presence(record, operation_prompt)
            if status != StoreStatus.SUCCESS:
                return status, None

        return StoreStatus.SUCCESS, (payload if return_data else None)

    def _check_presence(self, record: StoredRecord, operation_prompt: str) -> StoreStatus:
        if not record.interactive_auth:
            return StoreStatus.INTERACTION_NOT_ALLOWED
        verifier = self._presence_verifier
        if verifier is None or not verifier.available:
            return StoreStatus.AUTH_FAILED

        try:
            result = verifier.verify(operation_prompt)
        except Exception:
            LOGGER.warning("%s presence check raised", self.label, exc_info=True)
            return StoreStatus.UNEXPECTED
        if result == PresenceResult.VERIFIED:
            return StoreStatus.SUCCESS
        if result == PresenceResult.CANCELED:
            return StoreStatus.USER_CANCELED
        return StoreStatus.AUTH_FAILED
