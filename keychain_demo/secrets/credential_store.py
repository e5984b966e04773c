"""Storage and retrieval of the user's login password.

Exactly one password is managed, addressed by the SecretIdentifier the
store is constructed with. Reads of a passcode-protected password may
block on an interactive prompt, so loading is exposed as a coroutine that
performs the query on a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from keychain_demo.secrets.base import (
    AccessControl,
    AccessControlCreationError,
    AccessControlError,
    AccessControlFlag,
    EncodingError,
    InsertError,
    ProtectionPolicy,
    SecretIdentifier,
    SecretStoreError,
    SecureStore,
    StoreStatus,
)

LOGGER = logging.getLogger(__name__)


class LoadOutcome(str, Enum):
    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"
    USER_CANCELED = "USER_CANCELED"
    AUTH_FAILED = "AUTH_FAILED"
    UNDECODABLE = "UNDECODABLE"
    UNEXPECTED = "UNEXPECTED"


_OUTCOME_BY_STATUS = {
    StoreStatus.ITEM_NOT_FOUND: LoadOutcome.NOT_FOUND,
    StoreStatus.USER_CANCELED: LoadOutcome.USER_CANCELED,
    StoreStatus.AUTH_FAILED: LoadOutcome.AUTH_FAILED,
}


@dataclass(frozen=True)
class LoadResult:
    outcome: LoadOutcome
    password: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.outcome == LoadOutcome.FOUND


class LocalCredentialStore:
    def __init__(self, backend: SecureStore, identifier: SecretIdentifier, operation_prompt: str = "") -> None:
        self._backend = backend
        self._identifier = identifier
        self._operation_prompt = operation_prompt

    @property
    def identifier(self) -> SecretIdentifier:
        return self._identifier

    def delete_stored_password(self) -> bool:
        """Return True if deleted or nothing was stored; False on an anomalous result."""
        try:
            status = self._backend.delete(self._identifier)
        except SecretStoreError:
            LOGGER.warning("delete raised account=%s", self._identifier.account, exc_info=True)
            return False
        LOGGER.debug("delete account=%s status=%s", self._identifier.account, status.value)
        return status in (StoreStatus.SUCCESS, StoreStatus.ITEM_NOT_FOUND)

    def store_password(self, password: Union[str, bytes], protect_with_passcode: bool = False) -> None:
        """Store the password, silently replacing any previous one.

        Replacement is delete-then-insert: the backend has no upsert, so for a
        short window no password is stored. Encoding and policy are checked
        before the old entry is removed, so those failures leave it intact.
        """
        data = _encode(password)
        access_control = self._build_access_control(protect_with_passcode)

        if not self.delete_stored_password():
            LOGGER.warning("previous password could not be deleted account=%s", self._identifier.account)

        status = self._backend.insert(
            self._identifier,
            data,
            access_control,
            interactive_auth_allowed=True,
        )
        if status != StoreStatus.SUCCESS:
            raise InsertError(f"failed to store password: {status.value}", status=status)
        LOGGER.info(
            "password stored account=%s protection=%s",
            self._identifier.account,
            access_control.protection.value,
        )

    def query_password(self) -> LoadResult:
        try:
            status, data = self._backend.query(
                self._identifier,
                return_data=True,
                operation_prompt=self._operation_prompt,
            )
        except SecretStoreError:
            LOGGER.warning("query raised account=%s", self._identifier.account, exc_info=True)
            return LoadResult(outcome=LoadOutcome.UNEXPECTED)
        if status != StoreStatus.SUCCESS:
            outcome = _OUTCOME_BY_STATUS.get(status, LoadOutcome.UNEXPECTED)
            LOGGER.info("password not loaded account=%s status=%s", self._identifier.account, status.value)
            return LoadResult(outcome=outcome)
        if data is None:
            return LoadResult(outcome=LoadOutcome.UNDECODABLE)
        try:
            return LoadResult(outcome=LoadOutcome.FOUND, password=data.decode("utf-8"))
        except UnicodeDecodeError:
            LOGGER.warning("stored password is not valid UTF-8 account=%s", self._identifier.account)
            return LoadResult(outcome=LoadOutcome.UNDECODABLE)

    async def load_password_result(self) -> LoadResult:
        """Load the password, reporting why nothing was loaded.

        The query runs on a worker thread; the result is returned on the
        caller's event loop exactly once. No cancellation, no timeout.
        """
        return await asyncio.to_thread(self.query_password)

    async def load_password(self) -> Optional[str]:
        """Return the password, or None.

        None covers not stored, canceled, failed authentication, undecodable
        data and any other store error alike; use load_password_result to
        tell them apart.
        """
        result = await self.load_password_result()
        return result.password if result.found else None

    def _build_access_control(self, protect_with_passcode: bool) -> AccessControl:
        if protect_with_passcode:
            protection = ProtectionPolicy.WHEN_PASSCODE_SET_REQUIRES_PRESENCE
            flags = frozenset({AccessControlFlag.USER_PRESENCE})
        else:
            protection = ProtectionPolicy.WHEN_UNLOCKED
            flags = frozenset()
        try:
            return self._backend.create_access_control(protection, flags)
        except AccessControlCreationError as exc:
            raise AccessControlError(f"failed to create access control: {exc}") from exc


def _encode(password: Union[str, bytes]) -> bytes:
    if isinstance(password, bytes):
        return password
    try:
        return password.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodingError("password cannot be encoded as UTF-8") from exc
