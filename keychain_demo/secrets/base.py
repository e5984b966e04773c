"""SecretStore abstractions.

Policy: the password lives in the OS credential store only.
The store is addressed by one fixed (service, account) pair.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

IDENTIFIER_MAX_LENGTH = 256


class SecretStoreError(RuntimeError):
    """Raised when a secret cannot be handled securely."""


class StoreStatus(str, Enum):
    SUCCESS = "SUCCESS"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    DUPLICATE_ITEM = "DUPLICATE_ITEM"
    USER_CANCELED = "USER_CANCELED"
    AUTH_FAILED = "AUTH_FAILED"
    INTERACTION_NOT_ALLOWED = "INTERACTION_NOT_ALLOWED"
    UNEXPECTED = "UNEXPECTED"


class StoreError(SecretStoreError):
    """Write-side failure of store_password."""

    def __init__(self, message: str, status: Optional[StoreStatus] = None) -> None:
        super().__init__(message)
        self.status = status


class EncodingError(StoreError):
    """Password could not be converted to bytes."""


class AccessControlError(StoreError):
    """Protection policy object could not be built."""


class InsertError(StoreError):
    """Underlying store rejected the write."""


class AccessControlCreationError(SecretStoreError):
    """Raised by a backend that cannot honour the requested policy."""


class ProtectionPolicy(str, Enum):
    WHEN_UNLOCKED = "when_unlocked"
    WHEN_PASSCODE_SET_REQUIRES_PRESENCE = "when_passcode_set_requires_presence"


class AccessControlFlag(str, Enum):
    USER_PRESENCE = "user_presence"


class SecretIdentifier(BaseModel):
    """Lookup key of the single stored secret."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    service: str = Field(min_length=1, max_length=IDENTIFIER_MAX_LENGTH)
    account: str = Field(min_length=1, max_length=IDENTIFIER_MAX_LENGTH)


@dataclass(frozen=True)
class AccessControl:
    protection: ProtectionPolicy
    flags: frozenset[AccessControlFlag] = field(default_factory=frozenset)

    @property
    def requires_presence(self) -> bool:
        return AccessControlFlag.USER_PRESENCE in self.flags


class SecureStore(ABC):
    """OS secure storage capability.

    Calls report outcomes as StoreStatus values instead of raising, so the
    credential layer decides which anomalies are errors.
    """

    @abstractmethod
    def delete(self, identifier: SecretIdentifier) -> StoreStatus:
        """Remove the entry; ITEM_NOT_FOUND when there was none."""

    @abstractmethod
    def insert(
        self,
        identifier: SecretIdentifier,
        data: bytes,
        access_control: AccessControl,
        interactive_auth_allowed: bool = True,
    ) -> StoreStatus:
        """Create the entry; DUPLICATE_ITEM when one already exists."""

    @abstractmethod
    def query(
        self,
        identifier: SecretIdentifier,
        return_data: bool = True,
        operation_prompt: str = "",
    ) -> tuple[StoreStatus, Optional[bytes]]:
        """Look the entry up. May block on interactive authentication."""

    @abstractmethod
    def create_access_control(
        self,
        protection: ProtectionPolicy,
        flags: frozenset[AccessControlFlag] = frozenset(),
    ) -> AccessControl:
        """Return an access control or raise AccessControlCreationError."""
