"""Credential store facade.

The identifier is resolved once here and handed to the store; nothing
else in the process derives it.
"""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from keychain_demo.config.settings import Settings, resolve_service_name
from keychain_demo.secrets.base import SecretIdentifier, SecretStoreError
from keychain_demo.secrets.credential_store import LocalCredentialStore
from keychain_demo.secrets.factory import create_secure_store


def build_identifier(settings: Settings, service_name: Optional[str] = None) -> SecretIdentifier:
    service = (service_name or "").strip() or resolve_service_name(settings.app.display_name)
    try:
        return SecretIdentifier(service=service, account=settings.credential.account)
    except ValidationError as exc:
        raise SecretStoreError(f"invalid credential identifier: {exc.errors()[0]['msg']}") from exc


def open_credential_store(settings: Settings, service_name: Optional[str] = None) -> LocalCredentialStore:
    return LocalCredentialStore(
        backend=create_secure_store(settings),
        identifier=build_identifier(settings, service_name=service_name),
        operation_prompt=settings.credential.operation_prompt,
    )


__all__ = ["build_identifier", "open_credential_store", "SecretStoreError"]
