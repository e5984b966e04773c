import json

import pytest

from keychain_demo.secrets.base import (
    AccessControlCreationError,
    AccessControlFlag,
    ProtectionPolicy,
    StoreStatus,
)
from keychain_demo.secrets.keyring_store import KeyringSecureStore
from keychain_demo.secrets.presence import PasscodePresenceVerifier, hash_passcode

PASSCODE_HASH = hash_passcode("2468", salt=b"fedcba9876543210", iterations=1000)


def _verifier(answer: str = "2468") -> PasscodePresenceVerifier:
    return PasscodePresenceVerifier(PASSCODE_HASH, max_attempts=1, read_passcode=lambda prompt: answer)


def test_insert_writes_json_envelope(memory_keyring, identifier) -> None:
    backend = KeyringSecureStore()
    acl = backend.create_access_control(ProtectionPolicy.WHEN_UNLOCKED)

    assert backend.insert(identifier, b"123456", acl) == StoreStatus.SUCCESS

    raw = memory_keyring.entries[(identifier.service, identifier.account)]
    record = json.loads(raw)
    assert record["protection"] == "when_unlocked"
    assert record["user_presence"] is False
    assert "123456" not in raw


def test_insert_reports_duplicate(memory_keyring, identifier) -> None:
    backend = KeyringSecureStore()
    acl = backend.create_access_control(ProtectionPolicy.WHEN_UNLOCKED)
    backend.insert(identifier, b"one", acl)

    assert backend.insert(identifier, b"two", acl) == StoreStatus.DUPLICATE_ITEM
    assert backend.query(identifier) == (StoreStatus.SUCCESS, b"one")


def test_delete_missing_entry_is_not_found(memory_keyring, identifier) -> None:
    assert KeyringSecureStore().delete(identifier) == StoreStatus.ITEM_NOT_FOUND


def test_query_locked_keyring(memory_keyring, identifier) -> None:
    memory_keyring.locked = True
    assert KeyringSecureStore().query(identifier) == (StoreStatus.INTERACTION_NOT_ALLOWED, None)


def test_query_foreign_entry_is_unexpected(memory_keyring, identifier) -> None:
    memory_keyring.entries[(identifier.service, identifier.account)] = "plain text written by another tool"
    assert KeyringSecureStore().query(identifier) == (StoreStatus.UNEXPECTED, None)


def test_query_without_return_data(memory_keyring, identifier) -> None:
    backend = KeyringSecureStore()
    backend.insert(identifier, b"abc", backend.create_access_control(ProtectionPolicy.WHEN_UNLOCKED))
    assert backend.query(identifier, return_data=False) == (StoreStatus.SUCCESS, None)


def test_presence_policy_needs_passcode() -> None:
    with pytest.raises(AccessControlCreationError):
        KeyringSecureStore().create_access_control(
            ProtectionPolicy.WHEN_PASSCODE_SET_REQUIRES_PRESENCE,
            frozenset({AccessControlFlag.USER_PRESENCE}),
        )


def test_protected_entry_read_after_verifier_removed_fails(memory_keyring, identifier) -> None:
    writer = KeyringSecureStore(presence_verifier=_verifier())
    acl = writer.create_access_control(
        ProtectionPolicy.WHEN_PASSCODE_SET_REQUIRES_PRESENCE,
        frozenset({AccessControlFlag.USER_PRESENCE}),
    )
    writer.insert(identifier, b"secret", acl)

    assert KeyringSecureStore().query(identifier) == (StoreStatus.AUTH_FAILED, None)


def test_protected_entry_without_interactive_auth(memory_keyring, identifier) -> None:
    backend = KeyringSecureStore(presence_verifier=_verifier())
    acl = backend.create_access_control(
        ProtectionPolicy.WHEN_PASSCODE_SET_REQUIRES_PRESENCE,
        frozenset({AccessControlFlag.USER_PRESENCE}),
    )
    backend.insert(identifier, b"secret", acl, interactive_auth_allowed=False)

    assert backend.query(identifier) == (StoreStatus.INTERACTION_NOT_ALLOWED, None)


@pytest.mark.parametrize(
    "answer, expected",
    [
        ("2468", StoreStatus.SUCCESS),
        ("", StoreStatus.USER_CANCELED),
        ("1357", StoreStatus.AUTH_FAILED),
    ],
)
def test_protected_entry_presence_outcomes(memory_keyring, identifier, answer: str, expected: StoreStatus) -> None:
    backend = KeyringSecureStore(presence_verifier=_verifier(answer))
    acl = backend.create_access_control(
        ProtectionPolicy.WHEN_PASSCODE_SET_REQUIRES_PRESENCE,
        frozenset({AccessControlFlag.USER_PRESENCE}),
    )
    backend.insert(identifier, b"secret", acl)

    status, data = backend.query(identifier, operation_prompt="Unlock")
    assert status == expected
    assert data == (b"secret" if expected == StoreStatus.SUCCESS else None)


def test_label_follows_platform(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("platform.system", lambda: "Darwin")
    assert KeyringSecureStore().label == "Keychain"
    monkeypatch.setattr("platform.system", lambda: "Linux")
    assert KeyringSecureStore().label == "Secret Service"


def test_prompt_error_is_reported_as_status(memory_keyring, identifier) -> None:
    def broken_terminal(prompt: str) -> str:
        raise OSError("no terminal")

    backend = KeyringSecureStore(
        presence_verifier=PasscodePresenceVerifier(PASSCODE_HASH, read_passcode=broken_terminal)
    )
    acl = backend.create_access_control(
        ProtectionPolicy.WHEN_PASSCODE_SET_REQUIRES_PRESENCE,
        frozenset({AccessControlFlag.USER_PRESENCE}),
    )
    backend.insert(identifier, b"secret", acl)

    assert backend.query(identifier, operation_prompt="Unlock") == (StoreStatus.UNEXPECTED, None)
