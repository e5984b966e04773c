"""Keychain demo entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
from pathlib import Path
from typing import Optional

from keychain_demo.config.credentials import open_credential_store
from keychain_demo.config.settings import (
    Settings,
    SettingsLoadError,
    load_settings,
    log_level,
    settings_from_mapping,
)
from keychain_demo.secrets.base import SecretStoreError, StoreError
from keychain_demo.secrets.credential_store import LoadOutcome, LocalCredentialStore
from keychain_demo.secrets.presence import hash_passcode

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("keyring").setLevel(logging.WARNING)

DEMO_PASSWORD = "123456"

_OUTCOME_MESSAGES = {
    LoadOutcome.NOT_FOUND: "No password is stored.",
    LoadOutcome.USER_CANCELED: "Authentication was canceled.",
    LoadOutcome.AUTH_FAILED: "Authentication failed.",
    LoadOutcome.UNDECODABLE: "Stored password could not be decoded.",
    LoadOutcome.UNEXPECTED: "Credential store returned an unexpected error.",
}


def _default_config_path() -> Path:
    workspace_root = Path(os.getenv("KCD_WORKSPACE_ROOT", Path(__file__).resolve().parents[1]))
    return workspace_root / "config/keychain.yaml"


def _load_settings(config_arg: Optional[str]) -> Settings:
    raw = config_arg or os.getenv("KCD_CONFIG_PATH", "").strip()
    if raw:
        return load_settings(Path(raw))
    path = _default_config_path()
    if path.exists():
        return load_settings(path)
    logging.info("no settings file at %s, using defaults", path)
    return settings_from_mapping({})


def _cmd_demo(store: LocalCredentialStore, password: str, protect: bool) -> int:
    try:
        store.store_password(password, protect_with_passcode=protect)
    except StoreError as exc:
        print(exc)
        return 1

    loaded = asyncio.run(store.load_password())
    if loaded is None:
        print("Password not found!")
        return 1
    print(f"Loaded: {loaded}")
    return 0


def _cmd_store(store: LocalCredentialStore, protect: bool) -> int:
    password = getpass.getpass("Password: ")
    if not password:
        print("Password must not be empty.")
        return 1
    try:
        store.store_password(password, protect_with_passcode=protect)
    except StoreError as exc:
        print(f"Store failed: {exc}")
        return 1
    print(f"Stored password for {store.identifier.service} / {store.identifier.account}")
    return 0


def _cmd_load(store: LocalCredentialStore) -> int:
    result = asyncio.run(store.load_password_result())
    if not result.found:
        print(_OUTCOME_MESSAGES[result.outcome])
        return 1
    print(f"Loaded: {result.password}")
    return 0


def _cmd_delete(store: LocalCredentialStore) -> int:
    if store.delete_stored_password():
        print("Stored password removed.")
        return 0
    print("Credential store returned an unexpected error.")
    return 1


def _cmd_hash_passcode() -> int:
    first = getpass.getpass("New passcode: ")
    second = getpass.getpass("Repeat passcode: ")
    if not first:
        print("Passcode must not be empty.")
        return 1
    if first != second:
        print("Passcodes do not match.")
        return 1
    print(hash_passcode(first))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Store and load a login password in the OS credential store")
    parser.add_argument("--config", help="Path to keychain.yaml (default: config/keychain.yaml)")
    parser.add_argument("--service", help="Override the service name used as the entry identifier")
    sub = parser.add_subparsers(dest="command", required=True)

    demo = sub.add_parser("demo", help="Store a password, then load it back")
    demo.add_argument("--password", default=DEMO_PASSWORD)
    demo.add_argument("--protect", action="store_true", help="Require passcode on every read")

    store = sub.add_parser("store", help="Store a password (prompted)")
    store.add_argument("--protect", action="store_true", help="Require passcode on every read")

    sub.add_parser("load", help="Load the stored password")
    sub.add_parser("delete", help="Delete the stored password")
    sub.add_parser("hash-passcode", help="Print a value for auth.passcode_hash")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.command == "hash-passcode":
        return _cmd_hash_passcode()

    try:
        settings = _load_settings(args.config)
    except SettingsLoadError as exc:
        logging.error("startup blocked by invalid settings: %s", exc)
        print(
            "Startup failed: settings are invalid.\n"
            f"- detail: {exc}"
        )
        return 2
    logging.getLogger().setLevel(log_level(settings))

    service_override = args.service or os.getenv("KCD_SERVICE_NAME", "").strip() or None
    try:
        store = open_credential_store(settings, service_name=service_override)
    except SecretStoreError as exc:
        logging.error("startup blocked by credential store: %s", exc)
        print(
            "Startup failed: OS credential store is not available.\n"
            f"- detail: {exc}"
        )
        return 2
    logging.info(
        "credential store ready service=%s account=%s",
        store.identifier.service,
        store.identifier.account,
    )

    protect = bool(getattr(args, "protect", False)) or settings.credential.protect_with_passcode
    if args.command == "demo":
        return _cmd_demo(store, password=args.password, protect=protect)
    if args.command == "store":
        return _cmd_store(store, protect=protect)
    if args.command == "load":
        return _cmd_load(store)
    return _cmd_delete(store)


if __name__ == "__main__":
    raise SystemExit(main())
