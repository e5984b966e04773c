"""Settings loader for the keychain demo."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from typing import Any

import yaml

from keychain_demo.secrets.base import IDENTIFIER_MAX_LENGTH
from keychain_demo.secrets.presence import PresenceConfigError, parse_passcode_hash

DISTRIBUTION_NAME = "keychain-demo"
FALLBACK_SERVICE_NAME = "Unknown App"
DEFAULT_ACCOUNT = "Login Password"

_OPERATION_PROMPTS = {
    "ja": "パスワードを引き出すのに、生体認証してください",
    "en": "Authenticate to retrieve your password",
}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class AppConfig:
    display_name: str


@dataclass(frozen=True)
class CredentialConfig:
    account: str
    operation_prompt: str
    protect_with_passcode: bool


@dataclass(frozen=True)
class AuthConfig:
    passcode_hash: str
    max_attempts: int


@dataclass(frozen=True)
class UiConfig:
    language: str


@dataclass(frozen=True)
class LoggingConfig:
    level: str


@dataclass(frozen=True)
class Settings:
    version: str
    app: AppConfig
    credential: CredentialConfig
    auth: AuthConfig
    ui: UiConfig
    logging: LoggingConfig


class SettingsLoadError(RuntimeError):
    """Raised when settings cannot be loaded."""


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise SettingsLoadError(f"{key} must be an object")
    return value


def default_operation_prompt(language: str) -> str:
    return _OPERATION_PROMPTS.get(language, _OPERATION_PROMPTS["en"])


def resolve_service_name(display_name: str = "") -> str:
    """Service half of the identifier: configured name, package metadata, or a placeholder."""
    name = (display_name or "").strip()
    if name:
        return name
    try:
        name = (metadata.metadata(DISTRIBUTION_NAME).get("Name") or "").strip()
    except metadata.PackageNotFoundError:
        name = ""
    return name or FALLBACK_SERVICE_NAME


def load_settings(path: Path) -> Settings:
    if not path.exists():
        raise SettingsLoadError(f"settings file not found: {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SettingsLoadError(f"settings file is not valid YAML: {path}") from exc
    if not isinstance(raw, dict):
        raise SettingsLoadError("settings root must be an object")
    return settings_from_mapping(raw)


def settings_from_mapping(raw: dict[str, Any]) -> Settings:
    app_raw = _section(raw, "app")
    credential_raw = _section(raw, "credential")
    auth_raw = _section(raw, "auth")
    ui_raw = _section(raw, "ui")
    logging_raw = _section(raw, "logging")

    account = str(credential_raw.get("account", DEFAULT_ACCOUNT)).strip()
    if not account:
        raise SettingsLoadError("credential.account must not be empty")
    if len(account) > IDENTIFIER_MAX_LENGTH:
        raise SettingsLoadError(f"credential.account must be at most {IDENTIFIER_MAX_LENGTH} characters")

    display_name = str(app_raw.get("display_name") or "").strip()
    if len(display_name) > IDENTIFIER_MAX_LENGTH:
        raise SettingsLoadError(f"app.display_name must be at most {IDENTIFIER_MAX_LENGTH} characters")

    language = str(ui_raw.get("language", "ja")).strip().lower()
    if language not in _OPERATION_PROMPTS:
        raise SettingsLoadError(f"invalid ui.language: {language}")

    operation_prompt = str(credential_raw.get("operation_prompt") or "").strip()
    if not operation_prompt:
        operation_prompt = default_operation_prompt(language)

    try:
        max_attempts = int(auth_raw.get("max_attempts", 3))
    except (TypeError, ValueError) as exc:
        raise SettingsLoadError("auth.max_attempts must be an integer") from exc
    if max_attempts < 1:
        raise SettingsLoadError("auth.max_attempts must be >= 1")

    passcode_hash = str(auth_raw.get("passcode_hash") or "").strip()
    if passcode_hash:
        try:
            parse_passcode_hash(passcode_hash)
        except PresenceConfigError as exc:
            raise SettingsLoadError(f"invalid auth.passcode_hash ({exc}); regenerate it with hash-passcode") from exc

    level = str(logging_raw.get("level", "INFO")).strip().upper()
    if level not in _LOG_LEVELS:
        raise SettingsLoadError(f"invalid logging.level: {level}")

    return Settings(
        version=str(raw.get("version", "1")),
        app=AppConfig(display_name=display_name),
        credential=CredentialConfig(
            account=account,
            operation_prompt=operation_prompt,
            protect_with_passcode=bool(credential_raw.get("protect_with_passcode", False)),
        ),
        auth=AuthConfig(passcode_hash=passcode_hash, max_attempts=max_attempts),
        ui=UiConfig(language=language),
        logging=LoggingConfig(level=level),
    )


def log_level(settings: Settings) -> int:
    return getattr(logging, settings.logging.level)
