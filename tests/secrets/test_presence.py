import pytest

from keychain_demo.secrets.presence import (
    PasscodePresenceVerifier,
    PresenceConfigError,
    PresenceResult,
    hash_passcode,
    parse_passcode_hash,
    verify_passcode,
)


def _answers(*values):
    it = iter(values)

    def read(prompt: str) -> str:
        value = next(it)
        if isinstance(value, BaseException):
            raise value
        return value

    return read


def test_hash_passcode_verifies() -> None:
    encoded = hash_passcode("2468", iterations=1000)
    assert encoded.startswith("pbkdf2_sha256$1000$")
    assert verify_passcode("2468", encoded)
    assert not verify_passcode("2469", encoded)


def test_hash_passcode_salts_each_call() -> None:
    assert hash_passcode("2468", iterations=1000) != hash_passcode("2468", iterations=1000)


@pytest.mark.parametrize("encoded", ["", "sha1$1$aa$bb", "pbkdf2_sha256$x$aa$bb", "pbkdf2_sha256$10$zz$bb"])
def test_verify_rejects_malformed_hash(encoded: str) -> None:
    with pytest.raises(PresenceConfigError):
        verify_passcode("2468", encoded)


def test_empty_passcode_cannot_be_hashed() -> None:
    with pytest.raises(PresenceConfigError):
        hash_passcode("")


def test_verifier_accepts_after_retry() -> None:
    verifier = PasscodePresenceVerifier(
        hash_passcode("2468", iterations=1000),
        max_attempts=3,
        read_passcode=_answers("1111", "2468"),
    )
    assert verifier.verify("Unlock") == PresenceResult.VERIFIED


def test_verifier_fails_after_max_attempts() -> None:
    verifier = PasscodePresenceVerifier(
        hash_passcode("2468", iterations=1000),
        max_attempts=2,
        read_passcode=_answers("1111", "2222"),
    )
    assert verifier.verify("Unlock") == PresenceResult.FAILED


@pytest.mark.parametrize("answer", ["", EOFError(), KeyboardInterrupt()])
def test_verifier_cancel(answer) -> None:
    verifier = PasscodePresenceVerifier(
        hash_passcode("2468", iterations=1000),
        read_passcode=_answers(answer),
    )
    assert verifier.verify("Unlock") == PresenceResult.CANCELED


def test_verifier_without_passcode_is_unavailable() -> None:
    verifier = PasscodePresenceVerifier("", read_passcode=_answers())
    assert not verifier.available
    assert verifier.verify("Unlock") == PresenceResult.FAILED


def test_verifier_rejects_zero_attempts() -> None:
    with pytest.raises(PresenceConfigError):
        PasscodePresenceVerifier(hash_passcode("2468", iterations=1000), max_attempts=0)


def test_parse_passcode_hash_fields() -> None:
    iterations, salt, digest = parse_passcode_hash(hash_passcode("2468", salt=b"s" * 16, iterations=1000))
    assert iterations == 1000
    assert salt == b"s" * 16
    assert len(digest) == 32


@pytest.mark.parametrize("encoded", ["pbkdf2_sha256$oops", "pbkdf2_sha256$10$$", "pbkdf2_sha256$0$aa$bb"])
def test_verifier_rejects_unusable_hash_up_front(encoded: str) -> None:
    with pytest.raises(PresenceConfigError):
        PasscodePresenceVerifier(encoded, read_passcode=_answers())
