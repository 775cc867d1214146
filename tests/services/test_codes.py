"""Tests for pairing code generation and validation."""

from __future__ import annotations

import re

import pytest

from recovery_companion.services import codes as codes_module
from recovery_companion.services.codes import (
    CODE_ALPHABET,
    SPONSOR_CODE_EXPIRY_KEY,
    SPONSOR_CODE_KEY,
    ConnectionCodeService,
    normalize_code,
    validate_code_format,
)
from recovery_companion.services.errors import InvalidCodeFormat, StorageFailure
from recovery_companion.services.secure_store import MemorySecureStore

CODE_RE = re.compile(r"^RC-[A-Z2-9]{6}$")


def test_alphabet_excludes_ambiguous_characters() -> None:
    assert len(CODE_ALPHABET) == 32
    for ambiguous in "01OI":
        assert ambiguous not in CODE_ALPHABET


def test_generated_codes_are_well_formed(code_service: ConnectionCodeService) -> None:
    for _ in range(50):
        code = code_service.generate()
        assert CODE_RE.match(code.code)
        assert not set(code.code[3:]) & set("01OI")
        assert code_service.validate_format(code.code)
        assert code.is_expired is False


def test_generate_persists_and_overwrites(
    code_service: ConnectionCodeService, secure_store: MemorySecureStore
) -> None:
    first = code_service.generate()
    second = code_service.generate()
    assert secure_store.get(SPONSOR_CODE_KEY) == second.code
    current = code_service.get_current()
    assert current is not None
    assert current.code == second.code
    assert first.expires_at == second.expires_at  # frozen clock


def test_code_expires_after_validity_window(code_service: ConnectionCodeService, clock) -> None:
    code = code_service.generate()
    assert code.expires_at - code.created_at == code_service.validity

    clock.advance(days=8)
    current = code_service.get_current()
    assert current is not None
    assert current.is_expired is True
    assert current.code == code.code
    assert current.created_at == code.created_at


def test_get_current_without_code(code_service: ConnectionCodeService) -> None:
    assert code_service.get_current() is None


def test_get_current_swallows_read_errors(mocker, clock) -> None:
    store = MemorySecureStore()
    mocker.patch.object(store, "get", side_effect=StorageFailure("disk gone"))
    service = ConnectionCodeService(store, clock=clock)
    assert service.get_current() is None


def test_get_current_with_corrupt_expiry(
    code_service: ConnectionCodeService, secure_store: MemorySecureStore
) -> None:
    secure_store.set(SPONSOR_CODE_KEY, "RC-ABCDEF")
    secure_store.set(SPONSOR_CODE_EXPIRY_KEY, "not-a-date")
    assert code_service.get_current() is None


def test_generate_propagates_write_failure(mocker, clock) -> None:
    store = MemorySecureStore()
    real_set = store.set

    def flaky_set(key: str, value: str) -> None:
        if key == SPONSOR_CODE_EXPIRY_KEY:
            raise OSError("keychain locked")
        real_set(key, value)

    mocker.patch.object(store, "set", side_effect=flaky_set)
    service = ConnectionCodeService(store, clock=clock)

    with pytest.raises(StorageFailure):
        service.generate()
    # A half-written code must not be reported as active.
    assert service.get_current() is None
    assert SPONSOR_CODE_KEY not in store


def test_revoke_is_idempotent(
    code_service: ConnectionCodeService, secure_store: MemorySecureStore
) -> None:
    code_service.generate()
    code_service.revoke()
    code_service.revoke()
    assert code_service.get_current() is None
    assert SPONSOR_CODE_KEY not in secure_store
    assert SPONSOR_CODE_EXPIRY_KEY not in secure_store


@pytest.mark.parametrize(
    "value",
    [
        "RC-ABCDEF",
        "rc-abcdef",
        "RC-23456Z",
        "rc-k9m2p7",
    ],
)
def test_validate_format_accepts(value: str) -> None:
    assert validate_code_format(value)


@pytest.mark.parametrize(
    "value",
    [
        "rc-abc10i",
        "RC-ABC0EF",
        "RC-ABCDE",
        "RC-ABCDEFG",
        "ABCDEF",
        "XX-ABCDEF",
        "RCABCDEF",
        "",
        None,
        12345,
    ],
)
def test_validate_format_rejects(value: object) -> None:
    assert not validate_code_format(value)


def test_normalize_code() -> None:
    assert normalize_code("  rc-abcdef ") == "RC-ABCDEF"
    with pytest.raises(InvalidCodeFormat):
        normalize_code("RC-0000OO")


def test_weak_randomness_fallback_is_flagged(monkeypatch, caplog, clock) -> None:
    def no_urandom(size: int) -> bytes:
        raise NotImplementedError

    monkeypatch.setattr(codes_module.os, "urandom", no_urandom)
    service = ConnectionCodeService(MemorySecureStore(), clock=clock)

    assert service.strong_randomness_available() is False
    assert "non-cryptographic" in caplog.text
    assert CODE_RE.match(service.generate().code)


def test_strong_randomness_by_default(code_service: ConnectionCodeService) -> None:
    assert code_service.strong_randomness_available() is True
