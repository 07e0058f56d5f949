from __future__ import annotations

import pytest
from pydantic import SecretStr

from core.config import AppSettings
from core.domain.errors import ConfigurationError, DecryptionError, FormatError
from core.services.credential_vault import (
    KEY_LENGTH,
    CredentialVault,
    generate_key,
    rotate_secret,
    rotate_secrets,
)

KEY_A = "a" * 32
KEY_B = "0123456789abcdefghijklmnopqrstuv"


def test_round_trip_preserves_unicode() -> None:
    vault = CredentialVault(KEY_A)
    plaintext = "пароль-касира 🔐"
    assert vault.decrypt(vault.encrypt(plaintext)) == plaintext


def test_each_encryption_uses_a_fresh_iv() -> None:
    vault = CredentialVault(KEY_A)
    first = vault.encrypt("same")
    second = vault.encrypt("same")
    assert first != second
    assert first.split(":")[0] != second.split(":")[0]
    assert len(first.split(":")[0]) == 32


def test_key_must_be_exactly_32_bytes() -> None:
    with pytest.raises(ConfigurationError):
        CredentialVault("short")
    with pytest.raises(ConfigurationError):
        CredentialVault("a" * 33)


def test_malformed_text_raises_format_error() -> None:
    with pytest.raises(FormatError):
        CredentialVault(KEY_A).decrypt("not-encrypted")


def test_wrong_key_raises_decryption_error() -> None:
    # Long plaintext: random bytes after a wrong-key decrypt practically never
    # form both valid padding and valid UTF-8.
    secret = CredentialVault(KEY_A).encrypt("x" * 100)
    with pytest.raises(DecryptionError):
        CredentialVault(KEY_B).decrypt(secret)


def test_reveal_passes_plain_values_through() -> None:
    vault = CredentialVault(KEY_A)
    assert vault.reveal("plain-token") == "plain-token"
    assert vault.reveal(vault.encrypt("tok")) == "tok"
    assert CredentialVault.looks_encrypted(None) is False


def test_rotate_secret_re_encrypts_under_new_key() -> None:
    old = CredentialVault(KEY_A)
    new = CredentialVault(KEY_B)
    rotated = rotate_secret(old.encrypt("license"), old=old, new=new)
    assert new.decrypt(rotated) == "license"

    columns = rotate_secrets({"token": old.encrypt("t"), "password": None}, old=old, new=new)
    assert columns["password"] is None
    assert new.decrypt(columns["token"]) == "t"


def test_generate_key_is_usable() -> None:
    key = generate_key()
    assert len(key) == KEY_LENGTH
    CredentialVault(key)


def test_from_settings_requires_key() -> None:
    with pytest.raises(ConfigurationError):
        CredentialVault.from_settings(AppSettings(_env_file=None, encryption_key=None))
    vault = CredentialVault.from_settings(AppSettings(_env_file=None, encryption_key=SecretStr(KEY_A)))
    assert "redacted" in repr(vault)
