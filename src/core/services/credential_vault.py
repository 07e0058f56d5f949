"""Vault simétrico de credenciales (AES-256-CBC).

Formato almacenado: `hex(iv):hex(ciphertext)`, IV aleatorio de 16 bytes por
cifrado. La clave es configuración de proceso: se valida una vez al construir
el vault, no en cada llamada.
"""

from __future__ import annotations

import os
import secrets
import string
from typing import Mapping

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from core.config import AppSettings
from core.domain.errors import ConfigurationError, DecryptionError, FormatError
from core.domain.models import EncryptedSecret

KEY_LENGTH = 32
IV_LENGTH = 16
_BLOCK_BITS = algorithms.AES.block_size

_KEY_ALPHABET = string.ascii_letters + string.digits


def generate_key() -> str:
    """Clave aleatoria de 32 caracteres ASCII (32 bytes en UTF-8)."""

    return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(KEY_LENGTH))


class CredentialVault:
    def __init__(self, key: str | bytes) -> None:
        raw = key.encode("utf-8") if isinstance(key, str) else bytes(key)
        if len(raw) != KEY_LENGTH:
            raise ConfigurationError(
                f"Encryption key must be exactly {KEY_LENGTH} bytes long",
                {"key_length": len(raw)},
            )
        self._key = raw

    def __repr__(self) -> str:
        return "CredentialVault(key=<redacted>)"

    @classmethod
    def from_settings(cls, settings: AppSettings | None = None) -> "CredentialVault":
        settings = settings or AppSettings()
        key = settings.encryption_key_bytes()
        if key is None:
            raise ConfigurationError("PAYBRIDGE_ENCRYPTION_KEY is not configured")
        return cls(key)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(_BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return EncryptedSecret(iv=iv, ciphertext=ciphertext).serialize()

    def decrypt(self, serialized: str) -> str:
        secret = EncryptedSecret.parse(serialized)
        try:
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(secret.iv)).decryptor()
            padded = decryptor.update(secret.ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except ValueError as exc:
            # Padding inválido, longitud no múltiplo de bloque o UTF-8 inválido.
            raise DecryptionError(
                "Failed to decrypt secret; the encryption key may have changed"
            ) from exc

    @staticmethod
    def looks_encrypted(value: str | None) -> bool:
        if not value:
            return False
        try:
            EncryptedSecret.parse(value)
        except FormatError:
            return False
        return True

    def reveal(self, value: str) -> str:
        """Descifra si `value` tiene forma de secreto; si no, lo devuelve tal cual."""

        if self.looks_encrypted(value):
            return self.decrypt(value)
        return value


def rotate_secret(serialized: str, *, old: CredentialVault, new: CredentialVault) -> str:
    return new.encrypt(old.decrypt(serialized))


def rotate_secrets(
    values: Mapping[str, str | None],
    *,
    old: CredentialVault,
    new: CredentialVault,
) -> dict[str, str | None]:
    """Re-cifra un conjunto de columnas cifradas; `None` pasa sin tocar."""

    return {
        name: (rotate_secret(value, old=old, new=new) if value else value)
        for name, value in values.items()
    }
