"""
Cryptographic primitives for AES-CBC symmetric encryption.

This module provides:
- Algorithm: Supported block ciphers with their key and iv sizes
- Encoding: Text encodings applied to string-mode ciphertext
- EncryptStage / DecryptStage: Incremental AES-CBC transforms with PKCS7 padding
- CipherSpec: One immutable algorithm + key + iv + encoding configuration

Encryption is deterministic: the iv is part of the configuration and is reused
for every message encrypted with a CipherSpec. There is no authentication tag,
so a wrong key is only detected through invalid padding.
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import ConfigError, DecryptionError

# AES block size, also the iv size of every supported algorithm
BLOCK_SIZE: int = 16


class Algorithm(Enum):
    """Supported symmetric ciphers (all AES in CBC mode)."""

    AES_128_CBC = ("aes-128-cbc", 16)
    AES_192_CBC = ("aes-192-cbc", 24)
    AES_256_CBC = ("aes-256-cbc", 32)

    def __init__(self, cipher_name: str, key_size: int) -> None:
        self.cipher_name = cipher_name
        self.key_size = key_size

    @property
    def iv_size(self) -> int:
        return BLOCK_SIZE

    @property
    def block_size(self) -> int:
        return BLOCK_SIZE

    def __str__(self) -> str:
        return self.cipher_name

    @classmethod
    def from_name(cls, name: Union[str, Algorithm]) -> Algorithm:
        """Parse from a configuration name such as ``aes-256-cbc``."""
        if isinstance(name, Algorithm):
            return name
        wanted = str(name).strip().lower()
        for algorithm in cls:
            if algorithm.cipher_name == wanted:
                return algorithm
        raise ConfigError(f"Unsupported cipher: {name}")


class Encoding(Enum):
    """Output encoding for string-mode encryption."""

    RAW = "raw"
    BASE64 = "base64"  # MIME style, newline separated
    BASE64_STRICT = "base64strict"  # no newlines

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: Union[str, Encoding]) -> Encoding:
        """Parse from a configuration name."""
        if isinstance(name, Encoding):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise ConfigError(f"Unsupported encoding: {name}")

    def encode(self, data: bytes) -> Union[str, bytes]:
        if self is Encoding.RAW:
            return data
        if self is Encoding.BASE64:
            return base64.encodebytes(data).decode("ascii")
        return base64.standard_b64encode(data).decode("ascii")

    def decode(self, data: Union[str, bytes]) -> bytes:
        if self is Encoding.RAW:
            if not isinstance(data, str):
                return bytes(data)
            try:
                return data.encode("latin-1")
            except UnicodeEncodeError:
                raise DecryptionError("Raw ciphertext must be bytes")
        try:
            if self is Encoding.BASE64:
                return base64.b64decode(data)
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError(f"Base64 decode error: {e}")


class EncryptStage:
    """
    Incremental AES-CBC encryption.

    ``update`` returns only whole ciphertext blocks; the PKCS7 padding is
    applied to the final partial block by ``finalize``.
    """

    def __init__(self, key: bytes, iv: bytes) -> None:
        self._encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        self._padder = padding.PKCS7(BLOCK_SIZE * 8).padder()

    def update(self, data: bytes) -> bytes:
        return self._encryptor.update(self._padder.update(data))

    def finalize(self) -> bytes:
        return self._encryptor.update(self._padder.finalize()) + self._encryptor.finalize()


class DecryptStage:
    """
    Incremental AES-CBC decryption.

    The last plaintext block is held back until ``finalize`` so that padding
    is only removed once the end of the ciphertext is known.
    """

    def __init__(self, key: bytes, iv: bytes) -> None:
        self._decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        self._unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()

    def update(self, data: bytes) -> bytes:
        return self._unpadder.update(self._decryptor.update(data))

    def finalize(self) -> bytes:
        try:
            tail = self._decryptor.finalize()
            return self._unpadder.update(tail) + self._unpadder.finalize()
        except ValueError:
            # Generic error, the padding oracle must not get more detail
            raise DecryptionError("Decryption failed")


def _as_bytes(data: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


@dataclass(frozen=True, eq=False)
class CipherSpec:
    """
    Immutable symmetric cipher configuration.

    Identity is the ``name``: two specs with the same name compare equal.
    Key material is excluded from ``repr``.
    """

    name: str
    algorithm: Algorithm
    key: bytes = field(repr=False)
    iv: bytes = field(repr=False)
    encoding: Encoding = Encoding.BASE64

    def __post_init__(self) -> None:
        object.__setattr__(self, "algorithm", Algorithm.from_name(self.algorithm))
        object.__setattr__(self, "encoding", Encoding.from_name(self.encoding))
        if not self.name:
            raise ConfigError("Cipher name must not be empty")
        if not isinstance(self.key, (bytes, bytearray)) or not isinstance(
            self.iv, (bytes, bytearray)
        ):
            raise ConfigError("Key and iv must be bytes")
        if len(self.key) != self.algorithm.key_size:
            raise ConfigError(
                f"Invalid key size for {self.algorithm}: "
                f"expected {self.algorithm.key_size}, got {len(self.key)}"
            )
        if len(self.iv) != self.algorithm.iv_size:
            raise ConfigError(
                f"Invalid iv size for {self.algorithm}: "
                f"expected {self.algorithm.iv_size}, got {len(self.iv)}"
            )
        object.__setattr__(self, "key", bytes(self.key))
        object.__setattr__(self, "iv", bytes(self.iv))

    @classmethod
    def generate(
        cls,
        name: str = "current",
        algorithm: Union[str, Algorithm] = Algorithm.AES_256_CBC,
        encoding: Union[str, Encoding] = Encoding.BASE64,
    ) -> CipherSpec:
        """Create a CipherSpec with a fresh random key and iv."""
        algorithm = Algorithm.from_name(algorithm)
        return cls(
            name=name,
            algorithm=algorithm,
            key=secrets.token_bytes(algorithm.key_size),
            iv=secrets.token_bytes(algorithm.iv_size),
            encoding=encoding,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CipherSpec):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def encryptor(self) -> EncryptStage:
        """Return a new incremental encryption stage for this cipher."""
        return EncryptStage(self.key, self.iv)

    def decryptor(self) -> DecryptStage:
        """Return a new incremental decryption stage for this cipher."""
        return DecryptStage(self.key, self.iv)

    def encrypt(self, data: Union[str, bytes]) -> bytes:
        """
        Encrypt to raw ciphertext bytes.

        Args:
            data: Plaintext, str values are UTF-8 encoded first

        Returns:
            Padded AES-CBC ciphertext
        """
        stage = self.encryptor()
        return stage.update(_as_bytes(data)) + stage.finalize()

    def decrypt(self, data: bytes) -> bytes:
        """
        Decrypt raw ciphertext bytes.

        Raises:
            DecryptionError: If the input is empty, not block aligned or the
                padding is invalid after decryption
        """
        if not data:
            raise DecryptionError("Cannot decrypt empty ciphertext")
        if len(data) % BLOCK_SIZE:
            raise DecryptionError("Ciphertext length is not a multiple of the block size")
        stage = self.decryptor()
        return stage.update(bytes(data)) + stage.finalize()

    def encrypt_string(self, plaintext: Union[str, bytes]) -> Union[str, bytes]:
        """Encrypt and encode per ``encoding`` (str for base64, bytes for raw)."""
        return self.encoding.encode(self.encrypt(plaintext))

    def decrypt_string(self, ciphertext: Union[str, bytes]) -> bytes:
        """
        Decode per ``encoding`` and decrypt.

        Raises:
            DecryptionError: On empty input, decode failure or bad padding
        """
        if not ciphertext:
            raise DecryptionError("Cannot decrypt empty ciphertext")
        return self.decrypt(self.encoding.decode(ciphertext))
