"""
RSA key wrapping for symmetric key material at rest.

This module provides:
- KeyUnwrapper: Decrypts RSA-wrapped key/iv files into raw key material
- KeySlot: Target files and algorithm for one generated cipher
- generate_symmetric_key_files: Creates new wrapped key/iv file pairs
- RSA helpers for loading, generating and wrapping with PEM keys

Key file format: each ``.key`` / ``.iv`` file holds the RSA PKCS#1 v1.5
ciphertext of the raw key or iv bytes, with no additional framing.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .crypto import Algorithm
from .errors import KeyFileExistsError, KeyUnwrapError

logger = logging.getLogger(__name__)

DEFAULT_RSA_KEY_SIZE: int = 2048

PathLike = Union[str, Path]


def load_private_key(pem: Union[str, bytes]) -> rsa.RSAPrivateKey:
    """
    Load an unencrypted PEM RSA private key.

    Raises:
        KeyUnwrapError: If the PEM is malformed or not an RSA key
    """
    data = pem.encode("ascii") if isinstance(pem, str) else pem
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError) as e:
        raise KeyUnwrapError(f"Invalid RSA private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyUnwrapError("Private key is not an RSA key")
    return key


def generate_rsa_private_key(key_size: int = DEFAULT_RSA_KEY_SIZE) -> str:
    """Generate a new RSA private key and return it as PEM text."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def wrap(public_key: rsa.RSAPublicKey, data: bytes) -> bytes:
    """RSA-encrypt ``data`` with PKCS#1 v1.5 padding."""
    return public_key.encrypt(data, padding.PKCS1v15())


class KeyUnwrapper:
    """
    Unwraps RSA-encrypted symmetric keys and ivs.

    Holds only the private key; key files are read when ``unwrap_files`` is
    called, which happens once per load.
    """

    def __init__(self, private_key: Union[rsa.RSAPrivateKey, str, bytes]) -> None:
        if isinstance(private_key, (str, bytes)):
            private_key = load_private_key(private_key)
        self._private_key = private_key

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self._private_key.public_key()

    def _decrypt(self, blob: bytes, what: str) -> bytes:
        try:
            return self._private_key.decrypt(blob, padding.PKCS1v15())
        except ValueError as e:
            raise KeyUnwrapError(f"Failed to unwrap {what}") from e

    def unwrap(
        self,
        encrypted_key: bytes,
        encrypted_iv: bytes,
        algorithm: Union[str, Algorithm],
    ) -> Tuple[bytes, bytes]:
        """
        Decrypt a wrapped key and iv.

        Args:
            encrypted_key: Contents of the ``.key`` file
            encrypted_iv: Contents of the ``.iv`` file
            algorithm: Algorithm the key material is for

        Returns:
            (key, iv) raw bytes

        Raises:
            KeyUnwrapError: If RSA decryption fails or the sizes do not match
        """
        algorithm = Algorithm.from_name(algorithm)
        key = self._decrypt(encrypted_key, "key")
        iv = self._decrypt(encrypted_iv, "iv")
        if len(key) != algorithm.key_size:
            raise KeyUnwrapError(
                f"Unwrapped key has {len(key)} bytes, {algorithm} needs {algorithm.key_size}"
            )
        if len(iv) != algorithm.iv_size:
            raise KeyUnwrapError(
                f"Unwrapped iv has {len(iv)} bytes, {algorithm} needs {algorithm.iv_size}"
            )
        return key, iv

    def unwrap_files(
        self,
        key_path: PathLike,
        iv_path: PathLike,
        algorithm: Union[str, Algorithm],
    ) -> Tuple[bytes, bytes]:
        """Read a ``.key`` / ``.iv`` file pair and unwrap it."""
        try:
            encrypted_key = Path(key_path).read_bytes()
            encrypted_iv = Path(iv_path).read_bytes()
        except OSError as e:
            raise KeyUnwrapError(f"Cannot read key file: {e}") from e
        logger.debug("Unwrapping key material from %s", key_path)
        return self.unwrap(encrypted_key, encrypted_iv, algorithm)


@dataclass(frozen=True)
class KeySlot:
    """Files and algorithm for one cipher whose key material gets generated."""

    key_path: Path
    iv_path: Path
    algorithm: Algorithm = Algorithm.AES_256_CBC

    @classmethod
    def for_name(
        cls,
        directory: PathLike,
        name: str,
        algorithm: Union[str, Algorithm] = Algorithm.AES_256_CBC,
    ) -> KeySlot:
        """Slot using the ``<name>.key`` / ``<name>.iv`` convention."""
        directory = Path(directory)
        return cls(
            key_path=directory / f"{name}.key",
            iv_path=directory / f"{name}.iv",
            algorithm=Algorithm.from_name(algorithm),
        )


def generate_symmetric_key_files(
    slots: Iterable[KeySlot],
    public_key: rsa.RSAPublicKey,
    force: bool = False,
) -> List[Path]:
    """
    Generate random key/iv pairs and write them RSA-wrapped.

    All targets are checked before anything is written: overwriting a key
    file orphans the data encrypted with it.

    Args:
        slots: Key slots to generate
        public_key: RSA public key used to wrap the material
        force: Overwrite existing files

    Returns:
        Paths of the files written

    Raises:
        KeyFileExistsError: If a target exists and ``force`` is false
    """
    slots = list(slots)
    if not force:
        existing = [
            str(path)
            for slot in slots
            for path in (slot.key_path, slot.iv_path)
            if path.exists()
        ]
        if existing:
            raise KeyFileExistsError(
                "Refusing to overwrite existing key files: " + ", ".join(existing)
            )

    written: List[Path] = []
    for slot in slots:
        key = secrets.token_bytes(slot.algorithm.key_size)
        iv = secrets.token_bytes(slot.algorithm.iv_size)
        slot.key_path.parent.mkdir(parents=True, exist_ok=True)
        slot.key_path.write_bytes(wrap(public_key, key))
        slot.iv_path.write_bytes(wrap(public_key, iv))
        written.extend([slot.key_path, slot.iv_path])
        logger.info("Generated %s key files %s", slot.algorithm, slot.key_path)
    return written
