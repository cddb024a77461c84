"""
Exception classes for symmetric encryption operations.

All library errors derive from SymmetricEncryptionError. Failures of the
underlying byte streams are not wrapped: OSError propagates unchanged.
"""

from __future__ import annotations


class SymmetricEncryptionError(Exception):
    """Base exception for all symmetric encryption operations."""

    pass


class ConfigError(SymmetricEncryptionError):
    """Malformed or missing configuration, unknown environment or algorithm."""

    pass


class KeyUnwrapError(SymmetricEncryptionError):
    """RSA unwrap of a symmetric key or iv failed, or a key file is malformed."""

    pass


class UnknownCipherError(SymmetricEncryptionError):
    """Cipher name not present in the key store."""

    pass


class DecryptionError(SymmetricEncryptionError):
    """Ciphertext could not be decoded, decrypted or unpadded."""

    pass


class NotLoadedError(SymmetricEncryptionError):
    """Operation attempted before a key store was loaded."""

    pass


class KeyFileExistsError(SymmetricEncryptionError):
    """Key generation would overwrite existing key files."""

    pass
