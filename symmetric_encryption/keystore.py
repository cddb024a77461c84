"""
Ordered key store with fallback decryption.

This module provides:
- KeyStore: Current and retired CipherSpecs, ordered current -> oldest
- DecryptResult: Typed outcome of a fallback decryption attempt

Rotation strategy:
1. The default cipher (normally the first entry) encrypts all new data
2. Retired ciphers stay in the store for decryption only
3. Decryption tries the preferred cipher, then the rest in stored order

Trying several keys takes measurably different time depending on which key
matches. Without an authentication tag a wrong key is only rejected by
invalid padding, so a wrong key can occasionally decrypt to garbage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .crypto import CipherSpec
from .errors import ConfigError, DecryptionError, UnknownCipherError


@dataclass(frozen=True)
class DecryptResult:
    """
    Result of ``KeyStore.attempt_decrypt``.

    A successful result holds only the plaintext: neither the cipher nor the
    number of ciphers tried before it. ``failures`` has one reason per cipher
    and is only filled when no cipher matched.
    """

    plaintext: Optional[bytes]
    failures: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.plaintext is not None


class KeyStore:
    """
    Immutable ordered collection of CipherSpecs.

    A reload builds a new KeyStore instead of mutating this one, so holders of
    a reference always see a consistent key set.
    """

    __slots__ = ("_ciphers", "_by_name", "_default")

    def __init__(
        self,
        ciphers: Iterable[CipherSpec],
        default_name: Optional[str] = None,
    ) -> None:
        """
        Initialize KeyStore.

        Args:
            ciphers: CipherSpecs ordered current -> oldest
            default_name: Cipher used for new encryptions, first entry if omitted

        Raises:
            ConfigError: If ``ciphers`` is empty, names repeat or the default
                name is unknown
        """
        ciphers = tuple(ciphers)
        if not ciphers:
            raise ConfigError("A key store needs at least one cipher")

        by_name: Dict[str, CipherSpec] = {}
        for cipher in ciphers:
            if cipher.name in by_name:
                raise ConfigError(f"Duplicate cipher name: {cipher.name}")
            by_name[cipher.name] = cipher

        if default_name is None:
            default = ciphers[0]
        elif default_name in by_name:
            default = by_name[default_name]
        else:
            raise ConfigError(f"Default cipher {default_name!r} is not configured")

        object.__setattr__(self, "_ciphers", ciphers)
        object.__setattr__(self, "_by_name", by_name)
        object.__setattr__(self, "_default", default)

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("KeyStore is immutable")

    def __repr__(self) -> str:
        names = ", ".join(c.name for c in self._ciphers)
        return f"KeyStore([{names}], default={self._default.name!r})"

    def __len__(self) -> int:
        return len(self._ciphers)

    def __iter__(self) -> Iterator[CipherSpec]:
        return iter(self._ciphers)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def ciphers(self) -> Tuple[CipherSpec, ...]:
        return self._ciphers

    @property
    def default_cipher(self) -> CipherSpec:
        return self._default

    @property
    def names(self) -> List[str]:
        return [c.name for c in self._ciphers]

    def select(self, name: Optional[str] = None) -> CipherSpec:
        """
        Return the named cipher, or the default cipher if no name is given.

        Raises:
            UnknownCipherError: If the name is not in this store
        """
        if name is None:
            return self._default
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownCipherError(f"Unknown cipher: {name}")

    def encrypt(self, plaintext: Union[str, bytes], name: Optional[str] = None) -> Union[str, bytes]:
        """Encrypt with the named (or default) cipher and encode the result."""
        return self.select(name).encrypt_string(plaintext)

    def _candidates(self, preferred_name: Optional[str]) -> List[CipherSpec]:
        preferred = self.select(preferred_name)
        return [preferred] + [c for c in self._ciphers if c is not preferred]

    def attempt_decrypt(
        self,
        ciphertext: Union[str, bytes],
        preferred_name: Optional[str] = None,
    ) -> DecryptResult:
        """
        Try the preferred cipher, then every other cipher in stored order.

        Args:
            ciphertext: Encoded ciphertext as produced by ``encrypt``
            preferred_name: Cipher to try first, default cipher if omitted

        Returns:
            DecryptResult with the plaintext of the first cipher that matched
        """
        failures: List[str] = []
        for cipher in self._candidates(preferred_name):
            try:
                plaintext = cipher.decrypt_string(ciphertext)
            except DecryptionError as e:
                failures.append(str(e))
                continue
            return DecryptResult(plaintext=plaintext)
        return DecryptResult(plaintext=None, failures=tuple(failures))

    def decrypt_with_fallback(
        self,
        ciphertext: Union[str, bytes],
        preferred_name: Optional[str] = None,
    ) -> bytes:
        """
        Decrypt using whichever configured cipher matches.

        Raises:
            DecryptionError: If no configured cipher could decrypt the value
            UnknownCipherError: If ``preferred_name`` is not configured
        """
        result = self.attempt_decrypt(ciphertext, preferred_name)
        if not result.ok:
            raise DecryptionError(
                f"No cipher matched after {len(result.failures)} attempts: "
                + "; ".join(sorted(set(result.failures)))
            )
        return result.plaintext

    decrypt = decrypt_with_fallback

    def try_decrypt(
        self,
        ciphertext: Union[str, bytes],
        preferred_name: Optional[str] = None,
    ) -> Optional[bytes]:
        """Like ``decrypt_with_fallback`` but returns None when nothing matched."""
        return self.attempt_decrypt(ciphertext, preferred_name).plaintext
