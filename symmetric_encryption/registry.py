"""
Process-wide holder of the active key store.

ProcessRegistry owns a single KeyStore reference. Loading builds a complete
new KeyStore first and then swaps the reference under a lock, so readers
(which take no lock) see either the old or the new key set, never a mix.

A module-level ``default_registry`` backs the package-level convenience
functions; tests and embedding applications can create their own instances.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Union

from .config import (
    ConfigSource,
    environment_config,
    key_slots,
    keystore_from_config,
    load_config,
    private_key_pem,
)
from .crypto import CipherSpec
from .errors import ConfigError, NotLoadedError
from .keys import generate_symmetric_key_files as _generate_key_files
from .keys import load_private_key
from .keystore import KeyStore
from .stream import Reader, Target, Writer

logger = logging.getLogger(__name__)


class ProcessRegistry:
    """Atomically swappable reference to the current KeyStore."""

    def __init__(self, keystore: Optional[KeyStore] = None) -> None:
        self._keystore = keystore
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._keystore is not None

    @property
    def keystore(self) -> KeyStore:
        """
        Current KeyStore snapshot.

        Raises:
            NotLoadedError: If nothing was loaded yet
        """
        keystore = self._keystore
        if keystore is None:
            raise NotLoadedError("No key store loaded, call load() first")
        return keystore

    def install(self, keystore: KeyStore) -> Optional[KeyStore]:
        """Replace the current KeyStore and return the previous one."""
        if not isinstance(keystore, KeyStore):
            raise TypeError("install() expects a KeyStore")
        with self._lock:
            previous = self._keystore
            self._keystore = keystore
        return previous

    def load(self, config_source: ConfigSource, environment: str) -> KeyStore:
        """
        Build the KeyStore for ``environment`` and install it.

        Raises:
            ConfigError: If the configuration is invalid
            KeyUnwrapError: If key files cannot be unwrapped
        """
        keystore = keystore_from_config(config_source, environment)
        previous = self.install(keystore)
        if previous is not None:
            logger.info("Replaced key store for environment %s", environment)
        return keystore

    def reset(self) -> None:
        with self._lock:
            self._keystore = None

    def current_cipher(self) -> CipherSpec:
        return self.keystore.default_cipher

    def cipher(self, name: Optional[str] = None) -> CipherSpec:
        return self.keystore.select(name)

    def encrypt(self, plaintext: Union[str, bytes], cipher_name: Optional[str] = None) -> Union[str, bytes]:
        return self.keystore.encrypt(plaintext, cipher_name)

    def decrypt(self, ciphertext: Union[str, bytes], cipher_name: Optional[str] = None) -> bytes:
        return self.keystore.decrypt_with_fallback(ciphertext, cipher_name)

    def try_decrypt(self, ciphertext: Union[str, bytes], cipher_name: Optional[str] = None) -> Optional[bytes]:
        return self.keystore.try_decrypt(ciphertext, cipher_name)

    def writer(
        self,
        target: Target,
        cipher_name: Optional[str] = None,
        header: bool = True,
        compress: bool = False,
    ) -> Writer:
        """Open an encrypting Writer using the current KeyStore."""
        return Writer.open(
            target, self.keystore, cipher_name=cipher_name, header=header, compress=compress
        )

    def reader(
        self,
        source: Target,
        cipher_name: Optional[str] = None,
        header: bool = True,
        compress: bool = False,
    ) -> Reader:
        """Open a decrypting Reader using the current KeyStore."""
        return Reader.open(
            source, keystore=self.keystore, cipher_name=cipher_name, header=header, compress=compress
        )


def generate_symmetric_key_files(
    config_source: ConfigSource,
    environment: str,
    force: bool = False,
) -> List:
    """
    Generate the key files of a file-backed environment.

    The material is wrapped with the public half of the environment's
    ``private_rsa_key``.

    Raises:
        ConfigError: If the environment is not file-backed
        KeyFileExistsError: If a key file exists and ``force`` is false
    """
    config, base_dir = load_config(config_source)
    settings = environment_config(config, environment)
    if "ciphers" not in settings:
        raise ConfigError(f"Environment {environment!r} has no file-backed ciphers")
    public_key = load_private_key(private_key_pem(settings)).public_key()
    return _generate_key_files(key_slots(settings, base_dir), public_key, force=force)


default_registry = ProcessRegistry()


def load(config_source: ConfigSource, environment: str) -> KeyStore:
    return default_registry.load(config_source, environment)


def current_cipher() -> CipherSpec:
    return default_registry.current_cipher()


def cipher(name: Optional[str] = None) -> CipherSpec:
    return default_registry.cipher(name)


def encrypt(plaintext: Union[str, bytes], cipher_name: Optional[str] = None) -> Union[str, bytes]:
    return default_registry.encrypt(plaintext, cipher_name)


def decrypt(ciphertext: Union[str, bytes], cipher_name: Optional[str] = None) -> bytes:
    return default_registry.decrypt(ciphertext, cipher_name)


def try_decrypt(ciphertext: Union[str, bytes], cipher_name: Optional[str] = None) -> Optional[bytes]:
    return default_registry.try_decrypt(ciphertext, cipher_name)
