"""
Configuration loading and key store construction.

A configuration maps environment names to cipher settings. Two forms exist:

Inline (development / test), key material in the configuration itself::

    {"test": {"cipher": "aes-128-cbc",
              "key": "1234567890ABCDEF1234567890ABCDEF",
              "iv": "1234567890ABCDEF"}}

File-backed (staging / production), key material in RSA-wrapped files::

    {"production": {"private_rsa_key_env": "SYMMETRIC_ENCRYPTION_RSA_KEY",
                    "ciphers": [{"key_filename": "keys/app_2024.key",
                                 "iv_filename": "keys/app_2024.iv",
                                 "cipher": "aes-256-cbc",
                                 "encoding": "base64strict"}]}}

Secrets referenced through ``*_env`` settings are read from the process
environment after loading the ``.env`` file found from the current working
directory upwards, if one exists. Variables already set in the environment
win over the file.

Only JSON files (or in-memory mappings) are read. Configurations in the YAML
format of the original ``symmetric-encryption.yml``, including its embedded
template tags, are not supported and must be converted to JSON, with
templated secrets moved to ``*_env`` settings.
"""

from __future__ import annotations

import binascii
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from dotenv import find_dotenv, load_dotenv

from .crypto import Algorithm, CipherSpec, Encoding
from .errors import ConfigError
from .keys import KeySlot, KeyUnwrapper, load_private_key
from .keystore import KeyStore

logger = logging.getLogger(__name__)

DEFAULT_CIPHER = Algorithm.AES_256_CBC
DEFAULT_ENCODING = Encoding.BASE64
DEFAULT_INLINE_NAME = "current"

ConfigSource = Union[str, Path, Mapping[str, Any]]


def load_config(source: ConfigSource) -> Tuple[Dict[str, Any], Optional[Path]]:
    """
    Load a configuration mapping.

    Args:
        source: Mapping used as is, or path of a JSON file

    Returns:
        (config, base_dir) where base_dir resolves relative key filenames

    Raises:
        ConfigError: If the file is missing or not valid JSON
    """
    if isinstance(source, Mapping):
        return dict(source), None

    path = Path(source)
    try:
        with path.open("r", encoding="utf-8") as f:
            config = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Configuration in {path} must be an object")
    return config, path.resolve().parent


def environment_config(config: Mapping[str, Any], environment: str) -> Dict[str, Any]:
    """
    Return the settings for one environment.

    Raises:
        ConfigError: If the environment is missing or not a mapping
    """
    settings = config.get(environment)
    if settings is None:
        raise ConfigError(f"No configuration for environment {environment!r}")
    if not isinstance(settings, Mapping):
        raise ConfigError(f"Configuration for environment {environment!r} must be an object")
    return dict(settings)


def _env_value(settings: Mapping[str, Any], key: str) -> Optional[str]:
    """Value of ``key``, or of the environment variable named by ``key_env``."""
    value = settings.get(key)
    if value is not None:
        return value
    var = settings.get(f"{key}_env")
    if var is None:
        return None
    load_dotenv(find_dotenv(usecwd=True))
    value = os.environ.get(var)
    if value is None:
        raise ConfigError(f"Environment variable {var} for {key} is not set")
    return value


def decode_secret(value: Union[str, bytes], size: int, label: str) -> bytes:
    """
    Interpret an inline key or iv.

    Hex is used when it decodes to exactly ``size`` bytes, otherwise the
    raw text is used when it is exactly ``size`` bytes long.

    Raises:
        ConfigError: If neither interpretation has the required length
    """
    if isinstance(value, bytes):
        raw = value
        text = None
    else:
        text = str(value)
        raw = text.encode("utf-8")

    if text is not None:
        try:
            decoded = binascii.unhexlify(text)
        except (binascii.Error, ValueError):
            decoded = None
        if decoded is not None and len(decoded) == size:
            return decoded

    if len(raw) == size:
        return raw
    raise ConfigError(f"Invalid {label}: expected {size} bytes as hex or raw text")


def _resolve_path(filename: str, base_dir: Optional[Path]) -> Path:
    path = Path(filename).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path


def _cipher_entries(settings: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    entries = settings.get("ciphers")
    if not isinstance(entries, list) or not entries:
        raise ConfigError("'ciphers' must be a non-empty list")
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise ConfigError("Each entry of 'ciphers' must be an object")
    return entries


def key_slots(settings: Mapping[str, Any], base_dir: Optional[Path] = None) -> List[KeySlot]:
    """Key slots named by a file-backed environment."""
    slots = []
    for entry in _cipher_entries(settings):
        try:
            key_filename = entry["key_filename"]
            iv_filename = entry["iv_filename"]
        except KeyError as e:
            raise ConfigError(f"Cipher entry is missing {e.args[0]!r}")
        slots.append(
            KeySlot(
                key_path=_resolve_path(key_filename, base_dir),
                iv_path=_resolve_path(iv_filename, base_dir),
                algorithm=Algorithm.from_name(entry.get("cipher", DEFAULT_CIPHER)),
            )
        )
    return slots


def private_key_pem(settings: Mapping[str, Any]) -> str:
    pem = _env_value(settings, "private_rsa_key")
    if not pem:
        raise ConfigError("File-backed ciphers require 'private_rsa_key'")
    return pem


def _inline_cipher(settings: Mapping[str, Any]) -> CipherSpec:
    algorithm = Algorithm.from_name(settings.get("cipher", DEFAULT_CIPHER))
    encoding = Encoding.from_name(settings.get("encoding", DEFAULT_ENCODING))
    key = _env_value(settings, "key")
    iv = _env_value(settings, "iv")
    if key is None or iv is None:
        raise ConfigError("Inline cipher requires 'key' and 'iv'")
    return CipherSpec(
        name=settings.get("name", DEFAULT_INLINE_NAME),
        algorithm=algorithm,
        key=decode_secret(key, algorithm.key_size, "key"),
        iv=decode_secret(iv, algorithm.iv_size, "iv"),
        encoding=encoding,
    )


def _file_ciphers(settings: Mapping[str, Any], base_dir: Optional[Path]) -> List[CipherSpec]:
    unwrapper = KeyUnwrapper(load_private_key(private_key_pem(settings)))
    ciphers = []
    for entry, slot in zip(_cipher_entries(settings), key_slots(settings, base_dir)):
        key, iv = unwrapper.unwrap_files(slot.key_path, slot.iv_path, slot.algorithm)
        ciphers.append(
            CipherSpec(
                name=entry.get("name", slot.key_path.stem),
                algorithm=slot.algorithm,
                key=key,
                iv=iv,
                encoding=Encoding.from_name(entry.get("encoding", DEFAULT_ENCODING)),
            )
        )
    return ciphers


def build_keystore(settings: Mapping[str, Any], base_dir: Optional[Path] = None) -> KeyStore:
    """
    Build a KeyStore from one environment's settings.

    Raises:
        ConfigError: If the settings are incomplete or invalid
        KeyUnwrapError: If file-backed key material cannot be unwrapped
    """
    if "ciphers" in settings:
        ciphers = _file_ciphers(settings, base_dir)
    else:
        ciphers = [_inline_cipher(settings)]
    return KeyStore(ciphers, default_name=settings.get("default_cipher"))


def keystore_from_config(source: ConfigSource, environment: str) -> KeyStore:
    """Load ``source`` and build the KeyStore for ``environment``."""
    config, base_dir = load_config(source)
    keystore = build_keystore(environment_config(config, environment), base_dir)
    logger.info(
        "Loaded %d cipher(s) for environment %s, default %s",
        len(keystore),
        environment,
        keystore.default_cipher.name,
    )
    return keystore
