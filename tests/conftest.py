"""
Pytest configuration and fixtures for symmetric encryption tests.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from symmetric_encryption import (
    CipherSpec,
    KeySlot,
    KeyStore,
    ProcessRegistry,
    generate_rsa_private_key,
    generate_symmetric_key_files,
    load_private_key,
)
from symmetric_encryption.keys import generate_symmetric_key_files as generate_key_files

TEST_KEY = "1234567890ABCDEF1234567890ABCDEF"
TEST_IV = "1234567890ABCDEF"


@pytest.fixture
def test_cipher() -> CipherSpec:
    """The development cipher: aes-128-cbc with the well known test key."""
    return CipherSpec(
        name="current",
        algorithm="aes-128-cbc",
        key=bytes.fromhex(TEST_KEY),
        iv=TEST_IV.encode("ascii"),
        encoding="raw",
    )


@pytest.fixture
def rotated_keystore() -> KeyStore:
    """Key store after a rotation: v2 is current, v1 is retired."""
    v2 = CipherSpec("v2", "aes-256-cbc", bytes(range(32)), bytes(range(16)), "base64strict")
    v1 = CipherSpec("v1", "aes-256-cbc", bytes(range(100, 132)), bytes(range(50, 66)), "base64strict")
    return KeyStore([v2, v1])


@pytest.fixture
def registry(test_cipher: CipherSpec) -> ProcessRegistry:
    """A registry loaded with the development cipher only."""
    return ProcessRegistry(KeyStore([test_cipher]))


@pytest.fixture(scope="session")
def rsa_private_pem() -> str:
    """RSA private key shared by the whole session (generation is slow)."""
    return generate_rsa_private_key(2048)


@pytest.fixture(scope="session")
def rsa_private_key(rsa_private_pem: str) -> rsa.RSAPrivateKey:
    return load_private_key(rsa_private_pem)


@pytest.fixture
def inline_config() -> Dict[str, Any]:
    return {
        "development": {
            "key": TEST_KEY,
            "iv": TEST_IV,
            "cipher": "aes-128-cbc",
            "encoding": "base64strict",
        },
    }


@pytest.fixture
def file_config(tmp_path: Path, rsa_private_pem: str) -> Path:
    """JSON config for a file-backed environment with two ciphers, keys generated."""
    config = {
        "production": {
            "private_rsa_key": rsa_private_pem,
            "ciphers": [
                {
                    "name": "app_2025",
                    "key_filename": "keys/app_2025.key",
                    "iv_filename": "keys/app_2025.iv",
                    "cipher": "aes-256-cbc",
                    "encoding": "base64strict",
                },
                {
                    "name": "app_2024",
                    "key_filename": "keys/app_2024.key",
                    "iv_filename": "keys/app_2024.iv",
                    "cipher": "aes-128-cbc",
                    "encoding": "base64",
                },
            ],
        },
    }
    path = tmp_path / "symmetric-encryption.json"
    path.write_text(json.dumps(config), encoding="utf-8")
    generate_symmetric_key_files(path, "production")
    return path


@pytest.fixture
def key_slot(tmp_path: Path, rsa_private_key: rsa.RSAPrivateKey) -> KeySlot:
    """A generated aes-256-cbc slot under tmp_path."""
    slot = KeySlot.for_name(tmp_path, "slot", "aes-256-cbc")
    generate_key_files([slot], rsa_private_key.public_key())
    return slot
