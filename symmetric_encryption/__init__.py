"""
Symmetric Encryption Library

Transparent symmetric encryption of data at rest, with the symmetric keys
protected by an RSA key and support for several concurrently valid keys.

Overview
--------
- **CipherSpec**: One AES-CBC algorithm + key + iv + output encoding
- **KeyStore**: Current and retired ciphers, ordered current -> oldest
- **Key files**: Symmetric key and iv stored RSA-encrypted on disk
- **Streams**: Writer/Reader for large payloads with optional compression

Quick Start
-----------
```python
import symmetric_encryption

symmetric_encryption.load("config/symmetric-encryption.json", "production")

encrypted = symmetric_encryption.encrypt("Sensitive data")
plaintext = symmetric_encryption.decrypt(encrypted)

registry = symmetric_encryption.default_registry
with registry.writer("export.csv.enc", compress=True) as out:
    out.write("id,name\\n")

with registry.reader("export.csv.enc") as f:
    for line in f:
        ...
```

Key Features
------------
- **Key Rotation**: Data under retired keys stays readable through fallback decryption
- **RSA Key Wrapping**: Key files are useless without the RSA private key
- **Self-describing Streams**: Optional header records cipher name and compression
- **Atomic Reload**: A new key set replaces the old one in a single swap

Security Limitations
--------------------
Encryption is deterministic (fixed iv per key) and unauthenticated (no MAC),
kept for compatibility with existing ciphertext.
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    BLOCK_SIZE,
    Algorithm,
    CipherSpec,
    DecryptStage,
    Encoding,
    EncryptStage,
)

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    ConfigError,
    DecryptionError,
    KeyFileExistsError,
    KeyUnwrapError,
    NotLoadedError,
    SymmetricEncryptionError,
    UnknownCipherError,
)

# =============================================================================
# Key Management Exports
# =============================================================================

from .keys import (
    KeySlot,
    KeyUnwrapper,
    generate_rsa_private_key,
    load_private_key,
)
from .keystore import DecryptResult, KeyStore
from .stream import MAGIC, Reader, StreamHeader, Writer

# =============================================================================
# Registry Exports (Primary API)
# =============================================================================

from .registry import (
    ProcessRegistry,
    cipher,
    current_cipher,
    decrypt,
    default_registry,
    encrypt,
    generate_symmetric_key_files,
    load,
    try_decrypt,
)

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "BLOCK_SIZE",
    "Algorithm",
    "Encoding",
    "CipherSpec",
    "EncryptStage",
    "DecryptStage",
    # Errors
    "SymmetricEncryptionError",
    "ConfigError",
    "KeyUnwrapError",
    "UnknownCipherError",
    "DecryptionError",
    "NotLoadedError",
    "KeyFileExistsError",
    # Key management
    "KeyUnwrapper",
    "KeySlot",
    "generate_rsa_private_key",
    "load_private_key",
    "KeyStore",
    "DecryptResult",
    # Streams
    "MAGIC",
    "StreamHeader",
    "Writer",
    "Reader",
    # Registry (Primary API)
    "ProcessRegistry",
    "default_registry",
    "load",
    "cipher",
    "current_cipher",
    "encrypt",
    "decrypt",
    "try_decrypt",
    "generate_symmetric_key_files",
]
