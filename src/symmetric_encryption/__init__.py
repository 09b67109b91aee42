"""
Symmetric Encryption Library

Symmetric encryption of values and files at rest, with versioned data keys
for rotation and envelope protection of the keys themselves.

Quick Start
-----------
```python
from symmetric_encryption import config, Reader, Writer

registry = config.load_file("config/symmetric-encryption.json", env="production")

encrypted = registry.encrypt("Sensitive data", random_iv=True)
registry.decrypt(encrypted)  # -> "Sensitive data"

with Writer.open("data.csv.enc", registry, compress=True) as writer:
    writer.write(b"id,name\\n")

with Reader.open("data.csv.enc", registry) as reader:
    for line in reader:
        ...
```

Key Features
------------
- **Versioned ciphers**: Every value carries the version of the key that
  encrypted it, so old keys keep decrypting after rotation
- **Self-describing header**: Random iv, random key, compression and cipher
  name travel with the data
- **Envelope keys**: Data keys are wrapped by key encrypting keys, RSA keys,
  or AWS / GCP KMS
- **Streaming**: Encrypt and decrypt files of any size with constant memory
"""

__version__ = "0.1.0"

# =============================================================================
# Cipher Exports
# =============================================================================

from .cipher import Cipher, CipherRegistry
from .encoder import Encoder, get_encoder
from .header import MAGIC_HEADER, Header
from .key import CIPHER_SPECS, DEFAULT_CIPHER_NAME, CipherEngine, Key
from .key_encryption_key import KeyEncryptionKey

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    CipherError,
    ConfigError,
    DecryptionError,
    SymmetricEncryptionError,
)

# =============================================================================
# Streaming Exports
# =============================================================================

from .reader import Reader, ReaderState
from .writer import Writer

# =============================================================================
# Keystore and Configuration Exports
# =============================================================================

from . import config
from .coerce import COERCION_TYPES, coerce_from_string, coerce_to_string
from .field import EncryptedField
from .re_encrypt import ReEncrypt
from .keystore import (
    Keystore,
    activate_keys,
    cleanup_keys,
    dev_config,
    generate_data_keys,
    keystore_for,
    read_key,
    rotate_key_encrypting_keys,
    rotate_keys,
)

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Ciphers
    "Cipher",
    "CipherRegistry",
    "CipherEngine",
    "Key",
    "KeyEncryptionKey",
    "Header",
    "MAGIC_HEADER",
    "CIPHER_SPECS",
    "DEFAULT_CIPHER_NAME",
    "Encoder",
    "get_encoder",
    # Errors
    "SymmetricEncryptionError",
    "CipherError",
    "DecryptionError",
    "ConfigError",
    # Streaming
    "Reader",
    "ReaderState",
    "Writer",
    # Keystores and configuration
    "config",
    "Keystore",
    "read_key",
    "keystore_for",
    "dev_config",
    "generate_data_keys",
    "rotate_keys",
    "rotate_key_encrypting_keys",
    "activate_keys",
    "cleanup_keys",
    "ReEncrypt",
    # Typed fields
    "COERCION_TYPES",
    "coerce_to_string",
    "coerce_from_string",
    "EncryptedField",
]
