"""
Symmetric encryption utilities for sensitive data.

This module provides Fernet-based encryption for stored Planka credentials.
Unlike password hashing (Argon2), Fernet is reversible symmetric encryption,
allowing us to decrypt tokens when making API calls to Planka.

Key Derivation:
- Uses HKDF (HMAC-based Key Derivation Function) with SHA256
- Derives a stable 32-byte Fernet key from the application's SECRET_KEY
- Key is deterministic (same SECRET_KEY -> same Fernet key) so stored
  credentials remain decryptable across app restarts

Security Notes:
- Payloads are encrypted with AES-128-CBC + HMAC-SHA256 (via Fernet)
- Changing SECRET_KEY makes every stored credential unreadable
- Never log or expose decrypted values

Usage:
    from plankalink.core.encryption import encrypt_token, decrypt_token

    encrypted = encrypt_token('{"accessToken": "..."}')
    original = decrypt_token(encrypted)
"""
import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from plankalink.core.config import settings
from plankalink.core.logging_config import log_error

# Cache the derived key to avoid recomputing on every operation
_fernet_key_cache: Optional[bytes] = None


def _get_fernet_key() -> bytes:
    """
    Derive a stable Fernet key from the application's SECRET_KEY.
    """
    global _fernet_key_cache

    if _fernet_key_cache is not None:
        return _fernet_key_cache

    if not settings.secret_key:
        raise ValueError(
            "SECRET_KEY must be set for encryption. "
            "Set it in your .env file or environment variables."
        )

    secret_bytes = settings.secret_key.encode('utf-8')

    # info parameter provides domain separation from other uses of SECRET_KEY
    kdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,  # Fernet requires exactly 32 bytes
        salt=None,
        info=b'plankalink-credential-encryption'
    )

    derived_key = kdf.derive(secret_bytes)
    _fernet_key_cache = base64.urlsafe_b64encode(derived_key)

    return _fernet_key_cache


def _get_fernet() -> Fernet:
    return Fernet(_get_fernet_key())


def encrypt_token(token: str) -> str:
    """
    Encrypt a sensitive value using Fernet symmetric encryption.

    Args:
        token: The plaintext to encrypt (a token or a serialized credential envelope)
    """
    if not token or not token.strip():
        raise ValueError("Cannot encrypt empty token")

    try:
        fernet = _get_fernet()
        encrypted_bytes = fernet.encrypt(token.encode('utf-8'))
        return encrypted_bytes.decode('utf-8')
    except Exception as e:
        log_error(e, action="token_encryption")
        raise


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt a Fernet-encrypted value.

    Args:
        encrypted_token: The encrypted value (from encrypt_token)
    """
    if not encrypted_token or not encrypted_token.strip():
        raise ValueError("Cannot decrypt empty token")

    try:
        fernet = _get_fernet()
        decrypted_bytes = fernet.decrypt(encrypted_token.encode('utf-8'))
        return decrypted_bytes.decode('utf-8')
    except InvalidToken as e:
        log_error(e, action="token_decryption")
        raise ValueError(
            "Failed to decrypt token. This may indicate the token is corrupted "
            "or the SECRET_KEY has changed. "
            "The user may need to link their Planka account again."
        )
    except Exception as e:
        log_error(e, action="token_decryption")
        raise


def is_encrypted(value: str) -> bool:
    """
    Heuristic check that a string has the Fernet token format.
    """
    if not value:
        return False

    # Fernet tokens always start with "gAAAAA" (version byte 0x80 + timestamp)
    return value.startswith("gAAAAA")


def reset_key_cache():
    """
    Reset the cached Fernet key.

    Only for tests or when SECRET_KEY changes at runtime.
    """
    global _fernet_key_cache
    _fernet_key_cache = None
