"""Application-level encryption for OAuth tokens.

Tokens are encrypted with Fernet (AES-128-CBC + HMAC-SHA256) using the
process-wide TOKEN_ENCRYPTION_KEY. Ciphertext is stored as bytes in the
``*_token_encrypted`` columns; plaintext only exists in memory while an
adapter call is being made.
"""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from crosspost import config

_fernet: Optional[Fernet] = None


class TokenUnavailableError(Exception):
    """A stored token cannot be decrypted (corrupted or foreign key)."""

    def __init__(self, message: str = "Stored token cannot be decrypted", account_id=None):
        super().__init__(message)
        self.account_id = account_id


def get_fernet() -> Fernet:
    """Get or create the Fernet instance for token encryption."""
    global _fernet
    if _fernet is None:
        if not config.TOKEN_ENCRYPTION_KEY:
            raise RuntimeError(
                "TOKEN_ENCRYPTION_KEY not configured. "
                'Generate with: python -c "from cryptography.fernet import Fernet; '
                'print(Fernet.generate_key().decode())"'
            )
        _fernet = Fernet(config.TOKEN_ENCRYPTION_KEY.encode())
    return _fernet


def reset_fernet() -> None:
    """Drop the cached key so a rotated TOKEN_ENCRYPTION_KEY takes effect."""
    global _fernet
    _fernet = None


def encrypt_token(plaintext: str) -> bytes:
    """Encrypt a token for storage.

    Args:
        plaintext: Token to encrypt

    Returns:
        Fernet ciphertext bytes
    """
    return get_fernet().encrypt(plaintext.encode())


def decrypt_token(ciphertext: Optional[bytes]) -> Optional[str]:
    """Decrypt a stored token.

    Args:
        ciphertext: Encrypted token bytes

    Returns:
        Decrypted token string, or None if ciphertext is None

    Raises:
        TokenUnavailableError: If the ciphertext is corrupted or was
            produced with a different key
    """
    if ciphertext is None:
        return None
    try:
        return get_fernet().decrypt(bytes(ciphertext)).decode()
    except (InvalidToken, ValueError, TypeError) as e:
        raise TokenUnavailableError("Invalid or corrupted encrypted token") from e
