"""
Encryption of identity-provider tokens at rest using AES-256-GCM (from cryptography).

Tokens are encrypted before being written to cookies and decrypted only when
the session is read. The key is derived once from AUTH_SECRET with PBKDF2;
the salt is fixed, so rotating AUTH_SECRET invalidates every existing cookie.

Wire layout: base64(nonce[16] || tag[16] || ciphertext).
"""
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import AUTH_SECRET
from errors import AuthError, AuthErrorKind

KEY_SALT = b"auth-secret-salt"
KEY_ITERATIONS = 100_000
NONCE_SIZE = 16
TAG_SIZE = 16


def derive_key(secret: str) -> bytes:
    """Derive the 32-byte AES key from the shared secret."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=KEY_SALT,
        iterations=KEY_ITERATIONS,
    )
    return kdf.derive(secret.encode())


aesgcm = AESGCM(derive_key(AUTH_SECRET))


def encrypt(value: str) -> str:
    """Encrypt a token for storage in a cookie. Fresh nonce per call."""
    try:
        nonce = os.urandom(NONCE_SIZE)
        # AESGCM appends the tag to the ciphertext; the cookie layout puts it first
        sealed = aesgcm.encrypt(nonce, value.encode(), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return base64.b64encode(nonce + tag + ciphertext).decode()
    except (TypeError, ValueError, AttributeError) as exc:
        raise AuthError(AuthErrorKind.ENCRYPTION_FAILURE) from exc


def decrypt(value: str | None) -> str | None:
    """
    Decrypt a stored token. Returns None for a missing value and for anything
    that is malformed or fails authentication; tampered input is never returned.
    """
    if not value:
        return None
    try:
        combined = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None
    if len(combined) < NONCE_SIZE + TAG_SIZE:
        return None
    nonce = combined[:NONCE_SIZE]
    tag = combined[NONCE_SIZE:NONCE_SIZE + TAG_SIZE]
    ciphertext = combined[NONCE_SIZE + TAG_SIZE:]
    try:
        plaintext = aesgcm.decrypt(nonce, ciphertext + tag, None)
        return plaintext.decode()
    except (InvalidTag, UnicodeDecodeError):
        return None
