"""
Salted link passwords.

Format:  {salt}:{sha256_hex(password + salt)}
- salt  → 16 random alphanumerics
- hash  → SHA-256 over the password with the salt appended

Verification is constant-time; malformed stored hashes never verify.
"""

import hashlib
import hmac
import secrets
import string

SALT_ALPHABET = string.ascii_letters + string.digits
SALT_LENGTH = 16


def _digest(password: str, salt: str) -> str:
    return hashlib.sha256(f"{password}{salt}".encode()).hexdigest()


def hash_password(password: str, salt: str | None = None) -> str:
    salt = salt or "".join(secrets.choice(SALT_ALPHABET) for _ in range(SALT_LENGTH))
    return f"{salt}:{_digest(password, salt)}"


def verify_password(password: str, stored: str | None) -> bool:
    if not password or not stored:
        return False
    parts = stored.split(":")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return False
    salt, expected = parts
    return hmac.compare_digest(_digest(password, salt), expected)
