# SP Vault - Credential Hasher
#
# One-way salted hashing for the password and PIN factors.
# PBKDF2-HMAC-SHA256 with a tunable iteration count (work factor).
#
# Stored form:  pbkdf2_sha256$<iterations>$<base64 salt>$<base64 digest>
# The iteration count travels with the hash, so raising the work factor
# does not invalidate existing hashes.

import base64
import binascii
import os

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

ALGORITHM = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 600_000  # OWASP 2023: 600k iterations for PBKDF2-SHA256
SALT_LENGTH = 16
DIGEST_LENGTH = 32


def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=DIGEST_LENGTH,
        salt=salt,
        iterations=iterations,
    )


class CredentialHasher:
    """
    Hash and compare password/PIN secrets.

    Both factors go through the same hasher and are stored as independent
    hashes, each with its own salt.
    """

    def __init__(self, iterations: int = DEFAULT_ITERATIONS):
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self.iterations = iterations

    def hash(self, secret: str) -> str:
        """Return the salted, cost-parameterized hash of secret."""
        salt = os.urandom(SALT_LENGTH)
        digest = _kdf(salt, self.iterations).derive(secret.encode("utf-8"))
        salt_b64 = base64.b64encode(salt).decode("ascii")
        digest_b64 = base64.b64encode(digest).decode("ascii")
        return f"{ALGORITHM}${self.iterations}${salt_b64}${digest_b64}"

    def compare(self, candidate: str, hashed: str) -> bool:
        """
        Check candidate against a stored hash.

        Uses the KDF's own verify(), which compares digests in constant time.
        A malformed stored hash compares as False.
        """
        try:
            algorithm, iterations_text, salt_b64, digest_b64 = hashed.split("$", 3)
            if algorithm != ALGORITHM:
                return False
            iterations = int(iterations_text)
            salt = base64.b64decode(salt_b64.encode("ascii"), validate=True)
            expected = base64.b64decode(digest_b64.encode("ascii"), validate=True)
        except (AttributeError, ValueError, TypeError, binascii.Error):
            return False

        if iterations < 1:
            return False

        try:
            _kdf(salt, iterations).verify(candidate.encode("utf-8"), expected)
        except InvalidKey:
            return False
        return True
