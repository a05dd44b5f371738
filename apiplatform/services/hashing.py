# ABOUTME: API key secret generation and one-way hashing
# ABOUTME: Hashers are pluggable so the algorithm can change without touching callers

import hashlib
import secrets
import string

SECRET_ALPHABET = string.ascii_letters + string.digits


class KeyHasher:
    """Turns a key secret into the value stored and looked up in api_keys.key_hash."""

    def hash(self, secret: str) -> str:
        raise NotImplementedError


class Sha256KeyHasher(KeyHasher):
    def hash(self, secret: str) -> str:
        return hashlib.sha256(secret.encode()).hexdigest()


def generate_secret(length: int = 32) -> str:
    """Random alphanumeric secret from the OS CSPRNG."""
    return "".join(secrets.choice(SECRET_ALPHABET) for _ in range(length))
