"""Random secret generation and one-way hashing."""

from __future__ import annotations

import base64
import hashlib
import secrets
import string

from nopass.exceptions import GenerationError

DEFAULT_ALPHABET = string.ascii_letters + string.digits


def generate_secret(length: int, alphabet: str = DEFAULT_ALPHABET) -> str:
    """Return ``length`` characters drawn uniformly from ``alphabet``.

    Uses the ``secrets`` CSPRNG; raises ``GenerationError`` for a
    non-positive length or an empty alphabet.
    """
    if length <= 0:
        msg = f"Secret length must be positive, got {length}"
        raise GenerationError(msg)
    if not alphabet:
        msg = "Secret alphabet must not be empty"
        raise GenerationError(msg)
    return "".join(secrets.choice(alphabet) for _ in range(length))


def hash_secret(secret: str) -> str:
    """SHA-256 of the UTF-8 secret, URL-safe base64 without padding.

    Deterministic on purpose: lookups recompute the digest and compare by
    equality. Secrets are high-entropy random strings, so no salt or work
    factor is applied.
    """
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
