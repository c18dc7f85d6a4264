"""Symmetric encryption for provider tokens stored at rest."""

from __future__ import annotations

import base64
import hashlib
from typing import Optional, Sequence

from cryptography.fernet import Fernet, InvalidToken, MultiFernet


def _derive_key(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class TokenCipherService:
    """Encrypt and decrypt tokens with keys derived from configured secrets.

    The first secret encrypts; every secret is tried when decrypting, so a
    new secret can be prepended without invalidating stored tokens.
    """

    def __init__(self, *, secrets: Sequence[str]) -> None:
        usable = [secret for secret in secrets if secret]
        if not usable:
            raise ValueError("At least one token encryption secret must be provided.")
        self._fernet = MultiFernet([_derive_key(secret) for secret in usable])

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        if plaintext is None:
            return None
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        if ciphertext is None:
            return None
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError(
                "Failed to decrypt token; invalid ciphertext provided."
            ) from exc
        return plaintext.decode("utf-8")

    def rotate(self, ciphertext: str) -> str:
        """Re-encrypt a token under the current primary key."""
        return self._fernet.rotate(ciphertext.encode("utf-8")).decode("utf-8")

    @staticmethod
    def fingerprint(token: str) -> str:
        """Stable lookup digest for a token that is never stored in clear."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()


__all__ = ["TokenCipherService"]
