try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from crosspost.services.token_cipher import TokenCipherService


def test_token_cipher_roundtrip() -> None:
    cipher = TokenCipherService(secrets=["super-secret-key"])
    plaintext = "sensitive-token"

    encrypted = cipher.encrypt(plaintext)
    assert encrypted != plaintext

    decrypted = cipher.decrypt(encrypted)
    assert decrypted == plaintext


def test_token_cipher_rejects_bad_ciphertext() -> None:
    cipher = TokenCipherService(secrets=["another-secret"])

    with pytest.raises(ValueError):
        cipher.decrypt("not-valid")


def test_token_cipher_decrypts_with_retired_secret() -> None:
    old = TokenCipherService(secrets=["old-secret"])
    rotated = TokenCipherService(secrets=["new-secret", "old-secret"])
    encrypted = old.encrypt("token-value")

    assert rotated.decrypt(encrypted) == "token-value"

    reencrypted = rotated.rotate(encrypted)
    with pytest.raises(ValueError):
        old.decrypt(reencrypted)
    assert TokenCipherService(secrets=["new-secret"]).decrypt(reencrypted) == "token-value"


def test_token_cipher_requires_a_secret() -> None:
    with pytest.raises(ValueError):
        TokenCipherService(secrets=["", ""])


def test_fingerprint_is_stable_and_not_the_token() -> None:
    first = TokenCipherService.fingerprint("abc")
    assert first == TokenCipherService.fingerprint("abc")
    assert first != TokenCipherService.fingerprint("abd")
    assert len(first) == 64
