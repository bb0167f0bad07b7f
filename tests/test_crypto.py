import base64

import pytest

import crypto
from crypto import NONCE_SIZE, TAG_SIZE, decrypt, derive_key, encrypt

from conftest import create_test_token


def _flip_bit(value: str, index: int) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode()


class TestKeyDerivation:

    def test_key_is_32_bytes_and_deterministic(self):
        key = derive_key("some-secret")
        assert len(key) == 32
        assert key == derive_key("some-secret")

    def test_different_secret_gives_different_key(self):
        assert derive_key("secret-a") != derive_key("secret-b")


class TestEncryptDecrypt:

    @pytest.mark.parametrize(
        "plaintext",
        ["x", "refresh-token-user-123", "日本語のトークン", create_test_token()],
    )
    def test_round_trip(self, plaintext):
        assert decrypt(encrypt(plaintext)) == plaintext

    def test_fresh_nonce_per_call(self):
        first, second = encrypt("same"), encrypt("same")
        assert first != second
        assert base64.b64decode(first)[:NONCE_SIZE] != base64.b64decode(second)[:NONCE_SIZE]

    def test_layout_is_nonce_tag_ciphertext(self):
        raw = base64.b64decode(encrypt("abcd"))
        assert len(raw) == NONCE_SIZE + TAG_SIZE + len("abcd")

    @pytest.mark.parametrize("index", [0, NONCE_SIZE, NONCE_SIZE + TAG_SIZE - 1, -1])
    def test_flipped_bit_fails_closed(self, index):
        tampered = _flip_bit(encrypt("sensitive-token"), index)
        assert decrypt(tampered) is None

    def test_every_body_bit_is_authenticated(self):
        token = encrypt("abc")
        size = len(base64.b64decode(token))
        for index in range(NONCE_SIZE, size):
            assert decrypt(_flip_bit(token, index)) is None

    @pytest.mark.parametrize(
        "value",
        [None, "", "not base64 at all!", base64.b64encode(b"short").decode()],
    )
    def test_malformed_input_is_invalid(self, value):
        assert decrypt(value) is None

    def test_ciphertext_from_another_key_is_rejected(self, monkeypatch):
        token = encrypt("secret")
        monkeypatch.setattr(crypto, "aesgcm", crypto.AESGCM(derive_key("other-secret")))
        assert decrypt(token) is None
