"""Tests for session token generation."""

import base64

import pytest

import session_auth.tokens as tokens
from session_auth.errors import EntropyFailure
from session_auth.tokens import TokenGenerator


def test_default_tokens_are_64_urlsafe_characters():
    generator = TokenGenerator()
    token = generator.generate()

    assert generator.length == 64
    assert len(token) == 64
    assert base64.urlsafe_b64decode(token) and len(base64.urlsafe_b64decode(token)) == 48
    assert "+" not in token and "/" not in token


@pytest.mark.parametrize("num_bytes, expected", [(1, 4), (16, 24), (32, 44), (64, 88)])
def test_padding_keeps_length_fixed(num_bytes, expected):
    generator = TokenGenerator(num_bytes)
    assert generator.length == expected
    assert {len(generator.generate()) for _ in range(20)} == {expected}


def test_tokens_do_not_repeat():
    generator = TokenGenerator()
    assert len({generator.generate() for _ in range(200)}) == 200


def test_rejects_non_positive_size():
    with pytest.raises(ValueError):
        TokenGenerator(0)


def test_random_source_failure_raises_entropy_failure(monkeypatch):
    def broken(_n):
        raise OSError("no entropy")

    monkeypatch.setattr(tokens.secrets, "token_bytes", broken)

    with pytest.raises(EntropyFailure) as excinfo:
        TokenGenerator().generate()
    assert isinstance(excinfo.value.__cause__, OSError)


def test_short_read_raises_entropy_failure(monkeypatch):
    monkeypatch.setattr(tokens.secrets, "token_bytes", lambda n: b"\x00" * (n - 1))

    with pytest.raises(EntropyFailure):
        TokenGenerator(8).generate()
