"""Tests for the random secret generator."""

import string
from unittest.mock import patch

import pytest

from sp_vault.core.exceptions import ValidationError
from sp_vault.vault.generator import (
    DEFAULT_LENGTH,
    MAX_LENGTH,
    SYMBOLS,
    SecretOptions,
    generate_secret,
)


class TestGenerateSecret:
    def test_defaults(self):
        secret = generate_secret()
        assert len(secret) == DEFAULT_LENGTH
        allowed = set(string.ascii_letters + string.digits + SYMBOLS)
        assert set(secret) <= allowed

    def test_all_classes_disabled(self):
        options = SecretOptions(length=16, uppercase=False, lowercase=False, numbers=False, symbols=False)
        with pytest.raises(ValidationError):
            generate_secret(options)

    @pytest.mark.parametrize("kwargs,alphabet", [
        ({"lowercase": False, "numbers": False, "symbols": False}, string.ascii_uppercase),
        ({"uppercase": False, "numbers": False, "symbols": False}, string.ascii_lowercase),
        ({"uppercase": False, "lowercase": False, "symbols": False}, string.digits),
        ({"uppercase": False, "lowercase": False, "numbers": False}, SYMBOLS),
    ])
    def test_single_class(self, kwargs, alphabet):
        secret = generate_secret(SecretOptions(length=200, **kwargs))
        assert set(secret) <= set(alphabet)

    @pytest.mark.parametrize("length", [1, 64, MAX_LENGTH])
    def test_length(self, length):
        assert len(generate_secret(SecretOptions(length=length))) == length

    @pytest.mark.parametrize("length", [0, -1, MAX_LENGTH + 1, True])
    def test_invalid_length(self, length):
        with pytest.raises(ValidationError):
            generate_secret(SecretOptions(length=length))

    def test_draws_from_csprng(self):
        with patch("sp_vault.vault.generator.secrets.choice", return_value="Z") as mock_choice:
            assert generate_secret(SecretOptions(length=4)) == "ZZZZ"
        assert mock_choice.call_count == 4

    def test_secrets_differ(self):
        assert len({generate_secret() for _ in range(20)}) == 20
