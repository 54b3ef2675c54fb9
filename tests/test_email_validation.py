"""Tests for email validation shared by the tool and API schemas."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from support_agent.tools.schemas import GetOrderStatusInput, is_valid_email

VALID = [
    "alice@example.com",
    "bob.jones@techcorp.co.uk",
    "jane+tag@gmail.com",
    "user@sub.domain.org",
    "UPPER@CASE.COM",
    "digits123@test456.io",
]

INVALID = [
    "",
    "   ",
    "not-an-email",
    "missing@",
    "@no-local.com",
    "spaces in@email.com",
    "double@@at.com",
    "no-tld@localhost",
    "user@.leading-dot.com",
]


class TestIsValidEmail:
    @pytest.mark.parametrize("email", VALID)
    def test_accepts_valid_emails(self, email: str):
        assert is_valid_email(email)

    @pytest.mark.parametrize("email", INVALID)
    def test_rejects_invalid_emails(self, email: str):
        assert not is_valid_email(email)

    def test_none_is_invalid(self):
        assert not is_valid_email(None)


class TestSchemaValidation:
    def test_surrounding_whitespace_is_stripped(self):
        payload = GetOrderStatusInput(order_id=" 10001234 ", email="  alex@example.com ")
        assert payload.order_id == "10001234"
        assert payload.email == "alex@example.com"

    @pytest.mark.parametrize("email", ["not-an-email", "double@@at.com"])
    def test_model_rejects_invalid_email(self, email: str):
        with pytest.raises(ValidationError) as exc_info:
            GetOrderStatusInput(order_id="10001234", email=email)
        assert "does not look like a valid email" in str(exc_info.value)
