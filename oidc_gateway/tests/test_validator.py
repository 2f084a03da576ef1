"""
Tests for ID Token claim validation.

Tests cover:
- Mandatory claims and the canonical iat format
- Audience matching
- Nonce binding to the client's nonce cookie
- Refresh mode (nonce skipped)
- Reason collection and logging
"""

import logging

import pytest

from oidc_gateway.auth.validator import IdTokenValidator, is_valid_iat
from oidc_gateway.errors import TokenValidationError
from oidc_gateway.models import Claims

from .conftest import TEST_CLIENT_ID, valid_claims


NONCE_COOKIE = "3f2a9c0d5e7b41a8b6c9d0e1f2a3b4c5"


@pytest.fixture
def bound_claims(hasher):
    """Claims of a fresh login bound to NONCE_COOKIE"""
    return valid_claims(nonce=hasher.hash(NONCE_COOKIE))


# ============================================================================
# iat format
# ============================================================================

@pytest.mark.parametrize("value", ["1", "42", "1700000000", "99999999999"])
def test_valid_iat(value):
    assert is_valid_iat(value)


@pytest.mark.parametrize(
    "value",
    ["", "0", "-5", "12.0", "1.7e9", " 12", "12 ", "+12", "012", "1_000", "abc"],
)
def test_invalid_iat(value):
    assert not is_valid_iat(value)


# ============================================================================
# Fresh login
# ============================================================================

class TestFreshLoginValidation:
    """Validation with nonce_expected=True"""

    def test_accepts_well_formed_claims(self, validator, bound_claims):
        result = validator.validate(bound_claims, nonce_expected=True, client_nonce_cookie=NONCE_COOKIE)

        assert result.valid
        assert result.reasons == []

    def test_missing_claims_are_reported_together(self, validator, hasher):
        claims = Claims(aud=TEST_CLIENT_ID, nonce=hasher.hash(NONCE_COOKIE))

        result = validator.validate(claims, nonce_expected=True, client_nonce_cookie=NONCE_COOKIE)

        assert not result.valid
        assert "missing claim(s) iat iss sub" in result.reasons

    @pytest.mark.parametrize("claim", ["aud", "iat", "iss", "sub"])
    def test_each_mandatory_claim_required(self, validator, bound_claims, claim):
        claims = bound_claims.model_copy(update={claim: ""})

        result = validator.validate(claims, nonce_expected=True, client_nonce_cookie=NONCE_COOKIE)

        assert not result.valid
        assert f"missing claim(s) {claim}" in result.reasons

    def test_rejects_non_canonical_iat(self, validator, bound_claims):
        claims = bound_claims.model_copy(update={"iat": "1700000000.5"})

        result = validator.validate(claims, nonce_expected=True, client_nonce_cookie=NONCE_COOKIE)

        assert not result.valid
        assert result.reasons == ["iat claim is not a valid number"]

    def test_rejects_foreign_audience(self, validator, bound_claims):
        claims = bound_claims.model_copy(update={"aud": "other-client"})

        result = validator.validate(claims, nonce_expected=True, client_nonce_cookie=NONCE_COOKIE)

        assert not result.valid
        assert result.reasons == [
            f"aud claim (other-client) does not match configured client ({TEST_CLIENT_ID})"
        ]

    def test_rejects_multi_audience(self, validator, bound_claims):
        claims = bound_claims.model_copy(update={"aud": f"{TEST_CLIENT_ID},other-client"})

        result = validator.validate(claims, nonce_expected=True, client_nonce_cookie=NONCE_COOKIE)

        assert not result.valid

    def test_rejects_nonce_of_other_cookie(self, validator, bound_claims):
        result = validator.validate(bound_claims, nonce_expected=True, client_nonce_cookie="another-cookie")

        assert not result.valid
        assert len(result.reasons) == 1
        assert result.reasons[0].startswith(f"nonce from token ({bound_claims.nonce}) does not match client")

    def test_rejects_nonce_without_cookie(self, validator, bound_claims):
        result = validator.validate(bound_claims, nonce_expected=True, client_nonce_cookie=None)

        assert not result.valid
        assert result.reasons == [f"nonce from token ({bound_claims.nonce}) does not match client ()"]

    def test_rejects_raw_cookie_as_nonce(self, validator):
        """The token must carry the hash of the cookie, not the cookie itself"""
        claims = valid_claims(nonce=NONCE_COOKIE)

        result = validator.validate(claims, nonce_expected=True, client_nonce_cookie=NONCE_COOKIE)

        assert not result.valid

    def test_rejects_missing_nonce_when_cookie_present(self, validator):
        claims = valid_claims(nonce="")

        result = validator.validate(claims, nonce_expected=True, client_nonce_cookie=NONCE_COOKIE)

        assert not result.valid

    def test_empty_nonce_and_no_cookie_match(self, validator):
        claims = valid_claims(nonce="")

        result = validator.validate(claims, nonce_expected=True, client_nonce_cookie=None)

        assert result.valid

    def test_all_failures_collected(self, validator):
        claims = Claims(aud="other-client", iat="0", nonce="bogus")

        result = validator.validate(claims, nonce_expected=True, client_nonce_cookie=NONCE_COOKIE)

        assert not result.valid
        assert len(result.reasons) == 4
        assert result.reasons[0] == "missing claim(s) iss sub"
        assert result.reasons[1] == "iat claim is not a valid number"
        assert result.reasons[2].startswith("aud claim (other-client)")
        assert result.reasons[3].startswith("nonce from token (bogus)")


# ============================================================================
# Refresh
# ============================================================================

class TestRefreshValidation:
    """Validation with nonce_expected=False"""

    def test_nonce_ignored(self, validator):
        claims = valid_claims(nonce="whatever-the-idp-sent")

        assert validator.validate(claims, nonce_expected=False).valid
        assert validator.validate(claims, nonce_expected=False, client_nonce_cookie="x").valid

    def test_other_checks_still_apply(self, validator):
        claims = valid_claims(aud="other-client")

        result = validator.validate(claims, nonce_expected=False)

        assert not result.valid
        assert len(result.reasons) == 1

    def test_skip_logged(self, validator, caplog):
        with caplog.at_level(logging.INFO, logger="oidc_gateway.auth.validator"):
            validator.validate(valid_claims(), nonce_expected=False)

        assert "OIDC refresh process skipping nonce validation" in caplog.text


# ============================================================================
# General behaviour
# ============================================================================

def test_validation_is_repeatable(validator, bound_claims):
    first = validator.validate(bound_claims, nonce_expected=True, client_nonce_cookie="wrong")
    second = validator.validate(bound_claims, nonce_expected=True, client_nonce_cookie="wrong")

    assert first == second


def test_reasons_are_logged(validator, caplog):
    claims = valid_claims(aud="other-client")

    with caplog.at_level(logging.ERROR, logger="oidc_gateway.auth.validator"):
        validator.validate(claims, nonce_expected=False)

    assert "OIDC ID Token validation error: aud claim (other-client)" in caplog.text


def test_require_valid_raises(validator):
    with pytest.raises(TokenValidationError) as exc_info:
        validator.require_valid(valid_claims(iat="abc"), nonce_expected=False)

    assert exc_info.value.reasons == ["iat claim is not a valid number"]
    assert "iat claim is not a valid number" in exc_info.value.message


def test_require_valid_returns_claims(validator):
    claims = valid_claims()
    assert validator.require_valid(claims, nonce_expected=False) is claims


def test_audience_compared_to_configured_client(hasher):
    validator = IdTokenValidator("another-client", hasher)
    claims = valid_claims(aud="another-client")

    assert validator.validate(claims, nonce_expected=False).valid
