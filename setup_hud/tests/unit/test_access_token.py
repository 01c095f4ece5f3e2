"""Unit tests for edge gate assertion verification."""

from __future__ import annotations

import time

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from setup_hud.infra.security.access_token import AccessDenied, AccessTokenVerifier

AUDIENCE = "hud-audience-tag"
TEAM = "example.cloudflareaccess.com"


@pytest.fixture(scope="module")
def signing_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def verifier(signing_key) -> AccessTokenVerifier:
    public_key = signing_key.public_key()
    return AccessTokenVerifier(audience=AUDIENCE, team_domain=TEAM, key_resolver=lambda _token: public_key)


def _token(signing_key, **overrides) -> str:
    claims = {
        "aud": AUDIENCE,
        "iss": f"https://{TEAM}",
        "email": "viewer@example.com",
        "exp": int(time.time()) + 300,
    }
    claims.update(overrides)
    return jwt.encode(claims, signing_key, algorithm="RS256")


def test_valid_token_returns_claims(verifier, signing_key) -> None:
    claims = verifier.verify(_token(signing_key))
    assert claims["email"] == "viewer@example.com"
    assert verifier.issuer == f"https://{TEAM}"


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"aud": "someone-else"}, "invalid audience"),
        ({"iss": "https://evil.example.com"}, "invalid issuer"),
        ({"exp": int(time.time()) - 60}, "token expired"),
    ],
)
def test_rejected_claims(verifier, signing_key, overrides, message) -> None:
    with pytest.raises(AccessDenied, match=message):
        verifier.verify(_token(signing_key, **overrides))


def test_missing_token(verifier) -> None:
    with pytest.raises(AccessDenied, match="missing"):
        verifier.verify(None)


def test_wrong_signing_key(verifier) -> None:
    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with pytest.raises(AccessDenied, match="token validation failed"):
        verifier.verify(_token(other_key))


def test_garbage_token(verifier) -> None:
    with pytest.raises(AccessDenied):
        verifier.verify("not-a-jwt")


def test_token_without_expiry_is_rejected(verifier, signing_key) -> None:
    claims = {"aud": AUDIENCE, "iss": f"https://{TEAM}", "email": "viewer@example.com"}
    token = jwt.encode(claims, signing_key, algorithm="RS256")

    with pytest.raises(AccessDenied, match="token validation failed"):
        verifier.verify(token)
