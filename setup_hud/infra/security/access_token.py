"""Security layer: local verification of the edge identity gate's signed assertion.

The gate in front of the dashboard signs an RS256 JWT per viewer request. Only
the signature, audience, issuer and expiry are checked here; directory and
session management stay with the gate.
"""

from __future__ import annotations

from typing import Any, Callable

import jwt

ACCESS_HEADER = "Cf-Access-Jwt-Assertion"

SigningKeyResolver = Callable[[str], Any]


class AccessDenied(Exception):
    """Raised when a viewer request lacks a valid gate assertion."""


class AccessTokenVerifier:
    """Validate gate assertions against the team's published JWKS."""

    def __init__(
        self,
        *,
        audience: str,
        team_domain: str,
        key_resolver: SigningKeyResolver | None = None,
    ) -> None:
        self._audience = audience
        self._issuer = f"https://{team_domain}"
        if key_resolver is None:
            jwks_client = jwt.PyJWKClient(f"https://{team_domain}/cdn-cgi/access/certs")

            def key_resolver(token: str) -> Any:
                return jwks_client.get_signing_key_from_jwt(token).key

        self._key_resolver = key_resolver

    @property
    def issuer(self) -> str:
        return self._issuer

    def verify(self, token: str | None) -> dict[str, Any]:
        if not token:
            raise AccessDenied("missing Access token")
        try:
            key = self._key_resolver(token)
            return jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                audience=self._audience,
                issuer=self._issuer,
                options={"require": ["exp", "aud", "iss"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AccessDenied("token expired") from exc
        except jwt.InvalidAudienceError as exc:
            raise AccessDenied("invalid audience") from exc
        except jwt.InvalidIssuerError as exc:
            raise AccessDenied("invalid issuer") from exc
        except jwt.PyJWKClientError as exc:
            raise AccessDenied("no matching signing key") from exc
        except jwt.InvalidTokenError as exc:
            raise AccessDenied("token validation failed") from exc
