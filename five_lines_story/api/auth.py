"""
Bearer token authentication.

Tokens are issued by an external identity provider; the service only
verifies them (PyJWT) and reads the user id from the ``sub`` claim.
"""

import logging
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config.loader import AuthConfig
from ..errors import AuthenticationError

logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
bearer_scheme = HTTPBearer(auto_error=False)


class TokenVerifier:
    """Verifies bearer tokens and returns the user id they carry.

    HS* tokens are checked with the shared secret; any other algorithm
    with the signing key published at the JWKS URL.
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._jwks_client = jwt.PyJWKClient(config.jwks_url) if config.jwks_url else None

    def _signing_key(self, token: str):
        header = jwt.get_unverified_header(token)
        algorithm = str(header.get("alg", ""))
        if algorithm not in self.config.algorithms:
            raise AuthenticationError(f"Token algorithm {algorithm!r} is not accepted")

        if algorithm.startswith("HS"):
            if not self.config.secret:
                raise AuthenticationError("No shared secret configured for HS tokens")
            return self.config.secret
        if self._jwks_client is None:
            raise AuthenticationError("No JWKS URL configured for signed tokens")
        return self._jwks_client.get_signing_key_from_jwt(token).key

    def verify(self, token: str) -> str:
        """Verify ``token`` and return its subject.

        Raises:
            AuthenticationError: If the token is malformed, expired, signed
                with an unknown key or missing the subject
        """
        try:
            payload = jwt.decode(
                token,
                key=self._signing_key(token),
                algorithms=list(self.config.algorithms),
                issuer=self.config.issuer,
                audience=self.config.audience,
                options={
                    "verify_aud": self.config.audience is not None,
                    "require": ["exp", "sub"],
                },
            )
        except jwt.PyJWTError as e:
            raise AuthenticationError(f"Invalid bearer token: {e}") from e

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise AuthenticationError("Token has no subject")
        return subject


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> str:
    """FastAPI dependency returning the authenticated user id.

    Raises:
        AuthenticationError: If no valid bearer token was sent
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")

    verifier: TokenVerifier = request.app.state.token_verifier
    try:
        return verifier.verify(credentials.credentials)
    except AuthenticationError as e:
        logger.info("Rejected bearer token on %s: %s", request.url.path, e)
        raise
