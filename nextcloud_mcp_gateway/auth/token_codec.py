"""Stateless JWT access tokens signed with a shared HMAC secret."""

import logging
import time
from typing import Any, Iterable, Optional

import jwt

from nextcloud_mcp_gateway.auth.errors import ConfigurationError, InvalidTokenError
from nextcloud_mcp_gateway.auth.models import NextcloudAccessToken

logger = logging.getLogger(__name__)

# Access token validity: 1 hour
ACCESS_TOKEN_TTL = 3600

_GENERIC_FAILURE = "Invalid or expired access token"


class TokenCodec:
    """Encode and verify HS256 access tokens.

    Validity is determined purely by signature and expiry; there is no
    server-side revocation list.
    """

    ALGORITHM = "HS256"

    def __init__(
        self,
        secret: Optional[str],
        lifetime: int = ACCESS_TOKEN_TTL,
        previous_secrets: Iterable[str] = (),
    ):
        """
        Args:
            secret: Signing secret (MCP_AUTH_SECRET). May be None, in which
                case every encode/decode raises ConfigurationError.
            lifetime: Access token lifetime in seconds
            previous_secrets: Extra secrets accepted for verification only,
                to let outstanding tokens survive a secret rotation
        """
        self.secret = secret
        self.lifetime = lifetime
        self.previous_secrets = [s for s in previous_secrets if s]

    def _require_secret(self) -> str:
        if not self.secret:
            raise ConfigurationError("MCP_AUTH_SECRET is not set")
        return self.secret

    def encode(
        self,
        client_id: str,
        scopes: list[str],
        user_id: Optional[str] = None,
    ) -> str:
        """Mint a signed access token."""
        secret = self._require_secret()
        now = int(time.time())
        claims: dict[str, Any] = {
            "client_id": client_id,
            "scopes": list(scopes),
            "iat": now,
            "exp": now + self.lifetime,
        }
        if user_id:
            claims["sub"] = user_id
        return jwt.encode(claims, secret, algorithm=self.ALGORITHM)

    def decode(self, token: str) -> NextcloudAccessToken:
        """Verify a presented token and return its contents.

        Raises:
            ConfigurationError: If no signing secret is configured
            InvalidTokenError: On bad signature, malformed structure or expiry
        """
        secret = self._require_secret()

        payload: Optional[dict[str, Any]] = None
        for key in [secret, *self.previous_secrets]:
            try:
                payload = jwt.decode(
                    token,
                    key,
                    algorithms=[self.ALGORITHM],
                    options={"require": ["exp", "iat"]},
                )
                break
            except jwt.InvalidSignatureError:
                continue
            except jwt.InvalidTokenError as e:
                logger.debug(f"Access token rejected: {e}")
                raise InvalidTokenError(_GENERIC_FAILURE) from e

        if payload is None:
            logger.debug("Access token rejected: signature mismatch")
            raise InvalidTokenError(_GENERIC_FAILURE)

        client_id = payload.get("client_id")
        scopes = payload.get("scopes")
        if not isinstance(client_id, str) or not isinstance(scopes, list):
            logger.debug("Access token rejected: missing client_id or scopes claim")
            raise InvalidTokenError(_GENERIC_FAILURE)
        if not all(isinstance(s, str) for s in scopes):
            raise InvalidTokenError(_GENERIC_FAILURE)

        user_id = payload.get("sub")
        return NextcloudAccessToken(
            token=token,
            client_id=client_id,
            scopes=scopes,
            expires_at=int(payload["exp"]),
            user_id=user_id if isinstance(user_id, str) else None,
        )
