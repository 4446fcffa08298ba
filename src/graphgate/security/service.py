"""
Keycloak security service.

Verifies realm-issued bearer tokens and turns their claims into a Principal.
Construction does no I/O; realm keys are fetched lazily on the first token
whose key id is unknown (unless the adapter config carries the realm
public key), and refetched at most once per KEY_REFRESH_INTERVAL.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx
import jwt
from jwt.algorithms import RSAAlgorithm

from ..config import SecurityConfig
from ..core.errors import AuthenticationError

logger = logging.getLogger(__name__)

CONNECTION_TOKEN_KEYS = ("Authorization", "authorization", "token", "access_token")

# Seconds between realm key downloads triggered by unknown key ids
KEY_REFRESH_INTERVAL = 30.0


@dataclass
class Principal:
    """
    The authenticated user making the request.

    Stored on ``request.state.principal`` by the authentication stage and on
    the WebSocket scope for subscription connections.
    """
    id: Optional[str] = None
    username: Optional[str] = None
    roles: list[str] = field(default_factory=list)
    claims: dict[str, Any] = field(default_factory=dict)

    def has_role(self, role: str) -> bool:
        return role in self.roles


def extract_bearer_token(value: Optional[str]) -> Optional[str]:
    """Return the token of a "Bearer <token>" header value, or None."""
    if not value:
        return None
    scheme, _, token = value.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def principal_from_claims(claims: Mapping[str, Any], client_id: str) -> Principal:
    """Collect realm roles and client roles from verified token claims."""
    realm_access = claims.get("realm_access") or {}
    client_access = (claims.get("resource_access") or {}).get(client_id) or {}
    roles = list(realm_access.get("roles") or [])
    roles.extend(role for role in client_access.get("roles") or [] if role not in roles)

    return Principal(
        id=claims.get("sub"),
        username=claims.get("preferred_username"),
        roles=roles,
        claims=dict(claims),
    )


class SecurityService:
    """
    Bearer-token verifier for a Keycloak realm.

    Usage:
        security = SecurityService(SecurityConfig.from_keycloak_json("keycloak.json"))
        principal = await security.authenticate(token)
    """

    def __init__(
        self,
        config: SecurityConfig,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        refresh_interval: float = KEY_REFRESH_INTERVAL,
    ):
        self.config = config
        self._http_client = http_client
        self._owns_client = http_client is None
        self._keys: dict[str, Any] = {}
        self._refresh_interval = refresh_interval
        self._refresh_lock = asyncio.Lock()
        self._last_refresh: Optional[float] = None
        self._static_key: Optional[str] = None

        if config.realm_public_key:
            self._static_key = (
                "-----BEGIN PUBLIC KEY-----\n"
                f"{config.realm_public_key.strip()}\n"
                "-----END PUBLIC KEY-----"
            )

        logger.info(f"Security service configured for realm '{config.realm}'")

    async def authenticate(self, token: Optional[str]) -> Principal:
        """
        Verify a bearer token.

        Raises:
            AuthenticationError: If the token is missing, malformed, expired,
                or not signed by the realm
        """
        if not token:
            raise AuthenticationError("Missing bearer token")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise AuthenticationError(f"Invalid token header: {e}") from e

        key = await self._signing_key(header.get("kid"))

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=list(self.config.algorithms),
                audience=self.config.resource if self.config.verify_audience else None,
                issuer=self.config.issuer,
                options={"verify_aud": self.config.verify_audience, "verify_exp": True},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidAudienceError:
            raise AuthenticationError("Token audience mismatch")
        except jwt.PyJWTError as e:
            raise AuthenticationError(f"Token validation failed: {e}") from e

        return principal_from_claims(claims, self.config.resource)

    async def authorize_connection(self, params: Mapping[str, Any]) -> Principal:
        """Authenticate a WebSocket connection from its connection_init payload."""
        for key in CONNECTION_TOKEN_KEYS:
            value = params.get(key)
            if isinstance(value, str) and value:
                return await self.authenticate(extract_bearer_token(value) or value)
        raise AuthenticationError("Missing connection token")

    async def _signing_key(self, kid: Optional[str]) -> Any:
        if self._static_key is not None:
            return self._static_key

        if kid not in self._keys:
            async with self._refresh_lock:
                # Another request may have refreshed while this one waited
                if kid not in self._keys and self._refresh_due():
                    await self._refresh_keys()

        key = self._keys.get(kid)
        if key is None:
            raise AuthenticationError("Token key ID not found in realm keys")
        return key

    def _refresh_due(self) -> bool:
        if self._last_refresh is None:
            return True
        return time.monotonic() - self._last_refresh >= self._refresh_interval

    async def _refresh_keys(self) -> None:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=5.0)
        self._last_refresh = time.monotonic()

        try:
            response = await self._http_client.get(self.config.jwks_url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not fetch realm keys from {self.config.jwks_url}: {e}")
            raise AuthenticationError("Realm keys unavailable") from e

        keys = {}
        for key_data in data.get("keys", []):
            if key_data.get("use", "sig") != "sig" or "kid" not in key_data:
                continue
            keys[key_data["kid"]] = RSAAlgorithm.from_jwk(json.dumps(key_data))

        self._keys = keys
        logger.debug(f"Loaded {len(keys)} realm signing key(s)")

    async def aclose(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
