"""Principal extraction from bearer tokens.

Tokens are minted by the authentication service; this module only
validates them. The ``sub`` claim carries the client's UUID.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

import jwt
from fastapi import Request

from ftex_core.config import AuthorizationSettings
from ftex_core.exceptions import FtexForbiddenError

_logger = logging.getLogger("ftex.api.authz")

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Principal:
    client_id: UUID


class TokenValidator:
    """Validates bearer JWTs against the configured key, issuer and audience."""

    def __init__(self, settings: AuthorizationSettings):
        self._settings = settings

    @property
    def header_key(self) -> str:
        return self._settings.header_key

    def principal_from_header(self, value: str | None) -> Principal:
        if not value:
            raise FtexForbiddenError("authorization required")
        token = value[len(BEARER_PREFIX):] if value.lower().startswith(BEARER_PREFIX) else value
        return self.principal_from_token(token.strip())

    def principal_from_token(self, token: str) -> Principal:
        try:
            claims = jwt.decode(
                token,
                self._settings.jwt_key,
                algorithms=[self._settings.jwt_algorithm],
                issuer=self._settings.jwt_issuer,
                audience=self._settings.jwt_audience,
                options={"require": ["sub", "exp"]},
            )
        except jwt.InvalidTokenError as e:
            _logger.info(f"Rejected bearer token: {type(e).__name__}")
            raise FtexForbiddenError("invalid or expired token") from None

        try:
            return Principal(client_id=UUID(str(claims["sub"])))
        except ValueError:
            raise FtexForbiddenError("invalid or expired token") from None


async def require_principal(request: Request) -> Principal:
    """Resolve the authenticated principal for the current request."""
    validator: TokenValidator = request.app.state.token_validator
    return validator.principal_from_header(request.headers.get(validator.header_key))
