"""Authenticated encryption for tokens handed to clients.

Offer identifiers and pagination cursors leave the server as opaque,
tamper-evident strings: ``base64url(nonce || AES-256-GCM(payload))`` without
padding. The token purpose is bound as associated data, so a token minted
for one purpose never opens under another.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from typing import Any, Dict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import FtexInvalidRequestError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
TAG_SIZE = 16

PURPOSE_OFFER = "offer"
PURPOSE_CURSOR = "cursor"


def _encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _decode(token: str) -> bytes:
    padded = token + "=" * (-len(token) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


class TokenSealer:
    """Seal and open opaque tokens with a server-side AES-256-GCM key."""

    def __init__(self, key: bytes | str):
        if isinstance(key, str):
            key = key.encode("utf-8")
        if len(key) != 32:
            raise ValueError("sealing key must be exactly 32 bytes")
        self._aead = AESGCM(key)

    def seal(self, data: bytes, purpose: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, data, purpose.encode("ascii"))
        return _encode(nonce + ciphertext)

    def open(self, token: str, purpose: str, field: str = "token") -> bytes:
        """
        Recover the payload of a sealed token.

        Raises:
            FtexInvalidRequestError: the token is malformed, truncated, was
                sealed for another purpose or under another key, or was
                altered in transit.
        """
        if not isinstance(token, str) or not token:
            raise FtexInvalidRequestError(f"invalid {purpose} token", field=field)
        try:
            raw = _decode(token)
        except (binascii.Error, ValueError):
            raise FtexInvalidRequestError(f"invalid {purpose} token", field=field) from None

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise FtexInvalidRequestError(f"invalid {purpose} token", field=field)

        nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, ciphertext, purpose.encode("ascii"))
        except InvalidTag:
            logger.info(f"Rejected {purpose} token that failed authentication")
            raise FtexInvalidRequestError(f"invalid {purpose} token", field=field) from None

    def seal_json(self, payload: Dict[str, Any], purpose: str) -> str:
        data = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        return self.seal(data, purpose)

    def open_json(self, token: str, purpose: str, field: str = "token") -> Dict[str, Any]:
        data = self.open(token, purpose, field=field)
        try:
            payload = json.loads(data)
        except ValueError:
            raise FtexInvalidRequestError(f"invalid {purpose} token", field=field) from None
        if not isinstance(payload, dict):
            raise FtexInvalidRequestError(f"invalid {purpose} token", field=field)
        return payload
