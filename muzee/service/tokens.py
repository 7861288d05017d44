from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from muzee.logging import get_logger
from muzee.service.errors import InvalidTokenError

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccessTokenClaims:
    user_id: int
    email: str
    issued_at: int
    expires_at: int


class TokenIssuer:
    """Issues HS256 access tokens and opaque refresh tokens.

    Access tokens are stateless: validity is signature plus expiry, with no
    revocation list. Refresh tokens carry no meaning on their own; they are
    only valid while a matching record exists in the refresh token store.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str = "muzee",
        access_ttl_seconds: int = 15 * 60,
        leeway_seconds: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret.encode()
        self.issuer = issuer
        self.access_ttl_seconds = access_ttl_seconds
        self.leeway_seconds = leeway_seconds
        self._clock = clock

    def _encode_segment(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    def _decode_segment(self, segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def _sign(self, signing_input: str) -> str:
        return self._encode_segment(
            hmac.new(self._secret, signing_input.encode(), hashlib.sha256).digest()
        )

    def issue_access_token(self, user_id: int, email: str) -> str:
        now = int(self._clock())
        header = {"alg": "HS256", "typ": "JWT"}
        payload = {
            "iss": self.issuer,
            "user_id": user_id,
            "email": email,
            "iat": now,
            "exp": now + self.access_ttl_seconds,
        }
        header_enc = self._encode_segment(json.dumps(header, separators=(",", ":")).encode())
        payload_enc = self._encode_segment(json.dumps(payload, separators=(",", ":")).encode())
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def issue_refresh_token(self) -> str:
        return str(uuid.uuid4())

    def _decode(self, token: str) -> Optional[dict[str, Any]]:
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None

        # Reject anything but HS256 to rule out algorithm confusion
        try:
            header = json.loads(self._decode_segment(header_b64))
        except (ValueError, TypeError):
            logger.warning("jwt_header_decode_failed")
            return None
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            logger.warning("jwt_invalid_algorithm")
            return None

        # compare_digest refuses non-ASCII str; such a signature cannot be ours
        if not sig_b64.isascii():
            return None
        signing_input = f"{header_b64}.{payload_b64}"
        if not hmac.compare_digest(self._sign(signing_input), sig_b64):
            return None
        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except (ValueError, TypeError) as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            return None
        if not isinstance(payload, dict):
            return None
        if payload.get("iss") != self.issuer:
            return None
        try:
            exp_ts = float(payload["exp"])
        except (KeyError, TypeError, ValueError):
            return None
        if exp_ts <= self._clock() - self.leeway_seconds:
            return None
        return payload

    def validate_access_token(self, token: str) -> AccessTokenClaims:
        """Return the token's claims or raise a single ``InvalidTokenError``.

        Expired, tampered and malformed tokens are indistinguishable to the
        caller.
        """
        payload = self._decode(token or "")
        if payload is None:
            raise InvalidTokenError()
        try:
            return AccessTokenClaims(
                user_id=int(payload["user_id"]),
                email=str(payload["email"]),
                issued_at=int(payload.get("iat", 0)),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidTokenError()
