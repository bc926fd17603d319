"""
OAuth ``state`` encoding.

The state value carries the user (and optionally the planner and invite)
through Google's redirect. Format::

    base64url(compact JSON) "." base64url(HMAC-SHA256(payload))

Decoding never raises: anything undecodable, unsigned or tampered with
comes back as an empty ``OAuthState`` so the callback can degrade to
"no invite context" instead of failing.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthState:
    """Context resumed on callback."""

    user_email: Optional[str] = None
    planner_email: Optional[str] = None
    invite_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.user_email or self.planner_email or self.invite_id)

    def to_payload(self) -> dict:
        payload = {"userEmail": self.user_email}
        if self.planner_email:
            payload["plannerEmail"] = self.planner_email
        if self.invite_id:
            payload["inviteId"] = self.invite_id
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "OAuthState":
        def _text(*keys: str) -> Optional[str]:
            for key in keys:
                value = payload.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
            return None

        return cls(
            user_email=_text("userEmail", "user"),
            planner_email=_text("plannerEmail", "planner"),
            invite_id=_text("inviteId", "invite"),
        )


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


class StateCodec:
    """
    Encodes and decodes OAuth state values.

    Usage:
        codec = StateCodec(secret="...")
        state = codec.encode(OAuthState(user_email="user@example.com"))
        codec.decode(state).user_email  # 'user@example.com'
    """

    def __init__(self, secret: str = ""):
        self._secret = secret.encode("utf-8")

    def _sign(self, body: str) -> str:
        digest = hmac.new(self._secret, body.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def encode(self, state: OAuthState) -> str:
        """Serialize state to a compact, URL-safe string."""
        raw = json.dumps(state.to_payload(), separators=(",", ":"), sort_keys=True)
        body = _b64encode(raw.encode("utf-8"))
        if not self._secret:
            return body
        return f"{body}.{self._sign(body)}"

    def decode(self, raw: Optional[str]) -> OAuthState:
        """Best-effort parse; returns an empty state on any failure."""
        if not raw:
            return OAuthState()

        body, _, signature = raw.partition(".")

        if self._secret:
            if not signature or not hmac.compare_digest(signature, self._sign(body)):
                logger.warning("Discarding OAuth state with missing or invalid signature")
                return OAuthState()

        try:
            payload = json.loads(_b64decode(body).decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeError):
            payload = self._decode_legacy(raw)

        if not isinstance(payload, dict):
            logger.warning("Discarding undecodable OAuth state")
            return OAuthState()
        return OAuthState.from_payload(payload)

    def _decode_legacy(self, raw: str) -> Optional[dict]:
        # Older links carried raw JSON in the state
        if self._secret:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None
