"""
Unit tests for OAuth state encoding.
"""

import base64
import json

from plan2tasks.auth.state import OAuthState, StateCodec


class TestStateRoundTrip:

    def test_signed_round_trip(self):
        codec = StateCodec("secret")
        state = OAuthState(user_email="user@example.com", planner_email="planner@example.com", invite_id="abc")

        assert codec.decode(codec.encode(state)) == state

    def test_encoded_state_is_url_safe(self):
        encoded = StateCodec("secret").encode(OAuthState(user_email="user+tag@example.com"))

        body, _, signature = encoded.partition(".")
        assert signature
        for char in encoded:
            assert char.isalnum() or char in "-_."

    def test_unsigned_round_trip_without_secret(self):
        codec = StateCodec("")
        state = OAuthState(user_email="user@example.com")

        encoded = codec.encode(state)

        assert "." not in encoded
        assert codec.decode(encoded) == state

    def test_payload_omits_missing_fields(self):
        assert OAuthState(user_email="u@example.com").to_payload() == {"userEmail": "u@example.com"}


class TestStateRejection:
    """Decoding never raises; bad input yields an empty state."""

    def test_tampered_body_is_rejected(self):
        codec = StateCodec("secret")
        encoded = codec.encode(OAuthState(user_email="user@example.com", planner_email="planner@example.com"))
        _, _, signature = encoded.partition(".")

        forged_body = base64.urlsafe_b64encode(
            json.dumps({"userEmail": "victim@example.com", "plannerEmail": "attacker@example.com"}).encode()
        ).decode().rstrip("=")

        assert codec.decode(f"{forged_body}.{signature}").is_empty

    def test_other_secret_is_rejected(self):
        encoded = StateCodec("one").encode(OAuthState(user_email="user@example.com"))
        assert StateCodec("two").decode(encoded).is_empty

    def test_unsigned_state_rejected_when_secret_configured(self):
        unsigned = StateCodec("").encode(OAuthState(user_email="user@example.com"))
        assert StateCodec("secret").decode(unsigned).is_empty

    def test_garbage_and_empty(self):
        codec = StateCodec("secret")
        assert codec.decode(None).is_empty
        assert codec.decode("").is_empty
        assert codec.decode("%%%not-state%%%").is_empty
        assert StateCodec("").decode("!!!").is_empty


class TestLegacyState:
    """Older links carried raw JSON with short keys."""

    def test_raw_json_accepted_without_secret(self):
        raw = json.dumps({"user": "user@example.com", "planner": "planner@example.com", "inviteId": "inv-1"})

        state = StateCodec("").decode(raw)

        assert state.user_email == "user@example.com"
        assert state.planner_email == "planner@example.com"
        assert state.invite_id == "inv-1"

    def test_raw_json_rejected_with_secret(self):
        raw = json.dumps({"userEmail": "user@example.com"})
        assert StateCodec("secret").decode(raw).is_empty
