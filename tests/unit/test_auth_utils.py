from datetime import UTC, datetime, timedelta

from estate_insights.api.auth_utils import create_access_token, decode_access_token


def test_round_trip_claims() -> None:
    token = create_access_token({"sub": "agent-1", "role": "AGENT"})

    payload = decode_access_token(token)

    assert payload is not None
    assert payload["sub"] == "agent-1"
    assert payload["role"] == "AGENT"
    assert "exp" in payload


def test_expired_token_rejected() -> None:
    issued = datetime.now(UTC) - timedelta(days=2)
    token = create_access_token({"sub": "agent-1"}, expires_delta=timedelta(hours=1), now_utc=issued)

    assert decode_access_token(token) is None


def test_garbage_token_rejected() -> None:
    assert decode_access_token("not-a-jwt") is None


def test_tampered_token_rejected() -> None:
    token = create_access_token({"sub": "agent-1", "role": "AGENT"})
    head, body, sig = token.split(".")
    tampered = ".".join([head, body, sig[::-1]])

    assert decode_access_token(tampered) is None
