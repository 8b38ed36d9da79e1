from __future__ import annotations

from shiftsync.auth_tokens import make_access_token, verify_access_token
from shiftsync.config import settings


def test_access_token_round_trip_keeps_free_form_user_id() -> None:
    token = make_access_token("user/ñ.1", now_ts=1_000)
    payload = verify_access_token(token, now_ts=1_001)
    assert payload is not None
    assert payload["user_id"] == "user/ñ.1"
    assert payload["exp"] == 1_000 + settings.auth_token_max_age_seconds


def test_access_token_rejects_tampering_and_expiry() -> None:
    token = make_access_token("u1", now_ts=1_000)
    version, exp, uid, nonce, sig = token.split(".")

    forged_exp = f"{version}.{int(exp) + 999}.{uid}.{nonce}.{sig}"
    assert verify_access_token(forged_exp, now_ts=1_001) is None

    other = make_access_token("u2", now_ts=1_000).split(".")[2]
    assert verify_access_token(f"{version}.{exp}.{other}.{nonce}.{sig}", now_ts=1_001) is None

    expired_at = 1_000 + settings.auth_token_max_age_seconds + 1
    assert verify_access_token(token, now_ts=expired_at) is None

    assert verify_access_token("", now_ts=1_001) is None
    assert verify_access_token("not-a-token", now_ts=1_001) is None


def test_access_token_depends_on_secret() -> None:
    old = settings.auth_token_secret
    try:
        token = make_access_token("u1", now_ts=1_000)
        settings.auth_token_secret = "rotated-secret"
        assert verify_access_token(token, now_ts=1_001) is None
    finally:
        settings.auth_token_secret = old
