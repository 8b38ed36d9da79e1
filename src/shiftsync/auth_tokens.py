from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time

from shiftsync.config import settings


_TOKEN_VERSION = "v1"


def _hmac_sha256(secret: str, message: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()
    # URL-safe and slightly shorter.
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def make_access_token(user_id: str, now_ts: int | None = None) -> str:
    """Create a signed bearer token.

    Token format (dot-separated):
      version.exp.user_id.nonce.sig

    user_id is base64url encoded because entity ids are free-form strings.
    """

    now = int(now_ts if now_ts is not None else time.time())
    exp = now + int(settings.auth_token_max_age_seconds)
    uid = base64.urlsafe_b64encode(user_id.encode("utf-8")).decode("ascii").rstrip("=")
    nonce = secrets.token_urlsafe(16)
    payload = f"{_TOKEN_VERSION}.{exp}.{uid}.{nonce}"
    sig = _hmac_sha256(settings.auth_token_secret, payload)
    return f"{payload}.{sig}"


def verify_access_token(token: str | None, now_ts: int | None = None) -> dict | None:
    """Verify and parse a bearer token.

    Returns None if invalid/expired.
    Returns: {"user_id": str, "exp": int}
    """

    if not token:
        return None

    parts = token.split(".")
    if len(parts) != 5:
        return None

    v, exp_s, uid, nonce, sig = parts
    if v != _TOKEN_VERSION or not exp_s.isdigit() or not uid or not nonce:
        return None

    exp = int(exp_s)
    now = int(now_ts if now_ts is not None else time.time())
    if exp < now:
        return None

    payload = f"{v}.{exp}.{uid}.{nonce}"
    expected = _hmac_sha256(settings.auth_token_secret, payload)
    if not secrets.compare_digest(sig, expected):
        return None

    try:
        user_id = base64.urlsafe_b64decode(uid + "=" * (-len(uid) % 4)).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return None

    return {"user_id": user_id, "exp": exp}
