from datetime import datetime, timedelta, timezone

import jwt

from scheduling.core import config


def create_access_token(user_id: int, role: str | None = None, expires_minutes: int | None = None) -> str:
    """Sign a bearer token whose subject is ``user_id``.

    This service never logs anyone in. Tokens are issued by the identity
    provider that shares ``JWT_SECRET_KEY``; this helper builds the same
    payload for that integration and for tests.
    """
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    issued_at = datetime.now(timezone.utc)
    payload = {"sub": str(user_id), "exp": issued_at + timedelta(minutes=expire_minutes), "iat": issued_at}
    if role:
        payload["role"] = role
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
