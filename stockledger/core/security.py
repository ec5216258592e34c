from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from jose import JWTError, jwt

from stockledger.core.config import settings

ALGORITHM = "HS256"


class TokenValidationError(ValueError):
    pass


@dataclass(frozen=True)
class TokenMetadata:
    subject: str
    role: str
    jti: str
    expires_at: datetime


def create_token(
    subject: str,
    role: str,
    expires_delta: timedelta,
    token_type: str = "access",
    jti: str | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "type": token_type,
        "jti": jti or str(uuid4()),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str, *, expected_type: str | None = None) -> dict:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise TokenValidationError("Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise TokenValidationError("Invalid token subject")

    if not payload.get("role"):
        raise TokenValidationError("Invalid token role")

    token_type = payload.get("type")
    if expected_type and token_type != expected_type:
        raise TokenValidationError("Invalid token type")

    return payload


def get_token_metadata(token: str) -> TokenMetadata:
    payload = decode_token(token, expected_type="access")
    exp = payload.get("exp")
    if not exp:
        raise TokenValidationError("Invalid token expiration")
    return TokenMetadata(
        subject=str(payload["sub"]),
        role=str(payload["role"]).lower(),
        jti=str(payload.get("jti") or ""),
        expires_at=datetime.fromtimestamp(int(exp), tz=timezone.utc),
    )


def create_access_token(user_id: str, role: str) -> str:
    """Issue an access token for an externally authenticated user.

    Sign-in lives outside this service; the helper exists for tooling and tests.
    """
    return create_token(
        subject=user_id,
        role=role,
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
    )
