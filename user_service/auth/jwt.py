from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from user_service.config import Settings
from user_service.errors import InvalidTokenError


class TokenService:
    """Issues and verifies the service's HS256 bearer tokens.

    There is no revocation list: a token stays valid until ``exp``.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256", expires_minutes: int = 1440):
        if not secret_key:
            raise ValueError("JWT secret key must not be empty")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_minutes = expires_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            secret_key=settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
            expires_minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
        )

    def issue(self, user: Any, expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta if expires_delta is not None else timedelta(minutes=self.expires_minutes))
        role = getattr(user.role, "value", user.role)
        claims = {
            "sub": str(user.id),
            "id": user.id,
            "email": user.email,
            "role": role,
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            raise InvalidTokenError("Token has expired") from exc
        except JWTError as exc:
            raise InvalidTokenError("Invalid token") from exc

        if not isinstance(payload.get("id"), int):
            raise InvalidTokenError("Token payload is missing the user id")
        return payload

