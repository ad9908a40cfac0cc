import time
from dataclasses import dataclass

import jwt

from transfer_service.domain.exceptions import UnauthenticatedError


@dataclass(frozen=True)
class Principal:
    account_id: str
    role: str | None = None


class TokenVerifier:
    """Verifies bearer tokens and extracts the calling account."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    def verify(self, token: str) -> Principal:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError as e:
            raise UnauthenticatedError("Invalid or expired token") from e
        return Principal(account_id=str(claims["sub"]), role=claims.get("role"))

    def issue(self, account_id: str, role: str = "personal", ttl_seconds: int = 900) -> str:
        now = int(time.time())
        payload = {
            "sub": account_id,
            "role": role,
            "iat": now,
            "exp": now + ttl_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)
