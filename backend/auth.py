from passlib.context import CryptContext
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict

from config import Settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


class TokenService:
    """Issues and validates signed session tokens."""

    def __init__(self, settings: Settings):
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.expiration = timedelta(hours=settings.jwt_expiration_hours)

    def create_access_token(self, user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token bound to a user id."""
        expire = datetime.now(timezone.utc) + (expires_delta or self.expiration)
        to_encode = {"sub": user_id, "exp": expire}
        return jwt.encode(to_encode, self.secret, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> Optional[Dict]:
        """Decode and validate a JWT token.

        Returns None for a bad signature, an expired token, a malformed token
        or a token without a subject.
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError:
            return None
        if not payload.get("sub"):
            return None
        return payload
