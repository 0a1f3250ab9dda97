from datetime import datetime, timedelta, timezone
import hashlib

from passlib.context import CryptContext
from jose import jwt, JWTError

from alumni_portal.core.config import settings

ACCESS_TOKEN_TYPE = "access"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def _bcrypt_input(password: str) -> str:
    # bcrypt reads at most 72 bytes; the sha256 hex digest is always 64 ASCII chars
    return hashlib.sha256(password.encode("utf-8")).hexdigest()

def hash_password(password: str) -> str:
    return pwd_context.hash(_bcrypt_input(password))

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(_bcrypt_input(password), password_hash)

def create_access_token(subject: str, ttl: timedelta | None = None) -> str:
    """Signed bearer token for the member whose id is ``subject``."""
    issued = datetime.now(timezone.utc)
    expires = issued + (ttl or timedelta(minutes=settings.jwt_access_ttl_min))
    claims = {
        "sub": subject,
        "typ": ACCESS_TOKEN_TYPE,
        "iat": int(issued.timestamp()),
        "exp": int(expires.timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_alg)

def decode_token(token: str) -> dict:
    # raises JWTError on a bad signature or an expired token
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])

def user_id_from_token(token: str) -> int:
    """
    Resolve an access token to a user id.

    Raises ``JWTError`` for anything that is not a valid, unexpired access
    token carrying a numeric subject.
    """
    claims = decode_token(token)
    if claims.get("typ") != ACCESS_TOKEN_TYPE:
        raise JWTError("Not an access token")
    subject = claims.get("sub")
    if not subject or not str(subject).isdigit():
        raise JWTError("Token subject is not a user id")
    return int(subject)

__all__ = [
    "JWTError",
    "hash_password",
    "verify_password",
    "create_access_token",
    "decode_token",
    "user_id_from_token",
]
