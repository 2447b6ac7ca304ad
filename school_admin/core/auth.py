from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from .config import settings
from .exceptions import AuthError
import logging

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)
security = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(identity: str, role: str, name: str, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode = {
        "sub": str(identity),
        "role": role,
        "name": name,
        "iat": now,
        "exp": expire,
    }
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    logger.info(f"Created token for user {identity} with role {role}")
    return encoded_jwt


def decode_access_token(token: str) -> dict:
    """
    Validate signature and expiry, returning the token claims.

    Raises AuthError with reason "expired" or "invalid".
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except ExpiredSignatureError:
        logger.warning("Rejected expired token")
        raise AuthError("Token expired, please log in again", reason=AuthError.EXPIRED)
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        raise AuthError("Invalid token")

    if payload.get("sub") is None or payload.get("role") is None:
        logger.error("Token missing required fields")
        raise AuthError("Invalid token")
    return payload


def refresh_access_token(token: str) -> str:
    """Re-issue a token from one whose only defect may be its expiry."""
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"verify_exp": False}
        )
    except JWTError as e:
        logger.warning(f"Refusing to refresh token: {e}")
        raise AuthError("Could not refresh token")

    if payload.get("sub") is None or payload.get("role") is None:
        raise AuthError("Could not refresh token")
    return create_access_token(payload["sub"], payload["role"], payload.get("name", ""))


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> dict:
    if credentials is None or not credentials.credentials:
        raise AuthError("Access denied, no authentication token provided")

    payload = decode_access_token(credentials.credentials)
    return {
        "user_id": payload["sub"],
        "role": payload["role"],
        "name": payload.get("name", "")
    }
