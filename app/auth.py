from datetime import datetime, timedelta
from typing import Optional
import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.exceptions import AuthenticationError
from app.models.user import User

# Initialize logging
logger = logging.getLogger(__name__)

# Bearer scheme; missing credentials are handled by the dependencies below
bearer_scheme = HTTPBearer(auto_error=False)


# Function to create an access token with an expiration time
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire})

    if "sub" not in to_encode:
        raise ValueError("Missing 'sub' claim (user id) in token data.")
    to_encode["sub"] = str(to_encode["sub"])

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


# Function to decode an access token into the user id it was issued for
def decode_access_token(token: str) -> int:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except ExpiredSignatureError:
        logger.info("Token expired")
        raise AuthenticationError("Token has expired")
    except JWTError as e:
        logger.info(f"JWT decoding failed: {str(e)}")
        raise AuthenticationError("Invalid token")

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        logger.warning("Token is missing a usable 'sub' claim")
        raise AuthenticationError("Token does not contain a valid subject")
    return int(subject)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get("access_token")


async def _load_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        logger.warning(f"Token subject {user_id} does not match any user")
        raise AuthenticationError("Could not validate credentials")
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Authenticated user; raises AuthenticationError (401) when absent or invalid."""
    token = _extract_token(request, credentials)
    if not token:
        raise AuthenticationError()

    return await _load_user(db, decode_access_token(token))


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    Authenticated user when a token is presented, otherwise None.

    An invalid or expired token, or one whose user no longer exists, is
    treated as no token: the request continues as an anonymous viewer.
    """
    token = _extract_token(request, credentials)
    if not token:
        return None

    try:
        return await _load_user(db, decode_access_token(token))
    except AuthenticationError as e:
        logger.info(f"Ignoring unusable token on optional-auth route: {e.message}")
        return None
