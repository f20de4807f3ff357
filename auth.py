from datetime import datetime, timedelta, UTC

from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.hash import bcrypt
from pydantic import BaseModel

from config import Settings
from models import User

# OAuth2 scheme
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login")


class TokenData(BaseModel):
    username: str
    type: str = "access"


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.verify(password, hashed)


def _encode(data: dict, expires: timedelta, token_type: str, settings: Settings) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": datetime.now(UTC) + expires, "type": token_type})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_access_token(data: dict, settings: Settings) -> str:
    """Create a JWT access token."""
    return _encode(data, timedelta(minutes=settings.access_token_expire_minutes), "access", settings)


def create_refresh_token(data: dict, settings: Settings) -> str:
    """Create a JWT refresh token."""
    return _encode(data, timedelta(days=settings.refresh_token_expire_days), "refresh", settings)


def decode_token(token: str, settings: Settings) -> TokenData:
    """Decode a JWT and return its claims. Raises JWTError if invalid or expired."""
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    username = payload.get("sub")
    if username is None:
        raise JWTError("No 'sub' in token payload")
    return TokenData(username=username, type=payload.get("type", "access"))


async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)) -> User:
    """Retrieve the current authenticated user from a JWT access token."""
    credentials_exception = HTTPException(
        status_code=401,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        token_data = decode_token(token, request.app.state.settings)
    except JWTError:
        raise credentials_exception
    if token_data.type != "access":
        raise credentials_exception
    user = request.app.state.db.get_user_by_username(token_data.username)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_role(*roles: str):
    """Dependency factory that only lets users with one of the given roles through."""
    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(status_code=403, detail=f"Only {' or '.join(roles)} users can do this")
        return current_user
    return checker
