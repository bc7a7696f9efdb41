"""
Bearer token identity: issue and decode JWTs, resolve the calling employee.
"""

from datetime import datetime, timedelta
from typing import Optional, Tuple
from jose import ExpiredSignatureError, JWTError, jwt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.config import settings

bearer_scheme = HTTPBearer()


class TokenError(Exception):
    """Token 無法解析或已過期"""
    pass


def create_user_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """
    簽發員工的 access token。

    sub 為用戶 ID，org 為所屬組織 ID。
    """
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {
        "sub": str(user.id),
        "org": user.organization_id,
        "exp": expire,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_user_token(token: str) -> Tuple[int, Optional[int]]:
    """
    解析 access token。

    Returns:
        (user_id, organization_id)

    Raises:
        TokenError: 簽章錯誤、已過期或缺少 sub
    """
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise TokenError("Token has expired")
    except JWTError:
        raise TokenError("Could not validate credentials")

    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise TokenError("Token subject is missing")

    return user_id, claims.get("org")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    由 bearer token 取得目前用戶。

    token 的組織必須與用戶目前所屬組織一致，調動組織後舊 token 失效。
    """
    try:
        user_id, organization_id = decode_user_token(credentials.credentials)
    except TokenError as e:
        raise _unauthorized(str(e))

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise _unauthorized("Could not validate credentials")

    if organization_id is not None and organization_id != user.organization_id:
        raise _unauthorized("Token organization does not match")

    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return current_user


async def get_current_admin_user(current_user: User = Depends(get_current_active_user)) -> User:
    """組織管理員限定"""
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")
    return current_user
