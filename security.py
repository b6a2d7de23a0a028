from datetime import datetime, timedelta, timezone
from typing import FrozenSet, Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

import config
from database import get_db, to_object_id
from errors import AppError, ForbiddenError, UnauthorizedError
from schemas import Permission, Role

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def get_current_user(authorization: Optional[str] = Header(default=None), db: Database = Depends(get_db)) -> dict:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise UnauthorizedError("Not authenticated")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Invalid token")
    sub = payload.get("sub")
    if not sub:
        raise UnauthorizedError("Invalid token")
    try:
        user = db["users"].find_one({"_id": to_object_id(sub)})
    except AppError:
        raise UnauthorizedError("Invalid token")
    if not user:
        raise UnauthorizedError("User not found")
    return user


def role_permissions(db: Database, user: dict) -> FrozenSet[Permission]:
    """Capabilities granted to ``user``; every Role is handled explicitly."""
    role = Role(user.get("role", Role.USER))
    if role is Role.ADMIN:
        return frozenset(Permission)
    if role is Role.MANAGER:
        manager = db["managers"].find_one({"user_id": str(user["_id"])})
        if not manager or not manager.get("is_active", False):
            return frozenset()
        return frozenset(Permission(p) for p in manager.get("permissions", []))
    if role is Role.SELLER or role is Role.USER:
        return frozenset()
    raise ValueError(f"Unhandled role {role!r}")


def require_permission(permission: Permission):
    def checker(user: dict = Depends(get_current_user), db: Database = Depends(get_db)) -> dict:
        if permission not in role_permissions(db, user):
            raise ForbiddenError(f"Missing permission {permission.value}")
        return user

    return checker
