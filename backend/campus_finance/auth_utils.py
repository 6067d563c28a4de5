"""JWT decoding and role-based access-control dependencies.

Tokens are issued by the campus identity service; this module only verifies
them.  ``sub`` carries the staff id and ``role`` the staff role.
"""

import enum
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from campus_finance.config import settings

security = HTTPBearer()

ALGORITHM = "HS256"


class StaffRole(str, enum.Enum):
    ADMIN = "admin"
    BURSAR = "bursar"
    ACCOUNTANT = "accountant"
    VIEWER = "viewer"


ANY_STAFF = tuple(StaffRole)
COLLECTIONS_ROLES = (StaffRole.ADMIN, StaffRole.BURSAR, StaffRole.ACCOUNTANT)
LEDGER_ROLES = (StaffRole.ADMIN, StaffRole.ACCOUNTANT)
OVERRIDE_ROLES = (StaffRole.ADMIN,)


class CurrentUser(BaseModel):
    id: int
    role: StaffRole
    email: Optional[str] = None


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Issue a token; used by local tooling and tests."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and return the JWT payload. Raises JWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(credentials.credentials)
        user_id_raw = payload.get("sub")
        token_type = payload.get("type")
        if user_id_raw is None or token_type != "access":
            raise credentials_exception
        return CurrentUser(
            id=int(user_id_raw),
            role=StaffRole(payload.get("role")),
            email=payload.get("email"),
        )
    except (JWTError, ValueError, TypeError):
        raise credentials_exception


def require_roles(*roles: StaffRole):
    """Dependency factory that checks the user has one of the required roles."""
    async def role_checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user
    return role_checker
