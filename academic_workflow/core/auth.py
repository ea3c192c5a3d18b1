from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from .config import settings
from ..models.user import UserRole
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as supplied by the identity provider"""
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


def create_access_token(data: dict, expires_minutes: int = None):
    """Mint a token in the identity provider's format (operators and tests)."""
    to_encode = data.copy()
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    to_encode.update({"exp": expire})

    # Ensure 'sub' is a string (JWT requirement)
    if 'sub' in to_encode:
        to_encode['sub'] = str(to_encode['sub'])

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Principal:
    token = credentials.credentials

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id_str = payload.get("sub")
    role = payload.get("type")
    if user_id_str is None or role is None:
        logger.warning("Token missing required fields")
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        user_id = int(user_id_str)
    except ValueError:
        logger.warning(f"Cannot convert user_id '{user_id_str}' to int")
        raise HTTPException(status_code=401, detail="Invalid token")

    if role not in {r.value for r in UserRole}:
        logger.warning(f"Unknown role in token: {role}")
        raise HTTPException(status_code=401, detail="Invalid token")

    return Principal(user_id=user_id, role=role)


def _require(principal: Principal, *roles: UserRole) -> Principal:
    allowed = {r.value for r in roles}
    if principal.role not in allowed:
        logger.warning(f"Access denied - role '{principal.role}', expected one of {sorted(allowed)}")
        raise HTTPException(status_code=403, detail="Insufficient role for this operation")
    return principal


# Helper functions for role-based access
def require_admin(principal: Principal = Depends(verify_token)) -> Principal:
    return _require(principal, UserRole.ADMIN)


def require_teacher(principal: Principal = Depends(verify_token)) -> Principal:
    return _require(principal, UserRole.TEACHER)


def require_student(principal: Principal = Depends(verify_token)) -> Principal:
    return _require(principal, UserRole.STUDENT)


def require_staff(principal: Principal = Depends(verify_token)) -> Principal:
    return _require(principal, UserRole.TEACHER, UserRole.ADMIN)
