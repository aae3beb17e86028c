from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from src.auth.schemas import StaffPrincipal, StaffRole
from src.auth.utils import verify_token
from src.config import settings

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")

def get_current_staff(token: str = Depends(oauth2_scheme)) -> StaffPrincipal:
    """Staff member named by the bearer token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_token(token, credentials_exception)
    try:
        return StaffPrincipal(
            id=payload["sub"],
            email=payload.get("email", ""),
            name=payload.get("name"),
            role=StaffRole(payload.get("role", StaffRole.STAFF.value)),
        )
    except ValueError:
        raise credentials_exception

def require_admin(current_staff: StaffPrincipal = Depends(get_current_staff)) -> StaffPrincipal:
    """Require admin role for access"""
    if not current_staff.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_staff
