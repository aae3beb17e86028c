from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from src.auth.dependencies import get_current_staff
from src.auth.schemas import AuthResponse, LoginRequest, StaffPrincipal
from src.auth.service import StaffService
from src.auth.utils import create_access_token
from src.dependencies import Runtime, get_db, get_runtime

router = APIRouter()

@router.post("/login", response_model=AuthResponse)
def login(login_data: LoginRequest, db: Session = Depends(get_db), runtime: Runtime = Depends(get_runtime)):
    """Staff login for the QR verifier app and the admin panel"""
    staff = StaffService.authenticate(db, runtime.settings, login_data)
    if not staff:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(
        data={"sub": staff.id, "email": staff.email, "name": staff.name, "role": staff.role.value},
        expires_delta=timedelta(minutes=runtime.settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return AuthResponse(access_token=access_token, user=staff)

@router.get("/me", response_model=StaffPrincipal)
def read_current_staff(current_staff: StaffPrincipal = Depends(get_current_staff)):
    """Profile of the logged-in staff member"""
    return current_staff
