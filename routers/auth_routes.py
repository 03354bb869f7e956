from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from database import get_db
from middleware.rate_limit import limiter
from models.user import User
from schemas.auth import (
    AccountDelete,
    AuthResponse,
    LoginRequest,
    PasswordChange,
    ProfileUpdate,
    RegisterRequest,
    UserOut,
)
from services import account_service
from services.session_service import (
    get_bearer_token,
    get_current_user,
    refresh_session,
    require_bearer_token,
    resolve_user_id,
)

router = APIRouter()


@router.post("/login", response_model=AuthResponse)
@limiter.limit("20/minute", key_func=get_remote_address)
def login(request: Request, payload: LoginRequest, db: Session = Depends(get_db)):
    user, token = account_service.login(
        db,
        email=payload.email,
        password=payload.password,
        ip_address=request.client.host if request.client else None,
    )
    return AuthResponse(message="Login successful", user=UserOut.model_validate(user), token=token)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute", key_func=get_remote_address)
def register(request: Request, payload: RegisterRequest, db: Session = Depends(get_db)):
    user, token = account_service.register(
        db,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        password=payload.password,
        confirm_password=payload.confirm_password,
        phone=payload.phone,
        country=payload.country,
    )
    return AuthResponse(message="Registration successful", user=UserOut.model_validate(user), token=token)


@router.post("/logout")
def logout(request: Request, db: Session = Depends(get_db)):
    # idempotent: an unknown or already-revoked token still logs out
    token = get_bearer_token(request)
    if token:
        account_service.logout(db, token, user_id=resolve_user_id(db, token))
    return {"success": True, "message": "Logged out successfully"}


@router.post("/refresh")
def refresh(token: str = Depends(require_bearer_token), db: Session = Depends(get_db)):
    new_token = refresh_session(db, token)
    db.commit()
    return {"success": True, "token": new_token}


@router.get("/verify")
def verify(request: Request, db: Session = Depends(get_db)):
    token = get_bearer_token(request)
    if not token:
        return _invalid_token("No token provided")
    user_id = resolve_user_id(db, token)
    if user_id is None:
        return _invalid_token("Invalid token")
    return {"success": True, "valid": True, "user_id": user_id}


def _invalid_token(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"success": False, "valid": False, "error": message},
    )


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)):
    return {"success": True, "user": UserOut.model_validate(user)}


@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    user = account_service.update_profile(
        db,
        user,
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        country=payload.country,
        preferences=payload.preferences.model_dump(exclude_unset=True) if payload.preferences else None,
    )
    return {"success": True, "message": "Profile updated successfully", "user": UserOut.model_validate(user)}


@router.post("/password")
def change_password(
    payload: PasswordChange,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    account_service.change_password(
        db,
        user,
        current_password=payload.current_password,
        new_password=payload.new_password,
        confirm_password=payload.confirm_password,
    )
    return {"success": True, "message": "Password changed successfully"}


@router.delete("/account")
def delete_account(
    payload: AccountDelete,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    account_service.delete_account(db, user, password=payload.password)
    return {"success": True, "message": "Account deleted"}
