"""
Authentication API Routes
"""
from fastapi import APIRouter, Depends, Body, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from gridportal.database import get_db
from gridportal.schemas import RegisterRequest, LoginRequest, AuthResponse
from gridportal.models import User
from gridportal.core.auth import register_user, login_user, refresh_access_token
from gridportal.core.rbac import get_current_user
from gridportal.core.audit import AuditLogger
from gridportal.api.responses import model_response

router = APIRouter()


@router.post("/register", response_model=AuthResponse)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new user with the default role."""
    response = register_user(db, request)
    if not response.success:
        return model_response(response, status.HTTP_400_BAD_REQUEST)

    auditor = AuditLogger(db)
    auditor.log(
        action="user_register",
        resource_type="user",
        resource_id=str(response.user.id),
        details={"username": response.user.username}
    )
    return response


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login and get access token."""
    response = login_user(db, request.username, request.password)

    auditor = AuditLogger(db)
    if not response.success:
        auditor.log_login(request.username, success=False)
        return model_response(response, status.HTTP_401_UNAUTHORIZED)

    user = db.query(User).filter(User.id == response.user.id).first()
    auditor.log_login(request.username, user=user, success=True)
    return response


@router.post("/refresh", response_model=AuthResponse)
async def refresh(token: str = Body(...), db: Session = Depends(get_db)):
    """Issue a fresh token for a previously issued one. The body is the token as a JSON string."""
    if not token.strip():
        return model_response(
            AuthResponse(success=False, message="Token is required"),
            status.HTTP_400_BAD_REQUEST
        )

    response = refresh_access_token(db, token)
    if not response.success:
        return model_response(response, status.HTTP_401_UNAUTHORIZED)
    return response


@router.get("/test")
async def test_auth(current_user: User = Depends(get_current_user)):
    """Verify that the bearer token is accepted."""
    return JSONResponse(content={
        "message": "You are authenticated!",
        "userId": str(current_user.id),
        "username": current_user.username,
        "roles": current_user.get_role_names(),
    })
