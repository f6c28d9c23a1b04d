"""
Authentication Service
"""
from datetime import datetime, timedelta
from typing import Optional, Tuple
from jose import jwt, JWTError
from sqlalchemy.orm import Session
import uuid
import structlog

from gridportal.config import settings
from gridportal.models import User, Role
from gridportal.schemas import TokenPayload, AuthResponse, UserInfo, RegisterRequest

logger = structlog.get_logger()


def create_access_token(user: User) -> Tuple[str, datetime]:
    """Create JWT access token carrying the user's id, name and roles."""
    expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": str(user.id),
        "name": user.username,
        "email": user.email,
        "roles": user.get_role_names(),
        "jti": str(uuid.uuid4()),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "exp": expire,
    }
    token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return token, expire


def verify_token(token: str, verify_exp: bool = True) -> Optional[TokenPayload]:
    """Verify JWT token and return payload. Expiry is ignored when verify_exp is False."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options={"verify_exp": verify_exp}
        )
        return TokenPayload(
            sub=int(payload["sub"]),
            name=payload["name"],
            roles=payload.get("roles", []),
            email=payload.get("email"),
            exp=datetime.utcfromtimestamp(payload["exp"])
        )
    except (JWTError, KeyError, ValueError):
        return None


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username).first()


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
    """Authenticate user by username and password."""
    user = get_user_by_username(db, username)
    if not user:
        return None
    if not user.is_active:
        return None
    if not user.verify_password(password):
        return None
    return user


def to_user_info(user: User) -> UserInfo:
    return UserInfo(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        roles=user.get_role_names()
    )


def build_auth_response(user: User, message: str) -> AuthResponse:
    """Issue a token for the user and wrap it in an AuthResponse."""
    token, expiration = create_access_token(user)
    return AuthResponse(
        success=True,
        message=message,
        token=token,
        token_expiration=expiration,
        user=to_user_info(user)
    )


def register_user(db: Session, request: RegisterRequest) -> AuthResponse:
    """Create a user with the default role and return a logged-in response."""
    if get_user_by_username(db, request.username):
        return AuthResponse(success=False, message="Username already exists")

    if request.email and db.query(User).filter(User.email == request.email).first():
        return AuthResponse(success=False, message="Email already registered")

    user = User(
        username=request.username,
        email=request.email,
        first_name=request.first_name,
        last_name=request.last_name,
        hashed_password=User.hash_password(request.password),
        is_active=True
    )

    default_role = db.query(Role).filter(
        Role.name == settings.DEFAULT_ROLE,
        Role.is_active == True
    ).first()
    if default_role:
        user.roles = [default_role]
    else:
        logger.warning("default_role_missing", role=settings.DEFAULT_ROLE)

    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("user_registered", user_id=user.id, username=user.username)
    return build_auth_response(user, "Registration successful")


def login_user(db: Session, username: str, password: str) -> AuthResponse:
    """Validate credentials, stamp last login and issue a token."""
    user = authenticate_user(db, username, password)
    if not user:
        return AuthResponse(success=False, message="Invalid username or password")

    user.last_login_at = datetime.utcnow()
    db.commit()

    return build_auth_response(user, "Login successful")


def refresh_access_token(db: Session, token: str) -> AuthResponse:
    """Issue a new token from a previously issued one, expired or not."""
    payload = verify_token(token, verify_exp=False)
    if not payload:
        return AuthResponse(success=False, message="Invalid token")

    user = get_user_by_id(db, payload.sub)
    if not user or not user.is_active:
        return AuthResponse(success=False, message="User not found or inactive")

    return build_auth_response(user, "Token refreshed successfully")
