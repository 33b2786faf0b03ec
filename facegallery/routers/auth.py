"""Registration and login."""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_settings
from ..models import User
from ..schemas import LoginRequest, LoginResponse, MessageResponse, RegisterRequest, UserSummary
from ..security import create_access_token, hash_password, verify_password
from ..settings import ALLOWED_ROLES, Settings

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_PASSWORD_LENGTH = 6


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    if not body.name or not body.password:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Name and password are required")
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        )
    role = body.role or "student"
    if role not in ALLOWED_ROLES:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Role must be one of {list(ALLOWED_ROLES)}")

    if db.query(User).filter(User.name == body.name).first() is not None:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Username already exists")

    user = User(name=body.name, password_hash=hash_password(body.password), role=role)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # lost a race with a concurrent registration of the same name
        db.rollback()
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Username already exists")

    logger.info(f"Registered {role} {user.name} ({user.id})")
    return {"message": "User registered successfully"}


@router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    if not body.name or not body.password:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Name and password are required")

    user = db.query(User).filter(User.name == body.name).first()
    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid credentials")

    token = create_access_token(
        user.id,
        user.role,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_in=settings.token_ttl_seconds,
    )
    return LoginResponse(token=token, user=UserSummary.model_validate(user))
