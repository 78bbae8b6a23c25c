from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from mh26.db.base import get_db
from mh26.db.models.enums import UserRole
from mh26.db.models.user import User
from mh26.schemas.user import LoginRequest, TokenResponse, UserCreate, UserResponse
from mh26.core.security import create_access_token, get_current_user, hash_password, verify_password

router = APIRouter(tags=["auth"])

@router.post("/register", response_model=UserResponse)
def register(user: UserCreate, db: Session = Depends(get_db)):
    existing = db.query(User).filter(User.email == user.email).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    new_user = User(
        email=user.email,
        name=user.name,
        phone=user.phone,
        password_hash=hash_password(user.password),
        role=UserRole.CUSTOMER,
    )

    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    return new_user


@router.post("/login", response_model=TokenResponse)
def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == credentials.email).first()

    if not user or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is suspended")

    token = create_access_token({"sub": user.email})

    return {"access_token": token, "token_type": "bearer"}


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user
