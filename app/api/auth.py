from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from app.db.models import User
from app.db.session import get_db

router = APIRouter(prefix="/users", tags=["users"])


class UserCreateRequest(BaseModel):
    email: EmailStr


class UserItem(BaseModel):
    id: int
    email: str
    created_at: datetime


def _unknown_user() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown or missing user")


def get_current_user(
    x_user_id: Optional[str] = Header(default=None), db: Session = Depends(get_db)
) -> User:
    # Identity is asserted by the upstream gateway; nothing is verified here.
    try:
        user_id = int(x_user_id or "")
    except ValueError:
        raise _unknown_user()

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise _unknown_user()
    return user


@router.post("", response_model=UserItem, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreateRequest, db: Session = Depends(get_db)) -> UserItem:
    email = payload.email.lower()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(email=email)
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserItem(id=user.id, email=user.email, created_at=user.created_at)
