import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import EmailStr
from sqlalchemy.exc import IntegrityError
from sqlmodel import SQLModel, Field, select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import settings
from ..core.jwt import create_access_token
from ..core.money import utcnow
from ..core.security import get_current_user, hash_password, verify_password
from ..database import get_session
from ..models.company import Company
from ..models.user import User, UserRole


router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


class RegisterIn(SQLModel):
    company_name: str = Field(min_length=1, max_length=200)
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(min_length=6)


class UserRead(SQLModel):
    id: uuid.UUID
    company_id: uuid.UUID
    email: str
    name: str
    role: UserRole
    created_at: datetime
    updated_at: datetime


class LoginIn(SQLModel):
    email: EmailStr
    password: str


class TokenOut(SQLModel):
    access_token: str
    token_type: str


def _reject_whitespace(password: str):
    if any(c.isspace() for c in password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must not contain whitespace",
        )


async def _find_user_by_email(session: AsyncSession, email: str):
    email_norm = email.strip().lower()
    return (await session.exec(select(User).where(User.email == email_norm))).first()


async def _authenticate(session: AsyncSession, email: str, password: str) -> User:
    user = await _find_user_by_email(session, email)
    if user is None or not user.is_active or not verify_password(password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return user


def _email_taken() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Email already registered",
    )


def _issue_token(user: User) -> str:
    return create_access_token(user.id, user.company_id, email=user.email)


@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
)
async def register_company(
    payload: RegisterIn,
    session: AsyncSession = Depends(get_session),
):
    """Create a company together with its first user, who becomes ADMIN."""
    _reject_whitespace(payload.password)
    email_norm = payload.email.strip().lower()
    if await _find_user_by_email(session, email_norm) is not None:
        raise _email_taken()

    now = utcnow()
    company = Company(id=uuid.uuid4(), name=payload.company_name.strip(), created_at=now, updated_at=now)
    user = User(
        id=uuid.uuid4(),
        company_id=company.id,
        email=email_norm,
        name=payload.name.strip(),
        hashed_password=hash_password(payload.password),
        role=UserRole.ADMIN,
        created_at=now,
        updated_at=now,
    )

    session.add(company)
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        # a concurrent registration claimed the email after the lookup above
        await session.rollback()
        raise _email_taken()
    await session.refresh(user)
    return user


@router.post(
    "/login",
    response_model=UserRead,
    status_code=status.HTTP_200_OK,
)
async def login(payload: LoginIn, response: Response, session: AsyncSession = Depends(get_session)):
    _reject_whitespace(payload.password)
    user = await _authenticate(session, payload.email, payload.password)

    # HttpOnly cookie keeps the token away from JS; cross-site production needs SameSite=None + Secure.
    is_prod = settings.environment.lower() == "production"
    response.set_cookie(
        key="access_token",
        value=_issue_token(user),
        httponly=True,
        secure=is_prod,
        samesite="none" if is_prod else "lax",
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )
    return user


@router.get(
    "/me",
    response_model=UserRead,
    status_code=status.HTTP_200_OK,
)
async def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def logout(response: Response):
    response.delete_cookie(key="access_token", path="/")
    return None


@router.post(
    "/token",
    response_model=TokenOut,
    status_code=status.HTTP_200_OK,
)
async def token(form_data: OAuth2PasswordRequestForm = Depends(), session: AsyncSession = Depends(get_session)):
    # OAuth2PasswordRequestForm carries the email in 'username'
    _reject_whitespace(form_data.password)
    user = await _authenticate(session, form_data.username, form_data.password)
    return TokenOut(access_token=_issue_token(user), token_type="bearer")
