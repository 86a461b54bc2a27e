from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.api.deps import get_db
from app.models.user import User
from app.security import create_access_token, get_password_hash, verify_password
from app.utils.email import OTP_EXPIRE_MINUTES, generate_otp, send_verification_email

router = APIRouter()


class RegisterPayload(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None


class VerifyEmailPayload(BaseModel):
    email: EmailStr
    token: str


class EmailOnlyPayload(BaseModel):
    email: EmailStr


def _stamp_verification_code(user: User) -> str:
    """Store a hashed one-time code on the user and return the plain code."""
    code = generate_otp()
    user.email_verification_token = get_password_hash(code)
    user.email_verification_token_expires = datetime.utcnow() + timedelta(minutes=OTP_EXPIRE_MINUTES)
    return code


async def resend_otp(user: User, db: AsyncSession, background_tasks: Optional[BackgroundTasks] = None):
    code = _stamp_verification_code(user)
    await db.commit()
    if background_tasks is None:
        # error responses skip background tasks
        await send_verification_email(user.email, code)
    else:
        background_tasks.add_task(send_verification_email, user.email, code)


async def _find_user(db: AsyncSession, email: str) -> Optional[User]:
    return (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()


def _can_sign_in(user: Optional[User], password: str) -> bool:
    return user is not None and user.is_active and verify_password(password, user.hashed_password)


async def _require_unverified(db: AsyncSession, email: str) -> User:
    user = await _find_user(db, email)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.email_verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already verified")
    return user


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterPayload, background_tasks: BackgroundTasks, db: AsyncSession = Depends(get_db)):
    known = await _find_user(db, payload.email)
    if known is not None:
        if known.email_verified:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
        await resend_otp(known, db)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email registered but not verified; a new code has been sent",
        )

    user = User(
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        full_name=payload.full_name,
        email_verified=False,
    )
    code = _stamp_verification_code(user)
    db.add(user)
    await db.commit()

    background_tasks.add_task(send_verification_email, payload.email, code)
    return {"message": "Registered. Check your inbox for the verification code."}


@router.post("/verify-email")
async def verify_email(payload: VerifyEmailPayload, db: AsyncSession = Depends(get_db)):
    user = await _require_unverified(db, payload.email)

    expires = user.email_verification_token_expires
    if expires is None or expires < datetime.utcnow():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Verification code expired")
    if not verify_password(payload.token, user.email_verification_token):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid verification code")

    user.email_verified = True
    user.email_verification_token = None
    user.email_verification_token_expires = None
    await db.commit()
    return {"message": "Email verified"}


@router.post("/resend-verification-email")
async def resend_verification(
    payload: EmailOnlyPayload, background_tasks: BackgroundTasks, db: AsyncSession = Depends(get_db)
):
    user = await _require_unverified(db, payload.email)
    await resend_otp(user, db, background_tasks)
    return {"message": "Verification code sent"}


@router.post("/login/token")
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    user = await _find_user(db, form_data.username)
    if not _can_sign_in(user, form_data.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.email_verified:
        await resend_otp(user, db)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Email not verified; a new code has been sent",
        )

    token = create_access_token(data={"sub": user.email, "role": "user"})
    return {"access_token": token, "token_type": "bearer"}
