import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.api.deps import get_db
from app.models.admin import Admin
from app.security import create_access_token, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


def _can_sign_in(admin: Admin, password: str) -> bool:
    return admin is not None and admin.is_active and verify_password(password, admin.hashed_password)


@router.post("/token")
async def admin_token(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    admin = (
        await db.execute(select(Admin).where(Admin.username == form_data.username))
    ).scalar_one_or_none()

    if not _can_sign_in(admin, form_data.password):
        logger.warning("Rejected admin sign-in for %s", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = create_access_token(data={"sub": admin.username, "role": admin.role})
    return {"access_token": token, "token_type": "bearer"}
