from fastapi import HTTPException, Depends, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from jose import JWTError, jwt
from pydantic import BaseModel
from typing import Optional

from app.database import async_session
from app.security import ALGORITHM, SECRET_KEY
from app.models.user import User
from app.models.admin import Admin, ADMIN_ROLES

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login/token")
admin_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/admin/token")

class TokenData(BaseModel):
    sub: Optional[str] = None
    role: Optional[str] = None

async def get_db():
    async with async_session() as session:
        yield session

def decode_token(token: str, credentials_exception: HTTPException) -> TokenData:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception

    sub: str = payload.get("sub")
    if sub is None:
        raise credentials_exception
    return TokenData(sub=sub, role=payload.get("role"))

async def get_current_user(token: str = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    token_data = decode_token(token, credentials_exception)
    if token_data.role != "user":
        raise credentials_exception

    stmt = select(User).where(User.email == token_data.sub)
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception
    return user

async def get_current_admin(token: str = Depends(admin_oauth2_scheme), db: AsyncSession = Depends(get_db)) -> Admin:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials for admin",
        headers={"WWW-Authenticate": "Bearer"},
    )
    token_data = decode_token(token, credentials_exception)

    # A valid token for any other role is authenticated but not allowed here
    if token_data.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")

    stmt = select(Admin).where(Admin.username == token_data.sub)
    result = await db.execute(stmt)
    admin = result.scalar_one_or_none()

    if admin is None or not admin.is_active:
        raise credentials_exception
    if admin.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return admin
