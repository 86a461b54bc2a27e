from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import EmailStr

class Settings(BaseSettings):
    DATABASE_URL: str
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Credential store key; SECRET_KEY is used when this is not set
    ENCRYPTION_KEY: Optional[str] = None

    DEFAULT_ADMIN_PASSWORD: str = "admin"
    HEALTH_CHECK_TIMEOUT_SECONDS: float = 5.0
    FRONTEND_URL: str = "http://localhost:3000"

    # Email settings
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: str = ""
    MAIL_FROM: EmailStr = "noreply@example.com"
    MAIL_PORT: int = 587
    MAIL_SERVER: str = "localhost"
    MAIL_STARTTLS: bool = True
    MAIL_SSL_TLS: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

settings = Settings()
