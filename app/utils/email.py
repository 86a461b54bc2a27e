from fastapi_mail import FastMail, MessageSchema, ConnectionConfig
from app.config import settings
import logging
import secrets
import string

logger = logging.getLogger(__name__)

OTP_EXPIRE_MINUTES = 10

conf = ConnectionConfig(
    MAIL_USERNAME=settings.MAIL_USERNAME,
    MAIL_PASSWORD=settings.MAIL_PASSWORD,
    MAIL_FROM=settings.MAIL_FROM,
    MAIL_PORT=settings.MAIL_PORT,
    MAIL_SERVER=settings.MAIL_SERVER,
    MAIL_STARTTLS=settings.MAIL_STARTTLS,
    MAIL_SSL_TLS=settings.MAIL_SSL_TLS,
    USE_CREDENTIALS=bool(settings.MAIL_USERNAME),
    VALIDATE_CERTS=True,
)

def generate_otp(length: int = 6) -> str:
    """Generate a random numeric OTP."""
    return "".join(secrets.choice(string.digits) for _ in range(length))

async def send_verification_email(email_to: str, otp: str):
    """Sends a verification email with the OTP."""
    html_content = f"""
    <html>
        <body>
            <h2>欢迎注册 AI Relay</h2>
            <p>请使用以下验证码完成邮箱验证：</p>
            <h3 style="font-size: 24px; letter-spacing: 2px; text-align: center; margin: 20px 0;">{otp}</h3>
            <p>验证码将在 {OTP_EXPIRE_MINUTES} 分钟后失效。</p>
            <p>如果这不是您本人的操作，请忽略此邮件。</p>
        </body>
    </html>
    """
    message = MessageSchema(
        subject="邮箱验证码",
        recipients=[email_to],
        body=html_content,
        subtype="html"
    )

    fm = FastMail(conf)
    try:
        await fm.send_message(message)
        logger.info(f"Verification email sent to {email_to}")
    except Exception as e:
        # Runs as a background task; the OTP can be re-requested
        logger.error(f"Failed to send verification email to {email_to}: {str(e)}")
