"""
One-time system initialization.

``SystemInitializer.initialize`` is safe to call from any number of
concurrent requests: the first caller runs the steps, everyone else waits on
the same run, and later calls return immediately.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.future import select

from app.config import settings
from app.database import async_session, init_db
from app.models.admin import Admin
from app.models.site_config import SiteConfig, DEFAULT_SITE_CONFIG_ID
from app.security import get_password_hash

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_USERNAME = "admin"


async def create_default_admin(session_factory=async_session) -> bool:
    async with session_factory() as session:
        result = await session.execute(select(Admin).where(Admin.role == "superadmin"))
        if result.scalars().first() is not None:
            return False

        session.add(
            Admin(
                username=DEFAULT_ADMIN_USERNAME,
                hashed_password=get_password_hash(settings.DEFAULT_ADMIN_PASSWORD),
                full_name="Default Admin",
                role="superadmin",
            )
        )
        await session.commit()
        logger.info("Default superadmin created")
        return True


async def create_default_site_config(session_factory=async_session) -> bool:
    async with session_factory() as session:
        result = await session.execute(select(SiteConfig).where(SiteConfig.id == DEFAULT_SITE_CONFIG_ID))
        if result.scalar_one_or_none() is not None:
            return False

        session.add(SiteConfig(id=DEFAULT_SITE_CONFIG_ID, site_name="AI Relay", stripe_enabled=False))
        await session.commit()
        logger.info("Default site config created")
        return True


class SystemInitializer:
    def __init__(self, session_factory=async_session, bind=None):
        self._session_factory = session_factory
        self._bind = bind
        self._lock = asyncio.Lock()
        self._done = asyncio.Event()
        self.started = False
        self.completed_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    async def initialize(self) -> bool:
        """Run the initialization steps at most once. Returns ``True`` once done."""
        if self._done.is_set():
            return True

        async with self._lock:
            if self._done.is_set():
                return True

            self.started = True
            try:
                logger.info("System initialization started")
                await init_db(self._bind)
                await create_default_admin(self._session_factory)
                await create_default_site_config(self._session_factory)
            except Exception as e:
                # Leave the flag clear so the next caller retries
                self.started = False
                self.last_error = str(e)
                logger.error(f"System initialization failed: {str(e)}")
                raise

            self.completed_at = datetime.utcnow()
            self.last_error = None
            self._done.set()
            logger.info("System initialization completed")
            return True

    async def wait(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._done.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def status(self) -> Dict[str, Any]:
        return {
            "initialized": self.done,
            "started": self.started,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.last_error,
        }


system_initializer = SystemInitializer()
