from fastapi import APIRouter, Depends
from .auth import router as auth_router
from .payments import router as payments_router
from .billing import router as billing_router
from .subscription import router as subscription_router
from .plans import router as plans_router
from .public_config import router as public_config_router
from .system import router as system_router
from .stripe_webhooks import router as webhook_router
from .account import router as account_router
from app.api.deps import get_current_user

router = APIRouter()

# Public auth routes
router.include_router(auth_router, tags=["Authentication"])

# Public catalogue and bootstrap routes
router.include_router(plans_router, prefix="/api/plans", tags=["Plans"])
router.include_router(public_config_router, prefix="/api/config", tags=["Config"])
router.include_router(system_router, prefix="/api/system", tags=["System"])

# Signature-checked, no user session
router.include_router(webhook_router, prefix="/api/webhooks", tags=["Webhooks"])

# Protected user routes
protected_user_api = APIRouter(dependencies=[Depends(get_current_user)])
protected_user_api.include_router(payments_router, prefix="/api/payments", tags=["Payments"])
protected_user_api.include_router(billing_router, prefix="/api/billing", tags=["Billing"])
protected_user_api.include_router(subscription_router, prefix="/api/user", tags=["User"])
protected_user_api.include_router(account_router, prefix="/api", tags=["Account"])

router.include_router(protected_user_api)
