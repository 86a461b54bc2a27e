from fastapi import APIRouter, Depends
from .auth import router as auth_router
from .ai_accounts import router as ai_accounts_router
from .plans import router as plans_router
from .payments_config import router as payments_config_router
from .billing_overview import router as billing_overview
from app.api.deps import get_current_admin

router = APIRouter()

# Public admin login
router.include_router(auth_router, prefix="/admin", tags=["Admin Authentication"])

# Protected admin router
protected_admin_api = APIRouter(dependencies=[Depends(get_current_admin)])
protected_admin_api.include_router(ai_accounts_router, tags=["Admin AI Accounts"])
protected_admin_api.include_router(plans_router, tags=["Admin Plans"])
protected_admin_api.include_router(payments_config_router, tags=["Admin Payments"])
protected_admin_api.include_router(billing_overview, tags=["Admin Billing Overview"])

router.include_router(protected_admin_api, prefix="/admin")
