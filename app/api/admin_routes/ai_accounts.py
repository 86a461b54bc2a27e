from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import case, delete, select, func, update
import json
import logging

from app.models.admin import Admin
from app.models.ai_account import AIAccount, AIAccountStatus, AIAccountTier
from app.api.deps import get_db, get_current_admin
from app.utils.encryption import encrypt, validate_api_key_format, generate_key_preview, hash_api_key
from app.utils.health_checker import HealthChecker

logger = logging.getLogger(__name__)

router = APIRouter()

TIER_ORDER = {
    AIAccountTier.enterprise: 1,
    AIAccountTier.premium: 2,
    AIAccountTier.standard: 3,
    AIAccountTier.basic: 4,
}

# ------------------- Pydantic Schemas -------------------

class AIAccountCreate(BaseModel):
    account_name: str
    provider: str
    credentials: str
    account_type: str = "api_key"
    tier: AIAccountTier = AIAccountTier.basic
    is_shared: bool = True
    max_requests_per_minute: int = Field(60, gt=0)
    max_tokens_per_minute: int = Field(100000, gt=0)
    max_concurrent_requests: int = Field(3, gt=0)
    monthly_cost: float = Field(0, ge=0)
    description: Optional[str] = None

class AIAccountUpdate(BaseModel):
    account_name: str
    account_status: Optional[AIAccountStatus] = None
    tier: Optional[AIAccountTier] = None
    is_shared: Optional[bool] = None
    max_requests_per_minute: Optional[int] = Field(None, gt=0)
    max_tokens_per_minute: Optional[int] = Field(None, gt=0)
    max_concurrent_requests: Optional[int] = Field(None, gt=0)
    monthly_cost: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    # Rotates the stored key when present
    credentials: Optional[str] = None

class AIAccountBatchUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    account_status: Optional[AIAccountStatus] = None
    tier: Optional[AIAccountTier] = None
    is_shared: Optional[bool] = None
    max_requests_per_minute: Optional[int] = Field(None, gt=0)
    max_tokens_per_minute: Optional[int] = Field(None, gt=0)
    max_concurrent_requests: Optional[int] = Field(None, gt=0)

# ------------------- Helpers -------------------

def require_superadmin(admin: Admin, action: str) -> None:
    if admin.role != "superadmin":
        raise HTTPException(status_code=403, detail=f"权限不足，只有超级管理员可以{action}")

def store_credentials(account: AIAccount, raw: str) -> None:
    credentials = raw.strip()
    if not validate_api_key_format(credentials):
        raise HTTPException(status_code=400, detail="API密钥格式无效")
    account.credentials = encrypt(credentials)
    account.credentials_hash = hash_api_key(credentials)
    account.key_preview = generate_key_preview(credentials)

async def read_json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="请求体必须是JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="请求体必须是JSON对象")
    return body

def account_ids_from(body: dict, missing_message: str) -> List[str]:
    account_ids = body.get("accountIds")
    if not isinstance(account_ids, list) or not account_ids:
        raise HTTPException(status_code=400, detail=missing_message)
    return [str(account_id) for account_id in account_ids]

async def load_account(db: AsyncSession, account_id: str) -> AIAccount:
    account = (await db.execute(select(AIAccount).where(AIAccount.id == account_id))).scalar_one_or_none()
    if not account:
        raise HTTPException(status_code=404, detail="AI账号不存在")
    return account

# ------------------- Endpoints -------------------

@router.get("/ai-accounts")
async def list_ai_accounts(
    provider: Optional[str] = None,
    account_status: Optional[AIAccountStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    db: AsyncSession = Depends(get_db)
):
    filters = []
    if provider:
        filters.append(AIAccount.provider == provider)
    if account_status:
        filters.append(AIAccount.account_status == account_status)

    total = await db.scalar(select(func.count(AIAccount.id)).where(*filters))
    stmt = (
        select(AIAccount)
        .where(*filters)
        .order_by(AIAccount.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)

    return {
        "data": [account.to_dict() for account in result.scalars().all()],
        "total": total or 0,
        "page": page,
        "pageSize": page_size,
    }

@router.post("/ai-accounts", status_code=status.HTTP_201_CREATED)
async def create_ai_account(
    payload: AIAccountCreate,
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    require_superadmin(current_admin, "创建AI账号")

    account = AIAccount(
        account_name=payload.account_name,
        provider=payload.provider.lower(),
        account_type=payload.account_type,
        tier=payload.tier,
        is_shared=payload.is_shared,
        max_requests_per_minute=payload.max_requests_per_minute,
        max_tokens_per_minute=payload.max_tokens_per_minute,
        max_concurrent_requests=payload.max_concurrent_requests,
        monthly_cost=payload.monthly_cost,
        description=payload.description,
    )
    store_credentials(account, payload.credentials)
    db.add(account)
    await db.commit()
    await db.refresh(account)

    logger.info(f"AI account {account.id} ({account.provider}) created by {current_admin.username}")
    return account.to_dict()

@router.get("/ai-accounts/stats")
async def ai_account_stats(db: AsyncSession = Depends(get_db)):
    active = case((AIAccount.account_status == AIAccountStatus.active, 1), else_=0)

    provider_rows = (await db.execute(
        select(
            AIAccount.provider,
            func.count(AIAccount.id),
            func.sum(active),
            func.sum(case((AIAccount.is_shared.is_(True), 1), else_=0)),
            func.avg(AIAccount.health_score),
        )
        .group_by(AIAccount.provider)
        .order_by(AIAccount.provider)
    )).all()

    by_provider = [
        {
            "provider": provider,
            "total_accounts": total,
            "active_accounts": int(active_count or 0),
            "shared_accounts": int(shared or 0),
            "dedicated_accounts": total - int(shared or 0),
            "avg_health_score": round(float(avg_score or 0), 2),
        }
        for provider, total, active_count, shared, avg_score in provider_rows
    ]

    tier_rows = (await db.execute(
        select(
            AIAccount.tier,
            func.count(AIAccount.id),
            func.sum(active),
            func.sum(AIAccount.total_requests),
            func.sum(AIAccount.total_tokens),
        ).group_by(AIAccount.tier)
    )).all()

    by_tier = [
        {
            "tier": tier.value,
            "total_accounts": total,
            "active_accounts": int(active_count or 0),
            "total_requests": int(requests or 0),
            "total_tokens": int(tokens or 0),
        }
        for tier, total, active_count, requests, tokens in sorted(tier_rows, key=lambda row: TIER_ORDER.get(row[0], 5))
    ]

    # Mean of the per-provider averages
    avg_health = sum(p["avg_health_score"] for p in by_provider) / len(by_provider) if by_provider else 0

    return {
        "summary": {
            "total_accounts": sum(p["total_accounts"] for p in by_provider),
            "active_accounts": sum(p["active_accounts"] for p in by_provider),
            "shared_accounts": sum(p["shared_accounts"] for p in by_provider),
            "dedicated_accounts": sum(p["dedicated_accounts"] for p in by_provider),
            "avg_health_score": round(avg_health, 2),
        },
        "by_provider": by_provider,
        "by_tier": by_tier,
    }

@router.post("/ai-accounts/batch-health-check")
async def batch_health_check(request: Request, db: AsyncSession = Depends(get_db)):
    body = await read_json_body(request)
    account_ids = account_ids_from(body, "请提供要检查的账号ID列表")
    return await HealthChecker.run_batch(db, account_ids)

@router.delete("/ai-accounts/batch")
async def batch_delete_ai_accounts(request: Request, db: AsyncSession = Depends(get_db)):
    account_ids = account_ids_from(await read_json_body(request), "请提供要删除的账号ID列表")

    existing = await db.scalar(select(func.count(AIAccount.id)).where(AIAccount.id.in_(account_ids)))
    if not existing:
        raise HTTPException(status_code=404, detail="没有找到可删除的账号")

    result = await db.execute(delete(AIAccount).where(AIAccount.id.in_(account_ids)))
    await db.commit()

    logger.info(f"Batch delete removed {result.rowcount} of {len(account_ids)} AI accounts")
    return {
        "requestedCount": len(account_ids),
        "deletedCount": result.rowcount,
        "message": f"批量删除完成：成功删除 {result.rowcount} 个账号",
    }

@router.patch("/ai-accounts/batch")
async def batch_update_ai_accounts(request: Request, db: AsyncSession = Depends(get_db)):
    body = await read_json_body(request)
    account_ids = account_ids_from(body, "请提供要更新的账号ID列表")

    updates = body.get("updates")
    if not isinstance(updates, dict) or not updates:
        raise HTTPException(status_code=400, detail="请提供要更新的数据")

    unknown = sorted(set(updates) - set(AIAccountBatchUpdate.model_fields))
    if unknown:
        raise HTTPException(status_code=400, detail=f"不支持更新以下字段: {', '.join(unknown)}")

    try:
        changes = AIAccountBatchUpdate(**updates).model_dump(exclude_none=True)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"更新数据无效: {e.errors()[0]['msg']}")
    if not changes:
        raise HTTPException(status_code=400, detail="请提供要更新的数据")

    result = await db.execute(
        update(AIAccount)
        .where(AIAccount.id.in_(account_ids))
        .values(**changes, updated_at=func.now())
    )
    await db.commit()

    return {
        "requestedCount": len(account_ids),
        "updatedCount": result.rowcount,
        "message": f"批量更新完成：成功更新 {result.rowcount} 个账号",
    }

@router.get("/ai-accounts/{account_id}")
async def get_ai_account(account_id: str = Path(...), db: AsyncSession = Depends(get_db)):
    account = await load_account(db, account_id)
    return account.to_dict()

@router.put("/ai-accounts/{account_id}")
async def update_ai_account(
    payload: AIAccountUpdate,
    account_id: str = Path(...),
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    if not payload.account_name.strip():
        raise HTTPException(status_code=400, detail="账号名称不能为空")

    account = await load_account(db, account_id)

    if payload.credentials is not None:
        require_superadmin(current_admin, "更换AI账号密钥")
        store_credentials(account, payload.credentials)
        logger.info(f"Credentials of AI account {account.id} rotated by {current_admin.username}")

    changes = payload.model_dump(exclude_none=True, exclude={"credentials"})
    changes["account_name"] = payload.account_name.strip()
    if payload.description is not None:
        changes["description"] = payload.description.strip() or None
    for key, value in changes.items():
        setattr(account, key, value)

    await db.commit()
    await db.refresh(account)
    return account.to_dict()

@router.delete("/ai-accounts/{account_id}")
async def delete_ai_account(
    account_id: str = Path(...),
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    account = await load_account(db, account_id)
    await db.delete(account)
    await db.commit()

    logger.info(f"AI account {account_id} deleted by {current_admin.username}")
    return {"message": "AI账号删除成功"}

@router.post("/ai-accounts/{account_id}/test")
async def test_ai_account(account_id: str = Path(...), db: AsyncSession = Depends(get_db)):
    check = await HealthChecker.check_and_record(db, account_id)
    if check is None:
        raise HTTPException(status_code=404, detail="AI账号不存在")
    return check.to_dict()
