from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Sequence
import logging
import time
from datetime import datetime

from app.models.ai_account import AIAccount
from app.utils import provider_probe
from app.utils.encryption import decrypt, CredentialDecryptError

# Configure logging
logger = logging.getLogger(__name__)

HEALTHY_THRESHOLD = 80
WARNING_THRESHOLD = 60

CREDENTIAL_POINTS = 25
PROBE_POINTS = 50
FAST_RESPONSE_POINTS = 15
FAST_RESPONSE_MS = 2000
LOW_ERROR_RATE = 0.05
HIGH_ERROR_RATE = 0.20
ERROR_RATE_POINTS = 10
ERROR_RATE_WINDOW = 100

STATUS_MESSAGES = {
    "healthy": "账号状态良好",
    "warning": "账号状态一般，建议关注",
    "failed": "账号状态异常，需要处理",
}


@dataclass
class HealthCheckResult:
    account_id: str
    account_name: str
    status: str
    message: str
    health_score: int
    check_time: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    response_time: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accountId": self.account_id,
            "accountName": self.account_name,
            "status": self.status,
            "message": self.message,
            "healthScore": self.health_score,
            "checkTime": self.check_time,
            "responseTime": self.response_time,
        }


def status_for_score(score: int) -> str:
    if score >= HEALTHY_THRESHOLD:
        return "healthy"
    if score >= WARNING_THRESHOLD:
        return "warning"
    return "failed"


def error_rate_for(error_count_24h: int, total_requests: int) -> float:
    if not total_requests or total_requests <= 0:
        return 0.0
    return (error_count_24h or 0) / min(total_requests, ERROR_RATE_WINDOW)


def clamp_score(score: int) -> int:
    return max(0, min(100, score))


class HealthChecker:
    """
    Scores AI accounts and runs batch checks over them.
    """

    @staticmethod
    async def check_account(account: AIAccount) -> HealthCheckResult:
        """
        Score one account. Never raises; any failure yields a ``failed``
        result with score 0.
        """
        started = time.monotonic()

        def _elapsed() -> int:
            return int((time.monotonic() - started) * 1000)

        def _failed(message: str) -> HealthCheckResult:
            return HealthCheckResult(
                account_id=account.id,
                account_name=account.account_name,
                status="failed",
                message=message,
                health_score=0,
                response_time=_elapsed(),
            )

        try:
            score = 0

            # 1. Credentials must decrypt, otherwise the account is unusable
            try:
                credentials = decrypt(account.credentials)
            except CredentialDecryptError:
                return _failed("凭据解密失败")

            if credentials and len(credentials) > 10:
                score += CREDENTIAL_POINTS

            # 2. Connectivity
            probe = await provider_probe.probe_provider(account.provider, credentials)
            if probe.success:
                score += PROBE_POINTS
                if probe.response_time < FAST_RESPONSE_MS:
                    score += FAST_RESPONSE_POINTS

            # 3. Historical error rate; both bounds are exclusive
            error_rate = error_rate_for(account.error_count_24h, account.total_requests)
            if error_rate < LOW_ERROR_RATE:
                score += ERROR_RATE_POINTS
            elif error_rate > HIGH_ERROR_RATE:
                score -= ERROR_RATE_POINTS

            score = clamp_score(score)
            status = status_for_score(score)

            logger.info(
                f"Health check {account.account_name} ({account.provider}): "
                f"score={score} probe={probe.success} error_rate={error_rate:.3f}"
            )

            return HealthCheckResult(
                account_id=account.id,
                account_name=account.account_name,
                status=status,
                message=STATUS_MESSAGES[status],
                health_score=score,
                response_time=_elapsed(),
            )

        except Exception as e:
            logger.error(f"Health check for account {account.id} failed: {str(e)}")
            return _failed(f"健康检查失败: {str(e)}")

    @staticmethod
    async def record_result(db: AsyncSession, account: AIAccount, result: HealthCheckResult) -> None:
        """Persist the outcome of one check onto the account row."""
        now = datetime.utcnow()
        account.health_score = result.health_score
        account.last_health_check_at = now
        if result.status == "failed":
            account.error_count_24h = (account.error_count_24h or 0) + 1
            account.last_error_at = now
        await db.commit()

    @staticmethod
    async def check_and_record(db: AsyncSession, account_id: str) -> Optional[HealthCheckResult]:
        """Check a single account by id; ``None`` when it does not exist."""
        stmt = select(AIAccount).where(AIAccount.id == account_id)
        result = await db.execute(stmt)
        account = result.scalar_one_or_none()
        if account is None:
            return None

        check = await HealthChecker.check_account(account)
        await HealthChecker.record_result(db, account, check)
        return check

    @staticmethod
    async def run_batch(db: AsyncSession, account_ids: Sequence[str]) -> Dict[str, Any]:
        """
        Check each account in order. One account's failure never stops the
        batch; missing accounts count as failed without being probed.
        """
        counts = {"healthy": 0, "warning": 0, "failed": 0}
        results: List[Dict[str, Any]] = []

        for account_id in account_ids:
            try:
                check = await HealthChecker.check_and_record(db, account_id)
                if check is None:
                    check = HealthCheckResult(
                        account_id=account_id,
                        account_name="Unknown",
                        status="failed",
                        message="账号不存在",
                        health_score=0,
                    )
            except Exception as e:
                await db.rollback()
                logger.error(f"Batch health check failed for account {account_id}: {str(e)}")
                check = HealthCheckResult(
                    account_id=account_id,
                    account_name="Unknown",
                    status="failed",
                    message=str(e) or "健康检查失败",
                    health_score=0,
                )

            counts[status_for_score(check.health_score)] += 1
            results.append(check.to_dict())

        summary = (
            f"批量健康检查完成：{counts['healthy']} 健康，"
            f"{counts['warning']} 警告，{counts['failed']} 失败"
        )
        logger.info(summary)

        return {
            "totalChecked": len(account_ids),
            "healthyCount": counts["healthy"],
            "warningCount": counts["warning"],
            "failedCount": counts["failed"],
            "results": results,
            "message": summary,
        }
