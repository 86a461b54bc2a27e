import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SECONDS = settings.HEALTH_CHECK_TIMEOUT_SECONDS


@dataclass
class ProbeResult:
    success: bool
    response_time: int  # milliseconds
    message: str
    status_code: Optional[int] = None


def _openai_request(credentials: str) -> Tuple[str, Dict[str, str], Dict[str, str]]:
    return (
        "https://api.openai.com/v1/models",
        {"Authorization": f"Bearer {credentials}", "Content-Type": "application/json"},
        {},
    )


def _anthropic_request(credentials: str) -> Tuple[str, Dict[str, str], Dict[str, str]]:
    return (
        "https://api.anthropic.com/v1/messages",
        {
            "x-api-key": credentials,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        },
        {},
    )


def _google_request(credentials: str) -> Tuple[str, Dict[str, str], Dict[str, str]]:
    return (
        "https://generativelanguage.googleapis.com/v1/models",
        {},
        {"key": credentials},
    )


# provider -> builder of (url, headers, query params)
PROVIDER_REQUESTS: Dict[str, Callable[[str], Tuple[str, Dict[str, str], Dict[str, str]]]] = {
    "openai": _openai_request,
    "anthropic": _anthropic_request,
    "google": _google_request,
}


async def probe_provider(provider: str, credentials: str, timeout: float = PROBE_TIMEOUT_SECONDS) -> ProbeResult:
    """
    Issue a single GET against the provider's metadata endpoint.

    Never raises: unknown providers fail without a network call, and any
    transport error (timeouts included) becomes an unsuccessful result.
    """
    build_request = PROVIDER_REQUESTS.get((provider or "").lower())
    if build_request is None:
        return ProbeResult(
            success=False,
            response_time=0,
            message=f"不支持的AI服务提供商: {provider}",
        )

    url, headers, params = build_request(credentials)
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            start = time.monotonic()
            response = await client.get(url, headers=headers, params=params)
            response_time = int((time.monotonic() - start) * 1000)
    except Exception as e:
        logger.warning(f"Probe to {provider} failed: {e!r}")
        return ProbeResult(
            success=False,
            response_time=0,
            message=f"网络错误: {str(e) or type(e).__name__}",
        )

    ok = response.is_success
    return ProbeResult(
        success=ok,
        response_time=response_time,
        message="API连接测试通过" if ok else f"API连接失败: {response.status_code}",
        status_code=response.status_code,
    )
