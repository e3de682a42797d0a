# =============================================================================
# 模块: common/http.py
# 功能: HTTP 抓取工具模块，为爬虫提供健壮的静态页面抓取能力
# 架构角色: 作为通用 HTTP 基础设施层，被 CrawlCoordinator 调用。
#   提供以下核心能力：
#   1. User-Agent 轮换：每次请求随机选择浏览器 UA
#   2. 完整的浏览器请求头模拟（Sec-Fetch-*、Referer 等）
#   3. 指数退避重试：等待 min(base * 2^(attempt-1), cap)
#   4. 429/503 限流处理，支持 Retry-After 响应头
#   5. 重试用尽后抛出 FetchError(url, attempts, last_cause)
#
# 设计决策:
#   - 使用 httpx.AsyncClient，抓取任务在 asyncio 事件循环中并发执行
#   - 客户端惰性创建并全局共享，连接池限制防止对目标站点造成压力
#   - 超时参数细分为 connect/read/write/pool 四个维度
#   - 4xx（429 除外）不重试，直接视为该任务失败
# =============================================================================
"""Async HTTP fetcher with retries, backoff and rate-limit handling."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, Optional, Tuple

import httpx

from common.errors import ErrorType, FetchError, RateLimitError

logger = logging.getLogger(__name__)

# 全局共享的 httpx 异步客户端实例（惰性创建）
_client: Optional[httpx.AsyncClient] = None

# 默认退避参数（秒）
DEFAULT_BACKOFF_BASE: float = 1.0
DEFAULT_BACKOFF_CAP: float = 30.0

# ---------------------------------------------------------------------------
# User-Agent 轮换列表
# ---------------------------------------------------------------------------
_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) "
    "Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15",
]

_ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8"
_ACCEPT_JSON = "application/json, text/javascript, */*; q=0.01"


def _get_user_agent() -> str:
    return random.choice(_USER_AGENTS)


def _build_headers(ua: str, referer: Optional[str] = None, accept: str = _ACCEPT_HTML) -> Dict[str, str]:
    """Build a realistic set of browser headers for a single request.

    构建一套逼真的浏览器请求头，包括 Sec-Fetch-* 安全元数据头。

    Args:
        ua: User-Agent string.
        referer: Optional Referer header.
        accept: Accept header value.

    Returns:
        Dict[str, str]: Headers dictionary.
    """
    headers: Dict[str, str] = {
        "User-Agent": ua,
        "Accept": accept,
        "Accept-Language": "en-US,en;q=0.9,zh-CN;q=0.8",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none" if referer is None else "same-origin",
        "Sec-Fetch-User": "?1",
    }
    if referer:
        headers["Referer"] = referer
    return headers


def _build_timeout(timeout: float) -> httpx.Timeout:
    # connect 和 pool 超时有上限保护
    return httpx.Timeout(
        connect=min(timeout, 10.0),
        read=timeout,
        write=timeout,
        pool=min(timeout, 5.0),
    )


def get_client(timeout: float = 30.0) -> httpx.AsyncClient:
    """Return (and lazily create) a shared httpx.AsyncClient.

    获取（并惰性创建）全局共享的异步 HTTP 客户端。
    每次请求的请求头通过 _build_headers 动态构建。

    Args:
        timeout: Request timeout in seconds.

    Returns:
        httpx.AsyncClient: Shared HTTP client instance.
    """
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=_build_timeout(timeout),
            follow_redirects=True,
            limits=httpx.Limits(
                max_connections=10,
                max_keepalive_connections=5,
                keepalive_expiry=30.0,
            ),
        )
    return _client


async def close_client() -> None:
    """Close the global HTTP client."""
    global _client
    if _client is not None and not _client.is_closed:
        await _client.aclose()
    _client = None


def backoff_delay(
    attempt: int,
    base: float = DEFAULT_BACKOFF_BASE,
    cap: float = DEFAULT_BACKOFF_CAP,
) -> float:
    """Delay before the attempt following ``attempt`` (1-based).

    Returns:
        float: ``min(base * 2 ** (attempt - 1), cap)``
    """
    return min(base * (2 ** (max(attempt, 1) - 1)), cap)


def _parse_retry_after(value: Optional[str]) -> float:
    """Parse a ``Retry-After`` header value to seconds.

    仅处理整数秒形式；HTTP 日期形式返回 0，由指数退避兜底。
    """
    if not value:
        return 0.0
    try:
        return max(float(value.strip()), 0.0)
    except ValueError:
        return 0.0


async def fetch(
    url: str,
    max_retries: int = 3,
    timeout: float = 30.0,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
    backoff_cap: float = DEFAULT_BACKOFF_CAP,
    params: Optional[Dict[str, Any]] = None,
    referer: Optional[str] = None,
    accept_json: bool = False,
    auth: Optional[Tuple[str, str]] = None,
) -> str:
    """Fetch text from a URL with retries and exponential backoff.

    从 URL 获取文本内容。执行第 1..max_retries 次尝试；
    非成功状态码或传输错误时等待 min(base * 2^(attempt-1), cap) 后重试。

    Args:
        url: URL to fetch.
        max_retries: Total number of attempts (minimum 1).
        timeout: Per-request timeout in seconds.
        backoff_base: Base backoff in seconds.
        backoff_cap: Maximum backoff in seconds.
        params: Query parameters.
        referer: Optional Referer header.
        accept_json: Send a JSON Accept header (API endpoints).
        auth: HTTP Basic credentials (username, key) for API endpoints.

    Returns:
        str: Response text body.

    Raises:
        FetchError: If all attempts are exhausted or a non-retryable
            client error is returned.
    """
    attempts_allowed = max(int(max_retries), 1)
    last_error: Optional[BaseException] = None
    attempt = 0
    client = get_client(timeout=timeout)
    req_timeout = _build_timeout(timeout)

    for attempt in range(1, attempts_allowed + 1):
        wait = backoff_delay(attempt, backoff_base, backoff_cap)
        try:
            headers = _build_headers(
                _get_user_agent(),
                referer=referer,
                accept=_ACCEPT_JSON if accept_json else _ACCEPT_HTML,
            )
            response = await client.get(url, params=params, headers=headers, timeout=req_timeout, auth=auth)

            # ------- 速率限制处理 -------
            if response.status_code in (429, 503):
                retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                last_error = RateLimitError(url, response.status_code, retry_after)
                if attempt < attempts_allowed:
                    wait = max(retry_after, wait)
                    logger.warning(
                        "Rate limited (%s) by %s - waiting %.1fs (attempt %d/%d)",
                        response.status_code, url, wait, attempt, attempts_allowed,
                    )
                    await asyncio.sleep(wait)
                continue

            response.raise_for_status()
            return response.text

        except httpx.HTTPStatusError as exc:
            last_error = exc
            status_code = exc.response.status_code
            # 4xx 客户端错误不值得重试
            if 400 <= status_code < 500:
                logger.warning("HTTP %d from %s - not retrying", status_code, url)
                break
            if attempt < attempts_allowed:
                logger.debug(
                    "HTTP %d from %s - retry in %.1fs (attempt %d/%d)",
                    status_code, url, wait, attempt, attempts_allowed,
                )
                await asyncio.sleep(wait)

        except httpx.HTTPError as exc:
            # 网络层错误：超时、连接失败、读取错误
            last_error = exc
            if attempt < attempts_allowed:
                logger.debug(
                    "Network error (%s) fetching %s - retry in %.1fs (attempt %d/%d)",
                    type(exc).__name__, url, wait, attempt, attempts_allowed,
                )
                await asyncio.sleep(wait)

    error_type = ErrorType.RATE_LIMIT if isinstance(last_error, RateLimitError) else ErrorType.NETWORK
    raise FetchError(url, attempt, last_error, error_type=error_type)
