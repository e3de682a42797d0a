# =============================================================================
# OpenAI AI Provider 模块
# =============================================================================
# 本模块实现了基于 OpenAI 兼容 Chat Completions 接口的竞赛分类提供商。
# 任何兼容该接口的服务（OpenAI、GitHub Models、自建代理）都可以通过
# OPENAI_BASE_URL 接入。
# =============================================================================

"""OpenAI-compatible classification provider."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from apps.crawler.models import RawRecord
from common.errors import ClassificationError
from settings import settings
from .base import SYSTEM_PROMPT, BaseAIProvider, parse_json_response

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# OpenAI Provider 实现类
# 设计决策：
#   - 使用 httpx 而非 openai 官方 SDK
#   - temperature=0.1：分类任务需要稳定输出
# -----------------------------------------------------------------------------
class OpenAIProvider(BaseAIProvider):
    """OpenAI Chat Completions provider."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: int | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: API key.
            model: Model name override.
            base_url: API base URL (custom proxies or compatible APIs).
            timeout: Request timeout in seconds.
            max_retries: Attempts per request.
            retry_base_delay: Exponential backoff multiplier in seconds.
            transport: Optional httpx transport (tests).
        """
        self._api_key = api_key if api_key is not None else settings.openai_api_key
        self._model = model or settings.openai_model or "gpt-4o-mini"
        self._base_url = (base_url or settings.openai_base_url or "https://api.openai.com/v1").rstrip("/")
        self._timeout = timeout or settings.openai_timeout or 60
        self._max_retries = max_retries if max_retries is not None else settings.ai_max_retries
        self._retry_base_delay = retry_base_delay if retry_base_delay is not None else settings.ai_retry_base_delay
        self._transport = transport
        # 持久化 HTTP 客户端，复用 TCP 连接
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the persistent HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def is_available(self) -> bool:
        # 仅依赖 API 密钥是否存在，不做实际网络请求
        return bool(self._api_key)

    async def _call_api(self, headers: dict, payload: dict) -> dict:
        client = self._get_client()
        response = await client.post(
            f"{self._base_url}/chat/completions",
            headers=headers,
            json=payload,
        )
        response.raise_for_status()
        return response.json()

    async def classify_content(self, record: RawRecord) -> Dict[str, Any]:
        """Classify a contest through the Chat Completions API.

        Raises:
            ClassificationError: On transport failure or an unusable response.
        """
        prompt = self.build_prompt(record, settings.ai_max_content_length)
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.1,
            "max_tokens": 1000,
        }

        start_time = time.time()
        try:
            # 使用 tenacity 重试包装器调用 API，应对网络抖动和临时限流
            retrying_call = retry(
                stop=stop_after_attempt(max(self._max_retries, 1)),
                wait=wait_exponential(multiplier=self._retry_base_delay, max=10),
                retry=retry_if_exception_type((httpx.RequestError, httpx.HTTPStatusError)),
                reraise=True,
            )(self._call_api)
            result = await retrying_call(headers, payload)
            response_text = result["choices"][0]["message"]["content"] or ""
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            raise ClassificationError(
                f"OpenAI request failed: {e}",
                details={"model": self._model, "title": record.title},
            ) from e

        extracted = self.extract_result(parse_json_response(response_text))
        logger.debug(
            f"Classified {record.title!r} via {self._model} "
            f"in {int((time.time() - start_time) * 1000)}ms"
        )
        return extracted
