# =============================================================================
# 模块: common/errors.py
# 功能: 流水线统一异常类型与错误分类
# 架构角色: 作为基础设施层，为抓取、解析、AI 分类、存储、校验等环节提供
#   统一的异常基类和错误类型枚举，供 Pipeline 汇总与报告使用。
# 设计决策:
#   - 错误尽量在最低层恢复（单节点、单记录、单数据源），只有汇总在 Pipeline 层完成
#   - RATE_LIMIT 视为 NETWORK 的子类型，同样通过退避处理
#   - classify() 将任意异常映射到错误类型，便于日志和 CLI 输出
# =============================================================================
"""Error taxonomy for the ContestRadar pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorType(str, Enum):
    """Pipeline error categories."""

    NETWORK = "NETWORK"
    PARSING = "PARSING"
    AI_PROCESSING = "AI_PROCESSING"
    STORAGE = "STORAGE"
    VALIDATION = "VALIDATION"
    RATE_LIMIT = "RATE_LIMIT"


class PipelineError(Exception):
    """Base class for all pipeline errors.

    流水线异常基类，携带错误类型和附加上下文。
    """

    error_type: ErrorType = ErrorType.NETWORK

    def __init__(
        self,
        message: str,
        error_type: Optional[ErrorType] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_type is not None:
            self.error_type = error_type
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.error_type.value,
            "message": self.message,
            "details": self.details,
        }


class FetchError(PipelineError):
    """Raised when a URL could not be fetched after all attempts.

    单个 URL 抓取失败（重试用尽）。对该任务是致命的，对整个运行不是。
    """

    error_type = ErrorType.NETWORK

    def __init__(
        self,
        url: str,
        attempts: int,
        last_cause: Optional[BaseException] = None,
        error_type: Optional[ErrorType] = None,
    ) -> None:
        cause_name = type(last_cause).__name__ if last_cause else "UnknownError"
        super().__init__(
            f"Fetch failed for {url} after {attempts} attempt(s) ({cause_name}): {last_cause}",
            error_type=error_type,
            details={"url": url, "attempts": attempts},
        )
        self.url = url
        self.attempts = attempts
        self.last_cause = last_cause


class RateLimitError(PipelineError):
    """Raised for 429/503 responses."""

    error_type = ErrorType.RATE_LIMIT

    def __init__(self, url: str, status_code: int, retry_after: float = 0.0) -> None:
        super().__init__(
            f"Rate limited ({status_code}) by {url}",
            details={"url": url, "status_code": status_code, "retry_after": retry_after},
        )
        self.url = url
        self.status_code = status_code
        self.retry_after = retry_after


class ParsingError(PipelineError):
    error_type = ErrorType.PARSING


class ClassificationError(PipelineError):
    error_type = ErrorType.AI_PROCESSING


class StorageError(PipelineError):
    error_type = ErrorType.STORAGE


class ValidationError(PipelineError):
    error_type = ErrorType.VALIDATION


def classify(exc: BaseException) -> ErrorType:
    """Map an arbitrary exception to an ``ErrorType``.

    将任意异常映射为错误类型，用于汇总报告。

    Args:
        exc: The exception to classify.

    Returns:
        ErrorType: Best matching category.
    """
    if isinstance(exc, PipelineError):
        return exc.error_type
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in (429, 503):
        return ErrorType.RATE_LIMIT
    if isinstance(exc, (httpx.HTTPError, TimeoutError, ConnectionError)):
        return ErrorType.NETWORK
    if isinstance(exc, (OSError, PermissionError)):
        return ErrorType.STORAGE
    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return ErrorType.PARSING
    return ErrorType.NETWORK
