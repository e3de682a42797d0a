# =============================================================================
# 模块: settings.py
# 功能: ContestRadar 的全局应用配置模块
# 架构角色: 作为整个应用的配置中枢，提供统一的配置管理。
#   采用分层配置优先级机制，从高到低依次为：
#   1. 环境变量（运行时覆盖，适用于容器化部署）
#   2. .env 文件（存放敏感信息如 API 密钥、SMTP 密码）
#   3. config/defaults.yaml（非敏感默认值）
#   4. Python 代码中的硬编码默认值（兜底方案）
#
# 设计决策:
#   - 使用 pydantic-settings 的 BaseSettings 实现类型安全的配置
#   - YAML 文件在模块加载时一次性读取并缓存到模块级变量中
#   - validation_alias 用于将大写的环境变量名映射到小写的 Python 属性名
#   - 敏感信息不在 YAML 中设默认值，而是通过环境变量或 .env 文件注入
# =============================================================================
"""Global application settings for ContestRadar.

Configuration precedence (highest to lowest):
1. Environment variables (runtime override)
2. .env file (secrets)
3. config/defaults.yaml (non-sensitive defaults)
4. Hardcoded Python defaults (fallback)
"""

from __future__ import annotations

from pathlib import Path
from typing import List

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 项目根目录（settings.py 所在目录）
BASE_DIR = Path(__file__).resolve().parent
# 配置文件目录
CONFIG_DIR = BASE_DIR / "config"


def load_yaml_config() -> dict:
    """Load configuration from defaults.yaml.

    从 YAML 配置文件加载默认配置。文件不存在时返回空字典。

    返回值:
        dict: YAML 文件内容解析后的字典
    """
    config_path = CONFIG_DIR / "defaults.yaml"
    if not config_path.exists():
        return {}
    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


# 模块加载时一次性读取 YAML 配置并缓存
_yaml_config = load_yaml_config()
_app_config = _yaml_config.get("app", {})                    # 应用基本配置
_crawler_config = _yaml_config.get("crawler", {})            # 爬虫配置
_validation_config = _yaml_config.get("validation", {})      # 数据校验配置
_storage_config = _yaml_config.get("storage", {})            # 存储与保留策略配置
_ai_config = _yaml_config.get("ai_processor", {})            # AI 分类配置
_notification_config = _yaml_config.get("notification", {})  # 通知配置
_scheduler_config = _yaml_config.get("scheduler", {})        # 定时调度配置


def _get_default_data_dir() -> Path:
    """Get default data directory.

    YAML 中配置的相对路径基于 BASE_DIR 解析为绝对路径。
    """
    path = Path(_app_config.get("data_dir", "./data"))
    if not path.is_absolute():
        return BASE_DIR / path
    return path


class Settings(BaseSettings):
    """Global application settings."""

    # ======================== 应用基本配置 ========================
    app_name: str = Field(
        default=_app_config.get("name", "ContestRadar"),
        validation_alias="APP_NAME",
    )
    debug: bool = Field(
        default=_app_config.get("debug", False),
        validation_alias="DEBUG",
    )
    data_dir: Path = Field(
        default=_get_default_data_dir(),
        validation_alias="DATA_DIR",
    )
    log_level: str = Field(
        default=_app_config.get("log_level", "INFO"),
        validation_alias="LOG_LEVEL",
    )

    # ======================== 爬虫配置 ========================
    # 同一批次内并发抓取的数据源数量上限
    max_concurrency: int = Field(
        default=_crawler_config.get("max_concurrency", 3),
        validation_alias="CRAWLER_MAX_CONCURRENCY",
    )
    request_timeout: float = Field(
        default=_crawler_config.get("request_timeout", 30.0),
        validation_alias="CRAWLER_REQUEST_TIMEOUT",
    )
    # 抓取层退避参数：min(base * 2^(attempt-1), cap)
    fetch_backoff_base: float = Field(
        default=_crawler_config.get("fetch_backoff_base", 1.0),
        validation_alias="CRAWLER_FETCH_BACKOFF_BASE",
    )
    fetch_backoff_cap: float = Field(
        default=_crawler_config.get("fetch_backoff_cap", 30.0),
        validation_alias="CRAWLER_FETCH_BACKOFF_CAP",
    )
    # 任务层重试（独立于抓取层重试）
    job_retries: int = Field(
        default=_crawler_config.get("job_retries", 3),
        validation_alias="CRAWLER_JOB_RETRIES",
    )
    job_retry_base: float = Field(
        default=_crawler_config.get("job_retry_base", 2.0),
        validation_alias="CRAWLER_JOB_RETRY_BASE",
    )
    job_retry_cap: float = Field(
        default=_crawler_config.get("job_retry_cap", 10.0),
        validation_alias="CRAWLER_JOB_RETRY_CAP",
    )
    # 详情页补全的内层并发上限
    detail_concurrency: int = Field(
        default=_crawler_config.get("detail_concurrency", 3),
        validation_alias="CRAWLER_DETAIL_CONCURRENCY",
    )
    render_enabled: bool = Field(
        default=_crawler_config.get("render_enabled", True),
        validation_alias="CRAWLER_RENDER_ENABLED",
    )
    render_min_text_length: int = Field(
        default=_crawler_config.get("render_min_text_length", 500),
        validation_alias="CRAWLER_RENDER_MIN_TEXT_LENGTH",
    )
    # Kaggle API 凭据（https://www.kaggle.com/settings -> API -> Create New Token）
    # 未配置时 kaggle 数据源自动禁用
    kaggle_username: str = Field(default="", validation_alias="KAGGLE_USERNAME")
    kaggle_key: str = Field(default="", validation_alias="KAGGLE_KEY")

    # ======================== 数据校验配置 ========================
    enable_validation: bool = Field(
        default=_validation_config.get("enabled", True),
        validation_alias="VALIDATION_ENABLED",
    )
    title_similarity_threshold: float = Field(
        default=_validation_config.get("title_similarity_threshold", 0.8),
        validation_alias="VALIDATION_TITLE_SIMILARITY",
    )

    # ======================== 存储配置 ========================
    backup_count: int = Field(
        default=_storage_config.get("backup_count", 10),
        validation_alias="STORAGE_BACKUP_COUNT",
    )
    data_retention_days: int = Field(
        default=_storage_config.get("retention_days", 30),
        validation_alias="DATA_RETENTION_DAYS",
    )
    archive_after_days: int = Field(
        default=_storage_config.get("archive_after_days", 30),
        validation_alias="DATA_ARCHIVE_DAYS",
    )

    # ======================== AI 分类配置 ========================
    # 分类提供商：openai（OpenAI 兼容接口）或 rule（仅本地关键词分类）
    ai_provider: str = Field(
        default=_ai_config.get("provider", "openai"),
        validation_alias="AI_PROVIDER",
    )
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    openai_model: str = Field(
        default=_ai_config.get("openai_model", "gpt-4o-mini"),
        validation_alias="OPENAI_MODEL",
    )
    openai_base_url: str = Field(
        default=_ai_config.get("openai_base_url", "https://api.openai.com/v1"),
        validation_alias="OPENAI_BASE_URL",
    )
    openai_timeout: int = Field(
        default=_ai_config.get("openai_timeout", 60),
        validation_alias="OPENAI_TIMEOUT",
    )
    ai_max_retries: int = Field(
        default=_ai_config.get("max_retries", 3),
        validation_alias="AI_MAX_RETRIES",
    )
    ai_retry_base_delay: float = Field(
        default=_ai_config.get("retry_base_delay", 1.0),
        validation_alias="AI_RETRY_BASE_DELAY",
    )
    ai_batch_size: int = Field(
        default=_ai_config.get("batch_size", 5),
        validation_alias="AI_BATCH_SIZE",
    )
    ai_item_delay: float = Field(
        default=_ai_config.get("item_delay", 1.0),
        validation_alias="AI_ITEM_DELAY",
    )
    ai_max_content_length: int = Field(
        default=_ai_config.get("max_content_length", 1500),
        validation_alias="AI_MAX_CONTENT_LENGTH",
    )

    # ======================== 通知配置 ========================
    notify_enabled: bool = Field(
        default=_notification_config.get("enabled", False),
        validation_alias="NOTIFY_ENABLED",
    )
    notify_backend: str = Field(
        default=_notification_config.get("backend", "smtp"),
        validation_alias="NOTIFY_BACKEND",
    )
    email_from: str = Field(
        default=_notification_config.get("from", ""),
        validation_alias="EMAIL_FROM",
    )
    # 逗号分隔的收件人列表
    email_to: str = Field(
        default=_notification_config.get("to", ""),
        validation_alias="EMAIL_TO",
    )
    smtp_host: str = Field(
        default=_notification_config.get("smtp_host", ""),
        validation_alias="SMTP_HOST",
    )
    smtp_port: int = Field(
        default=_notification_config.get("smtp_port", 587),
        validation_alias="SMTP_PORT",
    )
    smtp_user: str = Field(default="", validation_alias="SMTP_USER")
    smtp_password: str = Field(default="", validation_alias="SMTP_PASSWORD")
    resend_api_key: str = Field(default="", validation_alias="RESEND_API_KEY")

    # ======================== 定时调度配置 ========================
    scheduler_timezone: str = Field(
        default=_scheduler_config.get("timezone", "UTC"),
        validation_alias="SCHEDULER_TIMEZONE",
    )
    crawl_interval_hours: int = Field(
        default=_scheduler_config.get("crawl_interval_hours", 6),
        validation_alias="CRAWL_INTERVAL_HOURS",
    )
    cleanup_hour: int = Field(
        default=_scheduler_config.get("cleanup_hour", 3),
        validation_alias="CLEANUP_HOUR",
    )

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("max_concurrency", "detail_concurrency", "ai_batch_size")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        # 并发与批量参数至少为 1
        return max(int(value), 1)

    @property
    def email_to_list(self) -> List[str]:
        """Recipients parsed from the comma separated ``email_to``."""
        return [addr.strip() for addr in self.email_to.split(",") if addr.strip()]


settings = Settings()
