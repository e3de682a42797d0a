# =============================================================================
# 模块: apps/notification/service.py
# 功能: 新竞赛邮件通知服务
# 架构角色: 流水线 Notify 阶段的协作方。接收"相对上一次聚合快照新增"的记录，
#   生成纯文本与 HTML 摘要，通过 common.email 发送（smtp 或 resend）。
# 设计决策:
#   - 未启用时为成功的空操作；无新记录时同样成功且 sent_count=0
#   - 缺少后端凭据视为失败，但不抛异常，由流水线记为警告
#   - 邮件发送是同步阻塞调用，通过 asyncio.to_thread 放到线程池执行
# =============================================================================
"""Email notifications for newly discovered contests."""

from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from apps.ai_processor.models import CanonicalRecord
from common.email import send_email
from settings import settings

logger = logging.getLogger(__name__)

DESCRIPTION_PREVIEW = 200
MAX_TAGS_SHOWN = 5


@dataclass
class NotificationResult:
    success: bool
    message: str
    sent_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message, "sent_count": self.sent_count}


def _preview(text: str) -> str:
    text = " ".join((text or "").split())
    return text[:DESCRIPTION_PREVIEW] + ("..." if len(text) > DESCRIPTION_PREVIEW else "")


class NotificationService:
    """Sends a summary email about new contests."""

    def __init__(
        self,
        enabled: Optional[bool] = None,
        from_addr: Optional[str] = None,
        to_addrs: Optional[Sequence[str]] = None,
        backend: Optional[str] = None,
    ) -> None:
        self.enabled = settings.notify_enabled if enabled is None else enabled
        self.from_addr = from_addr if from_addr is not None else settings.email_from
        self.to_addrs = list(to_addrs) if to_addrs is not None else settings.email_to_list
        self.backend = (backend or settings.notify_backend or "smtp").lower()

        if not self.enabled:
            logger.debug("NotificationService disabled")
        elif self.missing_credentials():
            logger.warning(f"NotificationService enabled but not configured: {', '.join(self.missing_credentials())}")

    def _backend_kwargs(self) -> Dict[str, Any]:
        if self.backend == "resend":
            return {"api_key": settings.resend_api_key}
        return {
            "smtp_host": settings.smtp_host,
            "smtp_port": settings.smtp_port,
            "smtp_user": settings.smtp_user,
            "smtp_password": settings.smtp_password,
        }

    def missing_credentials(self) -> List[str]:
        """Names of configuration values required by the backend but unset."""
        missing = []
        if not self.to_addrs:
            missing.append("EMAIL_TO")
        if self.backend == "resend":
            if not settings.resend_api_key:
                missing.append("RESEND_API_KEY")
            if not self.from_addr:
                missing.append("EMAIL_FROM")
        elif self.backend == "smtp":
            if not settings.smtp_host:
                missing.append("SMTP_HOST")
            if not (self.from_addr or settings.smtp_user):
                missing.append("EMAIL_FROM")
        else:
            missing.append(f"supported backend (got {self.backend})")
        return missing

    @staticmethod
    def build_subject(records: Sequence[CanonicalRecord]) -> str:
        count = len(records)
        return f"{count} New AI Contest{'s' if count > 1 else ''} Found!"

    @staticmethod
    def build_text(records: Sequence[CanonicalRecord]) -> str:
        lines = [f"{len(records)} new AI contest(s) found:", ""]
        for i, r in enumerate(records, start=1):
            lines.append(f"{i}. {r.title}")
            lines.append(f"   Platform: {r.platform} | Status: {r.status}")
            if r.deadline:
                lines.append(f"   Deadline: {r.deadline[:10]}")
            if r.prize:
                lines.append(f"   Prize: {r.prize}")
            if r.url:
                lines.append(f"   {r.url}")
            lines.append("")
        return "\n".join(lines).rstrip() + "\n"

    @staticmethod
    def build_html(records: Sequence[CanonicalRecord]) -> str:
        cards = []
        for r in records:
            meta = f"<strong>Platform:</strong> {html.escape(r.platform)} | <strong>Status:</strong> {html.escape(r.status)}"
            if r.deadline:
                meta += f" | <strong>Deadline:</strong> {html.escape(r.deadline[:10])}"
            tags = "".join(
                f'<span style="background:#e0e7ff;padding:2px 8px;margin-right:4px;">{html.escape(t)}</span>'
                for t in r.tags[:MAX_TAGS_SHOWN]
            )
            cards.append(
                '<div style="border:1px solid #e0e0e0;padding:16px;margin-bottom:16px;">'
                f'<h3><a href="{html.escape(r.url, quote=True)}">{html.escape(r.title)}</a></h3>'
                f"<p>{meta}</p>"
                + (f"<p><strong>Prize:</strong> {html.escape(r.prize)}</p>" if r.prize else "")
                + f"<p>{html.escape(_preview(r.description))}</p>"
                + (f"<p>{tags}</p>" if tags else "")
                + "</div>"
            )
        return (
            '<!DOCTYPE html><html><head><meta charset="utf-8"></head><body>'
            f"<h2>{len(records)} new AI contest(s)</h2>{''.join(cards)}</body></html>"
        )

    async def notify_new_contests(self, records: Sequence[CanonicalRecord]) -> NotificationResult:
        """Send one summary email for ``records``."""
        if not self.enabled:
            return NotificationResult(success=True, message="Notifications disabled", sent_count=0)
        if not records:
            logger.info("No new contests to notify about")
            return NotificationResult(success=True, message="No new contests", sent_count=0)

        missing = self.missing_credentials()
        if missing:
            return NotificationResult(success=False, message=f"Notification not configured: missing {', '.join(missing)}")

        ok, error = await asyncio.to_thread(
            send_email,
            self.build_subject(records),
            self.build_text(records),
            self.to_addrs,
            html_body=self.build_html(records),
            backend=self.backend,
            from_addr=self.from_addr or None,
            **self._backend_kwargs(),
        )
        if not ok:
            logger.error(f"Failed to send notification email: {error}")
            return NotificationResult(success=False, message=f"Failed to send email: {error}")

        logger.info(f"Sent notification for {len(records)} new contest(s) to {len(self.to_addrs)} recipient(s)")
        return NotificationResult(
            success=True,
            message=f"Notified about {len(records)} new contests",
            sent_count=len(records),
        )
