# =============================================================================
# 模块: common/email.py
# 功能: 邮件发送模块，支持 SMTP 与 Resend API 两种后端
# 架构角色: 作为通用基础设施层，为通知服务（NotificationService）提供邮件发送能力。
#
# 设计决策:
#   - 每个后端封装为独立的私有函数（_send_via_*），便于维护和扩展
#   - send_email 作为统一入口，通过 backend 参数路由到具体实现
#   - 所有后端返回 (是否成功, 错误信息)，不向调用方抛出异常
#   - API 密钥优先从参数获取，其次从环境变量
# =============================================================================
"""Email sending for ContestRadar notifications.

Supports two backends:
- SMTP (stdlib smtplib, STARTTLS or SSL)
- Resend HTTP API (via httpx)
"""

from __future__ import annotations

import logging
import os
import smtplib
import time
import traceback
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Iterable, List, Literal, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


# ======================
# 1. SMTP 发送
# ======================
def _send_via_smtp(
    subject: str,
    body: str,
    from_addr: str,
    to_addrs: List[str],
    smtp_host: str,
    smtp_port: int,
    smtp_user: str,
    smtp_password: str,
    html_body: Optional[str] = None,
    timeout: float = 10.0,
    retries: int = 3,
    retry_backoff: float = 10.0,
    use_ssl: bool = False,
) -> Tuple[bool, str]:
    """Send email via SMTP.

    通过 SMTP 协议发送邮件。非 SSL 连接且非 localhost 时启用 STARTTLS。

    参数:
        subject: 邮件主题
        body: 纯文本正文
        from_addr: 发件人地址
        to_addrs: 收件人地址列表
        smtp_host: SMTP 服务器主机名
        smtp_port: SMTP 端口
        smtp_user: SMTP 认证用户名
        smtp_password: SMTP 认证密码
        html_body: 可选的 HTML 正文
        timeout: 连接超时（秒）
        retries: 重试次数
        retry_backoff: 重试间隔（秒）
        use_ssl: 是否使用 SSL 直连

    返回值:
        Tuple[bool, str]: (是否成功, 错误信息)
    """
    if not smtp_host or not from_addr:
        msg = "SMTP configuration error: host or from_addr missing"
        logger.error(msg)
        return False, msg

    if html_body:
        message = MIMEMultipart("alternative")
        message.attach(MIMEText(body, "plain", "utf-8"))
        message.attach(MIMEText(html_body, "html", "utf-8"))
    else:
        message = MIMEText(body, "plain", "utf-8")
    message["Subject"] = subject
    message["From"] = from_addr
    message["To"] = ", ".join(to_addrs)

    attempts = max(retries, 1)
    last_tb = ""
    for attempt in range(attempts):
        server = None
        try:
            server = (
                smtplib.SMTP_SSL(smtp_host, smtp_port, timeout=timeout)
                if use_ssl
                else smtplib.SMTP(smtp_host, smtp_port, timeout=timeout)
            )
            server.ehlo()
            if not use_ssl and smtp_host.lower() != "localhost":
                server.starttls()
                server.ehlo()
            if smtp_user:
                server.login(smtp_user, smtp_password)
            server.sendmail(from_addr, to_addrs, message.as_string())
            logger.info(f"Email sent via SMTP (port {smtp_port})")
            return True, ""
        except Exception:
            last_tb = traceback.format_exc()
            logger.error("SMTP send failed (attempt %s/%s)\n%s", attempt + 1, attempts, last_tb)
            if attempt < attempts - 1:
                time.sleep(retry_backoff)
        finally:
            if server is not None:
                try:
                    server.quit()
                except smtplib.SMTPException:
                    logger.debug("SMTP quit failed", exc_info=True)
    return False, last_tb


# ======================
# 2. Resend API
# ======================
def _send_via_resend(
    subject: str,
    body: str,
    to_addrs: List[str],
    from_addr: str,
    html_body: Optional[str] = None,
    api_key: Optional[str] = None,
    retries: int = 1,
    retry_backoff: float = 10.0,
) -> Tuple[bool, str]:
    """Send email via the Resend REST API.

    通过 Resend API 发送邮件，2xx 视为成功。
    """
    api_key = api_key or os.getenv("RESEND_API_KEY")
    if not api_key:
        msg = "Resend config missing: API key"
        logger.error(msg)
        return False, msg

    payload: dict = {"from": from_addr, "to": to_addrs, "subject": subject, "text": body}
    if html_body:
        payload["html"] = html_body

    attempts = max(retries, 1)
    last_error = ""
    for attempt in range(attempts):
        try:
            resp = httpx.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
                timeout=30,
            )
            if 200 <= resp.status_code < 300:
                logger.info("Email sent via Resend")
                return True, ""
            last_error = f"Resend API error {resp.status_code}: {resp.text[:200]}"
            logger.error(last_error)
        except httpx.HTTPError as e:
            last_error = f"Resend request failed: {e}"
            logger.error("Resend send failed (attempt %s/%s): %s", attempt + 1, attempts, e)
        if attempt < attempts - 1:
            time.sleep(retry_backoff)
    return False, last_error


def send_email(
    subject: str,
    body: str,
    to_addrs: Iterable[str],
    *,
    html_body: Optional[str] = None,
    backend: Literal["smtp", "resend"] = "smtp",
    from_addr: Optional[str] = None,
    **kwargs: Any,
) -> Tuple[bool, str]:
    """Unified email sending interface.

    统一邮件发送接口，根据 backend 参数路由到对应的后端实现。

    Args:
        subject: Email subject
        body: Plain text body
        to_addrs: Recipient email addresses
        html_body: Optional HTML body
        backend: Email backend ('smtp' or 'resend')
        from_addr: Sender email address
        **kwargs: Backend-specific parameters (smtp_host, api_key, ...)

    Returns:
        Tuple[bool, str]: (success, error_message)
    """
    to_list = [e.strip() for e in to_addrs if e and e.strip()]
    if not to_list:
        msg = "Email send aborted: no valid recipients"
        logger.error(msg)
        return False, msg

    from_addr = from_addr or os.getenv("EMAIL_FROM") or kwargs.get("smtp_user")
    if not from_addr:
        msg = f"Missing 'from_addr' for backend '{backend}'"
        logger.error(msg)
        return False, msg

    if backend == "smtp":
        return _send_via_smtp(
            subject=subject,
            body=body,
            from_addr=from_addr,
            to_addrs=to_list,
            html_body=html_body,
            smtp_host=kwargs.get("smtp_host", os.getenv("SMTP_HOST", "")),
            smtp_port=int(kwargs.get("smtp_port", os.getenv("SMTP_PORT", 587))),
            smtp_user=kwargs.get("smtp_user", os.getenv("SMTP_USER", "")),
            smtp_password=kwargs.get("smtp_password", os.getenv("SMTP_PASSWORD", "")),
            timeout=float(kwargs.get("timeout", 10.0)),
            retries=int(kwargs.get("retries", 3)),
            retry_backoff=float(kwargs.get("retry_backoff", 10.0)),
            use_ssl=bool(kwargs.get("use_ssl", False)),
        )
    if backend == "resend":
        return _send_via_resend(
            subject=subject,
            body=body,
            to_addrs=to_list,
            from_addr=from_addr,
            html_body=html_body,
            api_key=kwargs.get("api_key"),
            retries=int(kwargs.get("retries", 1)),
            retry_backoff=float(kwargs.get("retry_backoff", 10.0)),
        )
    msg = f"Unsupported email backend: {backend}"
    logger.error(msg)
    return False, msg
