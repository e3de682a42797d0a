"""Tests for apps/notification/service.py.

通知服务测试：未启用、无新记录、缺少凭据、发送成功与失败。
"""

from __future__ import annotations

import pytest

import apps.notification.service as notification_service
from apps.notification.service import NotificationService
from settings import settings


@pytest.fixture
def smtp_configured(monkeypatch):
    monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
    monkeypatch.setattr(settings, "smtp_port", 587)


@pytest.fixture
def sent(monkeypatch):
    """Capture calls to send_email instead of talking to a server."""
    calls = []

    def fake_send_email(subject, body, to_addrs, **kwargs):
        calls.append({"subject": subject, "body": body, "to": list(to_addrs), **kwargs})
        return True, None

    monkeypatch.setattr(notification_service, "send_email", fake_send_email)
    return calls


def make_service(**kwargs) -> NotificationService:
    kwargs.setdefault("enabled", True)
    kwargs.setdefault("from_addr", "radar@example.com")
    kwargs.setdefault("to_addrs", ["team@example.com"])
    kwargs.setdefault("backend", "smtp")
    return NotificationService(**kwargs)


@pytest.mark.asyncio
async def test_disabled_is_successful_noop(make_canonical, sent):
    result = await make_service(enabled=False).notify_new_contests([make_canonical("c_1")])
    assert result.success and result.sent_count == 0
    assert sent == []


@pytest.mark.asyncio
async def test_no_new_contests(smtp_configured, sent):
    result = await make_service().notify_new_contests([])
    assert result.success
    assert result.message == "No new contests"
    assert sent == []


@pytest.mark.asyncio
async def test_missing_recipients_is_failure(smtp_configured, make_canonical, sent):
    service = make_service(to_addrs=[])
    assert "EMAIL_TO" in service.missing_credentials()

    result = await service.notify_new_contests([make_canonical("c_1")])

    assert not result.success
    assert "EMAIL_TO" in result.message
    assert sent == []


def test_unsupported_backend_reported():
    service = make_service(backend="pigeon")
    assert any("pigeon" in item for item in service.missing_credentials())


@pytest.mark.asyncio
async def test_sends_summary_email(smtp_configured, make_canonical, sent):
    records = [make_canonical("c_1", prize="$500"), make_canonical("c_2", platform="civitai")]

    result = await make_service().notify_new_contests(records)

    assert result.success and result.sent_count == 2
    assert len(sent) == 1
    call = sent[0]
    assert call["subject"] == "2 New AI Contests Found!"
    assert call["to"] == ["team@example.com"]
    assert call["backend"] == "smtp"
    assert call["smtp_host"] == "smtp.example.com"
    assert "Contest c_1" in call["body"] and "Prize: $500" in call["body"]
    assert "<h2>2 new AI contest(s)</h2>" in call["html_body"]


@pytest.mark.asyncio
async def test_send_failure_reported(smtp_configured, make_canonical, monkeypatch):
    monkeypatch.setattr(notification_service, "send_email", lambda *a, **kw: (False, "connection refused"))

    result = await make_service().notify_new_contests([make_canonical("c_1")])

    assert not result.success
    assert "connection refused" in result.message


def test_subject_singular_and_plural(make_canonical):
    assert NotificationService.build_subject([make_canonical("a")]) == "1 New AI Contest Found!"
    assert NotificationService.build_subject([make_canonical("a"), make_canonical("b")]) == "2 New AI Contests Found!"


def test_html_escapes_user_content(make_canonical):
    record = make_canonical("x", title="<script>alert(1)</script>", tags=["A&B"], description="x" * 300)
    body = NotificationService.build_html([record])
    assert "<script>" not in body
    assert "&lt;script&gt;" in body
    assert "A&amp;B" in body
    assert "x" * 200 + "..." in body
