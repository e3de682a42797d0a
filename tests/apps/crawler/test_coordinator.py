"""Tests for apps/crawler/coordinator.py: batched crawling with retries.

爬取协调器测试：任务重试、失败隔离、渲染回退与详情页补全。
"""

from __future__ import annotations

import pytest

from apps.crawler.coordinator import CrawlCoordinator
from common.errors import FetchError, PipelineError
from settings import settings


def make_fetcher(pages, calls=None):
    """Fake static fetcher serving ``pages[url]``; missing URLs fail."""
    async def fetcher(url, **kwargs):
        if calls is not None:
            calls.append(url)
        if url not in pages:
            raise FetchError(url, kwargs.get("max_retries", 1), ConnectionError("unreachable"))
        return pages[url]
    return fetcher


def make_coordinator(registry, fetcher, **kwargs):
    kwargs.setdefault("job_retries", 2)
    kwargs.setdefault("job_retry_base", 0)
    kwargs.setdefault("render_enabled", False)
    return CrawlCoordinator(registry, fetcher=fetcher, **kwargs)


@pytest.mark.asyncio
async def test_crawl_all_returns_records_per_source(demo_registry, demo_source, demo_listing):
    coordinator = make_coordinator(demo_registry, make_fetcher({demo_source["list_url"]: demo_listing}))

    results = await coordinator.crawl_all()

    assert list(results) == ["demo"]
    assert [r.title for r in results["demo"]] == ["Alpha Vision Cup", "Beta NLP Sprint"]
    assert results["demo"][0].url == "https://demo.example/c/alpha"
    summary = coordinator.last_summary
    assert summary.status == "completed"
    assert summary.total_records == 2
    assert summary.results["demo"].status == "success"


@pytest.mark.asyncio
async def test_failing_source_does_not_affect_others(make_registry, demo_source, demo_listing):
    broken = dict(demo_source, list_url="https://broken.example/list", base_url="https://broken.example")
    registry = make_registry(demo=demo_source, broken=broken)
    calls = []
    coordinator = make_coordinator(
        registry,
        make_fetcher({demo_source["list_url"]: demo_listing}, calls),
        max_concurrency=1,
    )

    results = await coordinator.crawl_all()

    assert results["broken"] == []
    assert len(results["demo"]) == 2
    summary = coordinator.last_summary
    assert summary.status == "completed_with_errors"
    assert len(summary.errors) == 1 and summary.errors[0].startswith("broken:")
    # 任务层重试 2 次
    assert summary.results["broken"].attempts == 2
    assert calls.count("https://broken.example/list") == 2


@pytest.mark.asyncio
async def test_enrichment_merges_detail_fields(make_registry, demo_source, demo_listing):
    source = dict(
        demo_source,
        enrich_details=True,
        detail_rules={"description": [".full"], "organizer": [".org"]},
    )
    registry = make_registry(demo=source)
    pages = {
        demo_source["list_url"]: demo_listing,
        "https://demo.example/c/alpha": "<body><div class='full'>A long and detailed description</div>"
                                        "<div class='org'>Demo Labs</div></body>",
        # beta 的详情页抓取失败，记录保持不变
    }
    coordinator = make_coordinator(registry, make_fetcher(pages))

    records = await coordinator.crawl_source("demo")

    alpha, beta = records
    assert alpha.description == "A long and detailed description"
    assert alpha.metadata["organizer"] == "Demo Labs"
    assert beta.description == "Text task"


@pytest.mark.asyncio
async def test_thin_static_page_falls_back_to_render(demo_registry, demo_source, demo_listing):
    rendered = []

    async def renderer(url, wait_selector=None, timeout=None):
        rendered.append(url)
        return demo_listing

    coordinator = make_coordinator(
        demo_registry,
        make_fetcher({demo_source["list_url"]: "<html><body>Loading...</body></html>"}),
        renderer=renderer,
        render_enabled=True,
    )

    results = await coordinator.crawl_all()

    assert rendered == [demo_source["list_url"]]
    assert len(results["demo"]) == 2


@pytest.mark.asyncio
async def test_render_failure_keeps_static_content(demo_registry, demo_source, demo_listing):
    async def renderer(url, wait_selector=None, timeout=None):
        raise FetchError(url, 1, RuntimeError("no browser"))

    coordinator = make_coordinator(
        demo_registry,
        make_fetcher({demo_source["list_url"]: demo_listing}),
        renderer=renderer,
        render_enabled=True,
    )

    results = await coordinator.crawl_all()

    assert len(results["demo"]) == 2


@pytest.mark.asyncio
async def test_crawl_source_unknown_raises(demo_registry):
    coordinator = make_coordinator(demo_registry, make_fetcher({}))
    with pytest.raises(PipelineError):
        await coordinator.crawl_source("nope")


@pytest.mark.asyncio
async def test_health_check_reports_last_run(demo_registry, demo_source, demo_listing):
    coordinator = make_coordinator(demo_registry, make_fetcher({demo_source["list_url"]: demo_listing}))
    assert coordinator.health_check()["demo"]["status"] == "never_run"

    await coordinator.crawl_all()

    health = coordinator.health_check()
    assert health["demo"]["status"] == "success"
    assert health["demo"]["record_count"] == 2
    assert health["modelscope"]["enabled"] is False


@pytest.mark.asyncio
async def test_json_source_sends_params_and_credentials(make_registry, monkeypatch):
    monkeypatch.setattr(settings, "kaggle_username", "alice")
    monkeypatch.setattr(settings, "kaggle_key", "s3cret")
    source = {
        "base_url": "https://api.demo.example",
        "list_url": "https://api.demo.example/v1/contests",
        "credentials": ["kaggle_username", "kaggle_key"],
        "params": {"page": 1},
        "delay": 0,
        "max_retries": 1,
        "rules": {
            "format": "json",
            "item": "items",
            "title": {"key": "name"},
            "link": {"key": "slug", "template": "/c/{}"},
        },
    }
    registry = make_registry(api=source)
    seen = []

    async def fetcher(url, **kwargs):
        seen.append((url, kwargs))
        return '{"items": [{"name": "Reef Survey", "slug": "reef"}]}'

    renderer_calls = []

    async def renderer(url, wait_selector=None, timeout=None):
        renderer_calls.append(url)
        return ""

    coordinator = make_coordinator(registry, fetcher, renderer=renderer, render_enabled=True)

    results = await coordinator.crawl_all()

    assert [(r.title, r.url) for r in results["api"]] == [("Reef Survey", "https://api.demo.example/c/reef")]
    url, kwargs = seen[0]
    assert url == "https://api.demo.example/v1/contests"
    assert kwargs["accept_json"] is True
    assert kwargs["params"] == {"page": 1}
    assert kwargs["auth"] == ("alice", "s3cret")
    # JSON 接口从不走渲染抓取
    assert renderer_calls == []


@pytest.mark.asyncio
async def test_html_source_sends_no_auth(demo_registry, demo_source, demo_listing):
    seen = []

    async def fetcher(url, **kwargs):
        seen.append(kwargs)
        return demo_listing

    coordinator = make_coordinator(demo_registry, fetcher)
    await coordinator.crawl_all()

    assert seen[0]["auth"] is None
    assert seen[0]["accept_json"] is False
    assert seen[0]["params"] is None
