# =============================================================================
# 模块: common/render.py
# 功能: 基于无头浏览器的渲染抓取（rendered fetch）
# 架构角色: Fetcher 的第二条路径。针对依赖 JavaScript 渲染的页面，
#   使用 Playwright 加载页面、等待选择器或固定宽限期、有限次数自动滚动
#   以触发懒加载内容，最后返回实际渲染后的 DOM 文本。
#
# 设计决策:
#   - 浏览器与上下文在 finally 中始终释放（成功与失败都一样）
#   - 自动滚动有步数上限，避免无限滚动页面卡住任务
#   - needs_render() 用于判断静态抓取结果是否"内容不足"，决定是否回退到渲染抓取
# =============================================================================
"""Headless-browser fetch for script-driven pages."""

from __future__ import annotations

import logging
from typing import Optional

from bs4 import BeautifulSoup
from playwright.async_api import async_playwright

from common.errors import FetchError

logger = logging.getLogger(__name__)

# 等待选择器失败或未指定选择器时的固定宽限期（毫秒）
DEFAULT_GRACE_MS: int = 5000
# 自动滚动：每步像素与最大步数
SCROLL_STEP_PX: int = 200
MAX_SCROLL_STEPS: int = 150
# 静态抓取结果正文少于该字符数时视为内容不足
MIN_TEXT_LENGTH: int = 500

# 常见的 JS 渲染占位符
_JS_INDICATORS = (
    "please enable javascript",
    "javascript is required",
    "__next_data__",
    'id="root"></div>',
    'id="app"></div>',
)

_VIEWPORT = {"width": 1920, "height": 1080}
_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


def needs_render(html: str, min_text_length: int = MIN_TEXT_LENGTH) -> bool:
    """Decide whether a statically fetched page is too thin to extract from.

    判断静态抓取的页面是否内容不足（需要渲染抓取）。

    Args:
        html: Raw HTML returned by the static fetch.
        min_text_length: Minimum visible text length to accept.

    Returns:
        bool: True when the rendered path should be used.
    """
    if not html or not html.strip():
        return True
    soup = BeautifulSoup(html, "html.parser")
    body = soup.body or soup
    for tag in body.find_all(["script", "style", "noscript"]):
        tag.extract()
    if len(body.get_text(" ", strip=True)) < min_text_length:
        return True
    lowered = html.lower()
    return any(indicator in lowered for indicator in _JS_INDICATORS)


async def _auto_scroll(page, max_steps: int, step_px: int) -> int:
    """Scroll down in fixed steps until the bottom or ``max_steps``.

    Returns:
        int: Number of scroll steps performed.
    """
    steps = 0
    for steps in range(1, max_steps + 1):
        reached_bottom = await page.evaluate(
            """(step) => {
                window.scrollBy(0, step);
                return window.innerHeight + window.scrollY >= document.body.scrollHeight;
            }""",
            step_px,
        )
        await page.wait_for_timeout(100)
        if reached_bottom:
            break
    return steps


async def render_fetch(
    url: str,
    wait_selector: Optional[str] = None,
    timeout: float = 30.0,
    grace_ms: int = DEFAULT_GRACE_MS,
    max_scroll_steps: int = MAX_SCROLL_STEPS,
    scroll_step_px: int = SCROLL_STEP_PX,
) -> str:
    """Load ``url`` in headless Chromium and return the realized DOM.

    使用 Playwright 加载页面：等待 CSS 选择器（或固定宽限期），
    执行有限次数的自动滚动，返回渲染后的 HTML。

    Args:
        url: Page URL.
        wait_selector: CSS selector signalling that content is ready.
        timeout: Navigation timeout in seconds.
        grace_ms: Fixed wait when no selector is given or it never appears.
        max_scroll_steps: Upper bound on auto-scroll steps.
        scroll_step_px: Pixels per scroll step.

    Returns:
        str: Rendered page HTML.

    Raises:
        FetchError: On navigation or browser failure.
    """
    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True)
            context = None
            try:
                context = await browser.new_context(
                    user_agent=_USER_AGENT,
                    viewport=_VIEWPORT,
                    locale="en-US",
                )
                page = await context.new_page()
                await page.goto(url, timeout=int(timeout * 1000), wait_until="domcontentloaded")

                if wait_selector:
                    try:
                        await page.wait_for_selector(wait_selector, timeout=grace_ms)
                    except Exception as e:
                        # 选择器未出现时退化为固定宽限期
                        logger.debug(f"Selector {wait_selector!r} not found on {url}: {e}")
                        await page.wait_for_timeout(grace_ms)
                else:
                    await page.wait_for_timeout(grace_ms)

                steps = await _auto_scroll(page, max_scroll_steps, scroll_step_px)
                logger.debug(f"Rendered {url} after {steps} scroll step(s)")
                return await page.content()
            finally:
                if context is not None:
                    await context.close()
                await browser.close()
    except Exception as e:
        raise FetchError(url, 1, e) from e
