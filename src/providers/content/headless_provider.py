"""Headless Chromium content provider using Playwright.

Some sources (Instagram, Dice, Xceed, a few theatre sites) render their
listings client-side, so neither the reader proxy nor a plain GET sees
any events.  This provider drives a real browser, scrolls to trigger lazy
loading, and then harvests event cards straight from the DOM into the
same ``EVENT:`` block format the RA provider produces.  Pages without
recognisable cards fall back to their visible text.

The browser is the one piece of shared mutable state in a run.  It lives
in a :class:`BrowserSession` owned by the composition root, started
lazily on first use and closed on every exit path of the run.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.interfaces.content_provider import FetchedContent, FetchOptions, IContentProvider
from src.utils.errors import FetchError

logger = structlog.get_logger(logger_name=__name__)

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)
_VIEWPORT = {"width": 1920, "height": 1080}
_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]
_SELECTOR_TIMEOUT_MS = 10_000
_SCROLL_STEPS = 5
_SCROLL_STEP_PX = 1500
_SCROLL_PAUSE_MS = 300

_STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en', 'it'] });
"""

_SCROLL_SCRIPT = """
async ([steps, stepPx, pauseMs]) => {
  for (let i = 0; i < steps; i++) {
    window.scrollTo(0, (i + 1) * stepPx);
    await new Promise(r => setTimeout(r, pauseMs));
  }
  window.scrollTo(0, 0);
}
"""

# Returns a list of EVENT blocks, or the page's visible text when fewer
# than three cards were recognised.
_HARVEST_SCRIPT = """
() => {
  const results = [];
  const ogImage = document.querySelector('meta[property="og:image"]')?.getAttribute('content') || '';
  if (ogImage) results.push(`[page og:image: ${ogImage}]`);

  const selectors = [
    'article[class*="card"]',
    '[class*="event-card"]', '[class*="eventcard"]',
    '.event-item', '.listing-item',
    '[class*="event"][class*="item"]',
  ];
  const seen = new Set();
  let cards = 0;

  for (const selector of selectors) {
    document.querySelectorAll(selector).forEach(el => {
      const link = el.tagName === 'A' ? el : el.querySelector('a');
      const href = link?.getAttribute('href') || '';
      if (!href || seen.has(href)) return;
      seen.add(href);

      const titleEl = el.querySelector('h1, h2, h3, h4, .title, [class*="title"]') || link;
      const title = titleEl?.textContent?.trim() || '';
      if (!title || title.length < 5) return;

      const img = el.querySelector('img');
      let imgSrc = img?.getAttribute('src') || img?.getAttribute('data-src') || '';
      if (imgSrc.startsWith('//')) imgSrc = 'https:' + imgSrc;

      const dateEl = el.querySelector('time, .date, [class*="date"], [class*="time"]');
      const dateText = dateEl?.textContent?.trim() || '';
      const descEl = el.querySelector('p, .description, [class*="desc"]');
      const desc = descEl?.textContent?.trim().substring(0, 200) || '';

      const absolute = href.startsWith('http')
        ? href
        : window.location.origin + (href.startsWith('/') ? '' : '/') + href;
      let entry = `EVENT: ${title}\\n  URL: ${absolute}`;
      if (imgSrc.startsWith('http')) entry += `\\n  IMAGE: ${imgSrc}`;
      if (dateText) entry += `\\n  DATE: ${dateText}`;
      if (desc) entry += `\\n  DESC: ${desc}`;
      results.push(entry);
      cards += 1;
    });
  }

  if (results.length < 3) {
    document.querySelectorAll('script, style, noscript').forEach(el => el.remove());
    return { cards: cards, text: document.body?.innerText || '' };
  }
  return { cards: cards, text: results.join('\\n\\n') };
}
"""


class BrowserSession:
    """Lazily started, idempotently closed Playwright Chromium instance.

    Usable directly (``await session.get_browser()`` / ``await
    session.close()``) or as an async context manager.
    """

    def __init__(self, headless: bool = True) -> None:
        self._headless = headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def get_browser(self) -> Browser:
        """Return the shared browser, launching it on first call."""
        async with self._lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self._headless, args=_LAUNCH_ARGS
                )
                logger.info("browser_launched", headless=self._headless)
            return self._browser

    async def close(self) -> None:
        """Release the browser and the Playwright driver.  Safe to call twice."""
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as exc:
                logger.warning("browser_close_failed", error=str(exc))
        if playwright is not None:
            await playwright.stop()
            logger.info("browser_closed")

    async def __aenter__(self) -> BrowserSession:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class HeadlessBrowserProvider(IContentProvider):
    """Render pages in headless Chromium and harvest event cards.

    Parameters
    ----------
    session:
        Shared :class:`BrowserSession`; this provider never closes it.
    """

    def __init__(self, session: BrowserSession) -> None:
        self._session = session

    async def fetch(self, url: str, options: FetchOptions | None = None) -> FetchedContent:
        options = options or FetchOptions()
        try:
            browser = await self._session.get_browser()
        except PlaywrightError as exc:
            raise FetchError(
                message=f"Could not launch headless browser: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        context = None
        try:
            context = await browser.new_context(user_agent=_USER_AGENT, viewport=_VIEWPORT)
            await context.add_init_script(_STEALTH_SCRIPT)
            page = await context.new_page()
            await page.goto(url, wait_until="networkidle", timeout=options.timeout * 1000)

            if options.wait_for_selector:
                try:
                    await page.wait_for_selector(
                        options.wait_for_selector, timeout=_SELECTOR_TIMEOUT_MS
                    )
                except PlaywrightTimeoutError:
                    logger.warning(
                        "headless_selector_not_found",
                        url=url,
                        selector=options.wait_for_selector,
                    )

            if options.scroll:
                await page.evaluate(
                    _SCROLL_SCRIPT, [_SCROLL_STEPS, _SCROLL_STEP_PX, _SCROLL_PAUSE_MS]
                )
            await page.wait_for_timeout(options.wait_time * 1000)

            html = await page.content()
            harvested = await page.evaluate(_HARVEST_SCRIPT)
        except PlaywrightTimeoutError as exc:
            raise FetchError(
                message=f"Headless navigation timed out for {url}",
                provider_name=self.get_provider_name(),
            ) from exc
        except PlaywrightError as exc:
            raise FetchError(
                message=f"Headless fetch failed for {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            if context is not None:
                try:
                    await context.close()
                except PlaywrightError as exc:
                    logger.warning("headless_context_close_failed", url=url, error=str(exc))

        text = (harvested or {}).get("text") or ""
        if not text.strip():
            raise FetchError(
                message=f"Headless render produced no text for {url}",
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "headless_page_fetched",
            url=url,
            cards=harvested.get("cards", 0),
            chars=len(text),
        )
        return FetchedContent(url=url, text=text, html=html, provider=self.get_provider_name())

    def get_provider_name(self) -> str:
        return "headless"
