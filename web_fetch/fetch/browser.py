import asyncio
from typing import List
from urllib.parse import urljoin

from playwright.async_api import async_playwright, Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from web_fetch.core.config import settings
from web_fetch.core.errors import OperationAborted
from web_fetch.core.outcomes import Failed, FailureKind, FetchOutcome, Redirected, Rendered
from web_fetch.core.process import CancelToken
from web_fetch.fetch.utils import hostname_of

BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
    '--disable-features=VizDisplayCompositor'
]

async def fetch_page(url: str, token: CancelToken) -> FetchOutcome:
    """
    Render a URL in headless Chromium.

    Args:
        url: Normalized https URL to load
        token: Cancellation token of the current request

    Returns:
        Rendered with the final markup and URL, Redirected when the page
        redirects to another host, or Failed (timeout / network / launch / aborted).
        The browser is closed on every path.
    """
    try:
        return await token.guard(_render_page(url))
    except OperationAborted:
        print(f"FETCH ABORTED for {url}")
        return Failed.aborted()


async def _render_page(url: str) -> FetchOutcome:
    async with async_playwright() as p:
        try:
            browser = await p.chromium.launch(
                headless=settings.PLAYWRIGHT_HEADLESS,
                executable_path=settings.BROWSER_EXECUTABLE_PATH,
                args=BROWSER_ARGS
            )
        except PlaywrightError as e:
            return Failed(FailureKind.LAUNCH, f"Failed to launch browser: {e.message}")

        try:
            return await _navigate(browser, url)
        except PlaywrightError as e:
            return Failed(FailureKind.NETWORK, f"Browser error: {e.message}")
        finally:
            await _close_browser(browser)


async def _navigate(browser, url: str) -> FetchOutcome:
    context = await browser.new_context(user_agent=settings.USER_AGENT)
    page = await context.new_page()

    origin_host = hostname_of(url)
    cross_host_targets: List[str] = []

    def on_response(response):
        # Sub-resources (scripts, images, trackers) redirect cross-host all the time
        request = response.request
        if not request.is_navigation_request() or request.frame != page.main_frame:
            return
        if not 300 <= response.status < 400:
            return
        location = response.headers.get("location")
        if not location:
            return
        target = urljoin(response.url, location)
        if hostname_of(target) != origin_host:
            cross_host_targets.append(target)

    page.on("response", on_response)

    try:
        await page.goto(url, timeout=settings.REQUEST_TIMEOUT * 1000, wait_until="domcontentloaded")
    except PlaywrightTimeout:
        return Failed(
            FailureKind.TIMEOUT,
            f"Page load timed out after {settings.REQUEST_TIMEOUT} seconds for URL: {url}"
        )
    except PlaywrightError as e:
        return Failed(FailureKind.NETWORK, f"Failed to load page: {e.message}")

    if cross_host_targets:
        print(f"CROSS-HOST REDIRECT {url} -> {cross_host_targets[0]}")
        return Redirected(target_url=cross_host_targets[0])

    # Client-side rendering keeps going after DOMContentLoaded
    try:
        await page.wait_for_load_state("networkidle", timeout=settings.JS_WAIT_TIMEOUT_MS)
    except PlaywrightTimeout:
        print(f"NETWORK NOT IDLE after {settings.JS_WAIT_TIMEOUT_MS}ms for {url}, reading content anyway")

    html = await page.content()
    return Rendered(markup=html, final_url=page.url)


async def _close_browser(browser) -> None:
    try:
        await asyncio.wait_for(browser.close(), timeout=settings.PROCESS_GRACE_SECONDS)
    except (PlaywrightError, asyncio.TimeoutError) as e:
        print(f"BROWSER CLOSE FAILED: {e}")
