import asyncio
import time
from contextlib import asynccontextmanager
from unittest.mock import patch

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout
from web_fetch.core.config import settings
from web_fetch.core.outcomes import Failed, FailureKind, Redirected, Rendered
from web_fetch.core.process import CancelToken
from web_fetch.fetch import browser

class FakeRequest:
    def __init__(self, frame, navigation=True):
        self.frame = frame
        self._navigation = navigation

    def is_navigation_request(self):
        return self._navigation

class FakeResponse:
    def __init__(self, url, status, headers, request):
        self.url = url
        self.status = status
        self.headers = headers
        self.request = request

class FakePage:
    """
    Replays a scripted list of responses during goto().

    Each hop is (url, status, location, navigation, main_frame).
    """

    def __init__(self, hops=(), final_url="", html="<html></html>", goto_error=None, hang=False):
        self.main_frame = object()
        self.other_frame = object()
        self.hops = list(hops)
        self.final_url = final_url
        self.html = html
        self.goto_error = goto_error
        self.hang = hang
        self.handlers = {}
        self.url = "about:blank"
        self.goto_calls = []
        self.content_calls = 0

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    async def goto(self, url, timeout=None, wait_until=None):
        self.goto_calls.append({"url": url, "timeout": timeout, "wait_until": wait_until})
        if self.hang:
            await asyncio.sleep(60)
        for hop_url, status, location, navigation, main in self.hops:
            headers = {"location": location} if location else {}
            request = FakeRequest(self.main_frame if main else self.other_frame, navigation)
            for handler in self.handlers.get("response", []):
                handler(FakeResponse(hop_url, status, headers, request))
        if self.goto_error:
            raise self.goto_error
        self.url = self.final_url or url

    async def wait_for_load_state(self, state, timeout=None):
        pass

    async def content(self):
        self.content_calls += 1
        return self.html

class FakeContext:
    def __init__(self, page):
        self.page = page
        self.options = None

    async def new_page(self):
        return self.page

class FakeBrowser:
    def __init__(self, page):
        self.context = FakeContext(page)
        self.closed = False

    async def new_context(self, **options):
        self.context.options = options
        return self.context

    async def close(self):
        self.closed = True

class FakeChromium:
    def __init__(self, browser_instance, launch_error=None):
        self.browser = browser_instance
        self.launch_error = launch_error
        self.launch_options = None

    async def launch(self, **options):
        self.launch_options = options
        if self.launch_error:
            raise self.launch_error
        return self.browser

class FakePlaywright:
    def __init__(self, page, launch_error=None):
        self.page = page
        self.browser = FakeBrowser(page)
        self.chromium = FakeChromium(self.browser, launch_error)
        self.stopped = False

def _patched(fake):
    @asynccontextmanager
    async def fake_async_playwright():
        try:
            yield fake
        finally:
            fake.stopped = True

    return patch("web_fetch.fetch.browser.async_playwright", new=fake_async_playwright)

def _fetch(fake, url, cancel_after=None):
    async def scenario():
        token = CancelToken()
        if cancel_after is not None:
            asyncio.get_running_loop().call_later(cancel_after, token.cancel)
        return await browser.fetch_page(url, token)

    with _patched(fake):
        return asyncio.run(scenario())

class TestFetchPage:
    """Tests for rendering pages and classifying redirects"""

    def test_rendered_page(self):
        """A plain page yields its markup and final URL"""
        page = FakePage(html="<html><body>Hi</body></html>")
        fake = FakePlaywright(page)

        outcome = _fetch(fake, "https://example.com/")

        assert outcome == Rendered(markup="<html><body>Hi</body></html>", final_url="https://example.com/")
        assert page.goto_calls[0]["timeout"] == settings.REQUEST_TIMEOUT * 1000
        assert fake.browser.closed
        assert fake.stopped

    def test_same_host_redirect_followed(self):
        """Redirects within the host are followed to the final page"""
        page = FakePage(
            hops=[("https://example.com/docs", 301, "https://example.com/docs/latest", True, True)],
            final_url="https://example.com/docs/latest",
            html="<html>latest docs</html>",
        )
        fake = FakePlaywright(page)

        outcome = _fetch(fake, "https://example.com/docs")

        assert isinstance(outcome, Rendered)
        assert outcome.final_url == "https://example.com/docs/latest"
        assert outcome.markup == "<html>latest docs</html>"

    def test_relative_location_is_same_host(self):
        """A relative Location resolves against the redirecting URL"""
        page = FakePage(
            hops=[("https://example.com/docs", 302, "/docs/v2/", True, True)],
            final_url="https://example.com/docs/v2/",
        )

        outcome = _fetch(FakePlaywright(page), "https://example.com/docs")

        assert isinstance(outcome, Rendered)

    def test_cross_host_redirect_reported(self):
        """A redirect to another host is returned without reading content"""
        page = FakePage(
            hops=[("https://example.com/out", 302, "https://other.example/page", True, True)],
            final_url="https://other.example/page",
        )
        fake = FakePlaywright(page)

        outcome = _fetch(fake, "https://example.com/out")

        assert outcome == Redirected(target_url="https://other.example/page")
        assert page.content_calls == 0
        assert fake.browser.closed

    def test_first_cross_host_hop_reported(self):
        """In a redirect chain the first foreign target is reported"""
        page = FakePage(
            hops=[
                ("https://example.com/a", 301, "https://example.com/b", True, True),
                ("https://example.com/b", 302, "https://sso.other.example/login", True, True),
                ("https://sso.other.example/login", 302, "https://third.example/", True, True),
            ],
        )

        outcome = _fetch(FakePlaywright(page), "https://example.com/a")

        assert outcome == Redirected(target_url="https://sso.other.example/login")

    def test_subresource_redirects_ignored(self):
        """Cross-host redirects of scripts, trackers and iframes do not count"""
        page = FakePage(
            hops=[
                ("https://example.com/pixel.gif", 302, "https://tracker.example/p", False, True),
                ("https://example.com/embed", 302, "https://video.example/e", True, False),
            ],
            html="<html>page</html>",
        )

        outcome = _fetch(FakePlaywright(page), "https://example.com/")

        assert isinstance(outcome, Rendered)
        assert outcome.markup == "<html>page</html>"

    def test_redirect_without_location_ignored(self):
        """A 3xx with no Location header is not a redirect signal"""
        page = FakePage(hops=[("https://example.com/", 304, None, True, True)])

        outcome = _fetch(FakePlaywright(page), "https://example.com/")

        assert isinstance(outcome, Rendered)

    def test_timeout(self):
        """Navigation timeout is classified as timeout"""
        page = FakePage(goto_error=PlaywrightTimeout("Timeout 30000ms exceeded."))
        fake = FakePlaywright(page)

        outcome = _fetch(fake, "https://slow.example/")

        assert isinstance(outcome, Failed)
        assert outcome.kind is FailureKind.TIMEOUT
        assert "timed out after 30 seconds" in outcome.reason
        assert fake.browser.closed

    def test_network_error(self):
        """Other navigation errors carry the underlying message"""
        page = FakePage(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://nope.example/"))
        fake = FakePlaywright(page)

        outcome = _fetch(fake, "https://nope.example/")

        assert isinstance(outcome, Failed)
        assert outcome.kind is FailureKind.NETWORK
        assert "ERR_NAME_NOT_RESOLVED" in outcome.reason
        assert fake.browser.closed

    def test_launch_failure(self):
        """A browser that cannot start is a launch failure"""
        fake = FakePlaywright(FakePage(), launch_error=PlaywrightError("Executable doesn't exist"))

        outcome = _fetch(fake, "https://example.com/")

        assert isinstance(outcome, Failed)
        assert outcome.kind is FailureKind.LAUNCH
        assert fake.stopped

    def test_executable_override_and_user_agent(self):
        """The configured browser binary and user agent are used"""
        settings.BROWSER_EXECUTABLE_PATH = "/opt/chromium/chrome"
        fake = FakePlaywright(FakePage())

        _fetch(fake, "https://example.com/")

        assert fake.chromium.launch_options["executable_path"] == "/opt/chromium/chrome"
        assert fake.browser.context.options["user_agent"] == settings.USER_AGENT

    def test_abort_mid_fetch(self):
        """Cancelling during navigation returns aborted and closes the browser"""
        page = FakePage(hang=True)
        fake = FakePlaywright(page)

        started = time.monotonic()
        outcome = _fetch(fake, "https://example.com/", cancel_after=0.1)

        assert isinstance(outcome, Failed)
        assert outcome.is_aborted
        assert time.monotonic() - started < settings.PROCESS_GRACE_SECONDS
        assert fake.browser.closed
        assert fake.stopped
