"""
Unit Tests for PNG Generator
============================

Browser discovery, lazy single-launch browser pool, and per-request capture.
"""

import asyncio
import gc
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from canvas_render.core.rendering.png_generator import (
    LAUNCH_ARGS,
    BrowserLaunchError,
    BrowserNotFoundError,
    BrowserPool,
    PNGGenerationError,
    PlaywrightPNGGenerator,
    close_browser_pool,
    find_executable_path,
    get_browser_pool,
)

from tests.utils.mocks import PNG_BYTES, make_browser, make_playwright, slow_launch

MODULE = "canvas_render.core.rendering.png_generator"


class TestFindExecutablePath:
    """Test native browser discovery."""

    def test_explicit_path_wins(self, tmp_path):
        binary = tmp_path / "chrome"
        binary.write_text("")

        assert find_executable_path(str(binary), platform="linux") == str(binary)

    def test_missing_explicit_path_falls_back_to_probe(self):
        with patch(f"{MODULE}.os.path.exists", side_effect=lambda p: p == "/usr/bin/chromium"):
            assert find_executable_path("/nope/chrome", platform="linux") == "/usr/bin/chromium"

    def test_linux_probe_order(self):
        present = {"/usr/bin/google-chrome", "/snap/bin/chromium"}
        with patch(f"{MODULE}.os.path.exists", side_effect=lambda p: p in present):
            assert find_executable_path(platform="linux") == "/usr/bin/google-chrome"

    def test_macos_probe(self):
        chromium = "/Applications/Chromium.app/Contents/MacOS/Chromium"
        with patch(f"{MODULE}.os.path.exists", side_effect=lambda p: p == chromium):
            assert find_executable_path(platform="darwin") == chromium

    def test_windows_probe_uses_environment(self, monkeypatch):
        monkeypatch.setenv("LOCALAPPDATA", "/appdata")
        monkeypatch.delenv("PROGRAMFILES", raising=False)
        monkeypatch.delenv("PROGRAMFILES(X86)", raising=False)
        seen = []

        def exists(path):
            seen.append(path)
            return False

        with patch(f"{MODULE}.os.path.exists", side_effect=exists):
            assert find_executable_path(platform="win32") is None

        assert len(seen) == 1
        assert seen[0].endswith("chrome.exe")
        assert seen[0].startswith("/appdata")

    def test_nothing_found(self):
        with patch(f"{MODULE}.os.path.exists", return_value=False):
            assert find_executable_path(platform="linux") is None

    def test_unknown_platform(self):
        assert find_executable_path(platform="sunos5") is None


@pytest.fixture
def no_native_browser():
    with patch(f"{MODULE}.find_executable_path", return_value=None) as mock_find:
        yield mock_find


class TestBrowserPool:
    """Test lazy single-instance browser management."""

    def test_starts_uninitialized(self, test_settings):
        pool = BrowserPool(test_settings)

        assert pool.state == "uninitialized"
        assert pool.launch_attempts == 0

    @pytest.mark.asyncio
    async def test_first_acquire_launches(self, test_settings, no_native_browser):
        browser, _, _ = make_browser()
        starter, playwright = make_playwright(slow_launch(browser))
        pool = BrowserPool(test_settings)

        with patch(f"{MODULE}.async_playwright", return_value=starter):
            assert await pool.acquire() is browser

        assert pool.state == "ready"
        kwargs = playwright.chromium.launch.call_args.kwargs
        assert kwargs["args"] == LAUNCH_ARGS
        assert kwargs["timeout"] == test_settings.browser_launch_timeout_ms
        assert kwargs["headless"] is True
        assert "executable_path" not in kwargs

    @pytest.mark.asyncio
    async def test_native_browser_is_passed_to_launch(self, test_settings):
        browser, _, _ = make_browser()
        starter, playwright = make_playwright(slow_launch(browser))
        pool = BrowserPool(test_settings)

        with patch(f"{MODULE}.find_executable_path", return_value="/usr/bin/chromium"):
            with patch(f"{MODULE}.async_playwright", return_value=starter):
                await pool.acquire()

        assert playwright.chromium.launch.call_args.kwargs["executable_path"] == "/usr/bin/chromium"

    @pytest.mark.asyncio
    async def test_concurrent_acquires_share_one_launch(self, test_settings, no_native_browser):
        browser, _, _ = make_browser()
        starter, playwright = make_playwright(slow_launch(browser))
        pool = BrowserPool(test_settings)

        with patch(f"{MODULE}.async_playwright", return_value=starter):
            browsers = await asyncio.gather(*(pool.acquire() for _ in range(10)))

        assert all(b is browser for b in browsers)
        assert playwright.chromium.launch.await_count == 1
        assert starter.start.await_count == 1
        assert pool.launch_attempts == 1

    @pytest.mark.asyncio
    async def test_ready_pool_does_not_relaunch(self, test_settings, no_native_browser):
        browser, _, _ = make_browser()
        starter, playwright = make_playwright(slow_launch(browser))
        pool = BrowserPool(test_settings)

        with patch(f"{MODULE}.async_playwright", return_value=starter):
            await pool.acquire()
            await pool.acquire()

        assert playwright.chromium.launch.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_launch_is_retried_by_next_caller(self, test_settings, no_native_browser):
        browser, _, _ = make_browser()
        starter, playwright = make_playwright([RuntimeError("crashed"), browser])
        pool = BrowserPool(test_settings)

        with patch(f"{MODULE}.async_playwright", return_value=starter):
            with pytest.raises(BrowserLaunchError, match="Browser launch failed: crashed"):
                await pool.acquire()

            assert pool.state == "uninitialized"
            playwright.stop.assert_awaited_once()

            assert await pool.acquire() is browser

        assert pool.launch_attempts == 2
        assert pool.state == "ready"

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_a_failure(self, test_settings, no_native_browser):
        starter, playwright = make_playwright(slow_launch(error=RuntimeError("no display")))
        pool = BrowserPool(test_settings)

        with patch(f"{MODULE}.async_playwright", return_value=starter):
            results = await asyncio.gather(
                *(pool.acquire() for _ in range(5)), return_exceptions=True
            )

        assert all(isinstance(r, BrowserLaunchError) for r in results)
        assert playwright.chromium.launch.await_count == 1
        assert pool.state == "uninitialized"

    @pytest.mark.asyncio
    async def test_missing_binary_is_reported_distinctly(self, test_settings, no_native_browser):
        error = PlaywrightError("Executable doesn't exist at /ms-playwright/chromium/chrome")
        starter, _ = make_playwright(error)
        pool = BrowserPool(test_settings)

        with patch(f"{MODULE}.async_playwright", return_value=starter):
            with pytest.raises(BrowserNotFoundError, match="Browser binary not found"):
                await pool.acquire()

    @pytest.mark.asyncio
    async def test_driver_start_failure(self, test_settings, no_native_browser):
        starter = MagicMock()
        starter.start = AsyncMock(side_effect=RuntimeError("driver missing"))
        pool = BrowserPool(test_settings)

        with patch(f"{MODULE}.async_playwright", return_value=starter):
            with pytest.raises(BrowserLaunchError):
                await pool.acquire()

        assert pool.state == "uninitialized"

    @pytest.mark.asyncio
    async def test_close_releases_browser_and_driver(self, test_settings, no_native_browser):
        browser, _, _ = make_browser()
        starter, playwright = make_playwright(slow_launch(browser))
        pool = BrowserPool(test_settings)

        with patch(f"{MODULE}.async_playwright", return_value=starter):
            await pool.acquire()
        await pool.close()

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert pool.state == "uninitialized"

    @pytest.mark.asyncio
    async def test_close_during_launch_fails_waiters_cleanly(self, test_settings, no_native_browser):
        launch_started = asyncio.Event()

        async def hanging_launch(**kwargs):
            launch_started.set()
            await asyncio.Event().wait()

        starter, playwright = make_playwright(hanging_launch)
        pool = BrowserPool(test_settings)

        with patch(f"{MODULE}.async_playwright", return_value=starter):
            waiter = asyncio.create_task(pool.acquire())
            await launch_started.wait()
            await pool.close()

            with pytest.raises(BrowserLaunchError, match="pool is closing"):
                await waiter

        playwright.stop.assert_awaited_once()
        assert pool.state == "uninitialized"

    @pytest.mark.asyncio
    async def test_abandoned_failed_launch_is_consumed(self, test_settings, no_native_browser):
        loop = asyncio.get_running_loop()
        reported = []
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        starter, _ = make_playwright(slow_launch(error=RuntimeError("no display")))
        pool = BrowserPool(test_settings)

        try:
            with patch(f"{MODULE}.async_playwright", return_value=starter):
                caller = asyncio.create_task(pool.acquire())
                await asyncio.sleep(0)
                caller.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await caller
                await asyncio.sleep(0.05)

            assert pool.state == "uninitialized"
            gc.collect()
            assert reported == []
        finally:
            loop.set_exception_handler(None)

    @pytest.mark.asyncio
    async def test_close_unused_pool(self, test_settings):
        await BrowserPool(test_settings).close()

    @pytest.mark.asyncio
    async def test_global_pool_accessors(self):
        pool = get_browser_pool()

        assert get_browser_pool() is pool
        await close_browser_pool()
        assert get_browser_pool() is not pool
        await close_browser_pool()


class TestPlaywrightPNGGenerator:
    """Test per-request capture."""

    @pytest.mark.asyncio
    async def test_capture_success(self, png_generator):
        browser, context, page = make_browser()

        png = await png_generator.capture(browser, "<html></html>", 751, 1334)

        assert png == PNG_BYTES
        browser.new_context.assert_awaited_once_with(
            viewport={"width": 751, "height": 1334},
            device_scale_factor=2.0,
            bypass_csp=True,
        )
        page.set_content.assert_awaited_once_with(
            "<html></html>", wait_until="load", timeout=60000
        )
        page.screenshot.assert_awaited_once_with(
            type="png",
            clip={"x": 0, "y": 0, "width": 751, "height": 1334},
            omit_background=False,
        )
        context.close.assert_awaited_once()
        browser.close.assert_not_called()
        assert png_generator.active_surfaces == 0

    @pytest.mark.asyncio
    async def test_console_messages_are_forwarded(self, png_generator):
        browser, _, page = make_browser()

        await png_generator.capture(browser, "<html></html>", 10, 10)

        event, handler = page.on.call_args.args
        assert event == "console"
        handler(MagicMock(type="log", text="hello"))

    @pytest.mark.asyncio
    async def test_load_timeout_closes_surface(self, png_generator):
        browser, context, page = make_browser()
        page.set_content.side_effect = PlaywrightTimeoutError("Timeout 60000ms exceeded")

        with pytest.raises(PNGGenerationError, match="Timeout 60000ms exceeded"):
            await png_generator.capture(browser, "<html></html>", 10, 10)

        page.screenshot.assert_not_called()
        context.close.assert_awaited_once()
        assert png_generator.active_surfaces == 0

    @pytest.mark.asyncio
    async def test_screenshot_failure_closes_surface(self, png_generator):
        browser, context, page = make_browser()
        page.screenshot.side_effect = PlaywrightError("Target closed")

        with pytest.raises(PNGGenerationError):
            await png_generator.capture(browser, "<html></html>", 10, 10)

        context.close.assert_awaited_once()
        assert png_generator.active_surfaces == 0

    @pytest.mark.asyncio
    async def test_close_failure_does_not_mask_result(self, png_generator):
        browser, context, _ = make_browser()
        context.close.side_effect = PlaywrightError("already closed")

        assert await png_generator.capture(browser, "<html></html>", 10, 10) == PNG_BYTES
        assert png_generator.active_surfaces == 0

    @pytest.mark.asyncio
    async def test_close_failure_does_not_mask_error(self, png_generator):
        browser, context, page = make_browser()
        page.set_content.side_effect = PlaywrightError("net::ERR_ABORTED")
        context.close.side_effect = PlaywrightError("already closed")

        with pytest.raises(PNGGenerationError, match="ERR_ABORTED"):
            await png_generator.capture(browser, "<html></html>", 10, 10)

    @pytest.mark.asyncio
    async def test_context_creation_failure(self, png_generator):
        browser, _, _ = make_browser()
        browser.new_context.side_effect = PlaywrightError("Browser has been closed")

        with pytest.raises(PNGGenerationError):
            await png_generator.capture(browser, "<html></html>", 10, 10)

        assert png_generator.active_surfaces == 0

    @pytest.mark.asyncio
    async def test_waits_for_fonts_and_settles(self, test_settings):
        test_settings.wait_for_fonts = True
        test_settings.settle_delay_ms = 250
        generator = PlaywrightPNGGenerator(settings=test_settings)
        browser, _, page = make_browser()

        with patch(f"{MODULE}.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await generator.capture(browser, "<html></html>", 10, 10)

        page.evaluate.assert_awaited_once_with("document.fonts.ready.then(() => true)")
        mock_sleep.assert_awaited_once_with(0.25)

    @pytest.mark.asyncio
    async def test_font_wait_failure_is_not_fatal(self, test_settings):
        test_settings.wait_for_fonts = True
        generator = PlaywrightPNGGenerator(settings=test_settings)
        browser, _, page = make_browser()
        page.evaluate.side_effect = PlaywrightError("Execution context was destroyed")

        assert await generator.capture(browser, "<html></html>", 10, 10) == PNG_BYTES

    @pytest.mark.asyncio
    async def test_font_wait_is_bounded_by_load_timeout(self, test_settings):
        test_settings.wait_for_fonts = True
        test_settings.page_load_timeout_ms = 20
        generator = PlaywrightPNGGenerator(settings=test_settings)
        browser, context, page = make_browser()

        async def never_ready(expression):
            await asyncio.Event().wait()

        page.evaluate.side_effect = never_ready

        png = await asyncio.wait_for(generator.capture(browser, "<html></html>", 10, 10), timeout=5)

        assert png == PNG_BYTES
        context.close.assert_awaited_once()
