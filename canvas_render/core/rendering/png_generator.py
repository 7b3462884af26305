"""
PNG Generator
=============

Playwright-based PNG screenshot generation from HTML content.
Owns the single shared Chromium instance and the per-request browser
contexts used to load and capture one document each.
"""

from typing import Optional, Dict, Any, List
import asyncio
import os
import sys

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright
from playwright.async_api import Error as PlaywrightError

from canvas_render.config.logging import get_logger
from canvas_render.config.settings import get_settings, Settings

logger = get_logger(__name__)

LAUNCH_ARGS: List[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-default-apps",
    "--disable-sync",
    "--metrics-recording-only",
    "--mute-audio",
    "--no-first-run",
    "--safebrowsing-disable-auto-update",
    "--disable-translate",
    "--disable-software-rasterizer",
    "--disable-web-security",
    "--allow-file-access-from-files",
]

LINUX_BROWSER_PATHS = [
    "/usr/bin/chromium-browser",
    "/usr/bin/chromium",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/usr/bin/google-chrome-beta",
    "/snap/bin/chromium",
    "/opt/google/chrome/chrome",
]

MACOS_BROWSER_PATHS = [
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
]

LINUX_TROUBLESHOOTING = """\
Install Chromium or Chrome (e.g. `apt-get install -y chromium`), or run
`playwright install --with-deps chromium`. Missing shared libraries can be
listed with `ldd $(which chromium) | grep "not found"`. Point
CHROME_PATH at a specific binary to skip the probe."""


class PNGGenerationError(Exception):
    """Exception raised when PNG generation fails."""

    pass


class BrowserLaunchError(PNGGenerationError):
    """The browser binary was found but could not be started."""

    pass


class BrowserNotFoundError(BrowserLaunchError):
    """No usable browser binary exists."""

    pass


def _windows_browser_paths() -> List[str]:
    candidates = []
    for env_var in ("LOCALAPPDATA", "PROGRAMFILES", "PROGRAMFILES(X86)"):
        base = os.environ.get(env_var)
        if base:
            candidates.append(os.path.join(base, "Google", "Chrome", "Application", "chrome.exe"))
    return candidates


def find_executable_path(
    explicit_path: Optional[str] = None, platform: Optional[str] = None
) -> Optional[str]:
    """
    Locate a natively installed Chrome/Chromium.

    Args:
        explicit_path: Override that wins when it exists
        platform: ``sys.platform`` value to probe for

    Returns:
        Executable path, or None to use Playwright's bundled Chromium
    """
    if explicit_path:
        if os.path.exists(explicit_path):
            logger.info("Using configured browser", path=explicit_path)
            return explicit_path
        logger.warning("Configured browser path does not exist", path=explicit_path)

    platform = platform or sys.platform
    if platform == "win32":
        candidates = _windows_browser_paths()
    elif platform.startswith("linux"):
        candidates = LINUX_BROWSER_PATHS
    elif platform == "darwin":
        candidates = MACOS_BROWSER_PATHS
    else:
        candidates = []

    for candidate in candidates:
        if os.path.exists(candidate):
            logger.info("Found browser", path=candidate)
            return candidate
    return None


class BrowserPool:
    """
    Lazily launched, process-wide Chromium instance.

    Concurrent ``acquire`` calls made before the browser exists share one
    launch task. A failed launch clears the task so the next call retries.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="browser_pool")  # structlog.BoundLoggerBase
        self._browser: Optional[Browser] = None
        self._playwright: Optional[Playwright] = None
        self._init_task: Optional["asyncio.Task[Browser]"] = None
        self._lock = asyncio.Lock()
        self.launch_attempts = 0

    @property
    def state(self) -> str:
        if self._browser is not None:
            return "ready"
        if self._init_task is not None:
            return "initializing"
        return "uninitialized"

    async def acquire(self) -> Browser:
        """
        Get the shared browser, launching it on first use.

        Returns:
            The shared Browser; callers must not close it

        Raises:
            BrowserNotFoundError: If no browser binary is available
            BrowserLaunchError: If the browser failed to start
        """
        if self._browser is not None:
            return self._browser

        async with self._lock:
            if self._browser is not None:
                return self._browser
            if self._init_task is None:
                self._init_task = asyncio.ensure_future(self._launch())
                self._init_task.add_done_callback(self._on_launch_done)
            task = self._init_task

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise BrowserLaunchError("Browser launch cancelled, pool is closing") from None
            raise
        except Exception:
            async with self._lock:
                if self._init_task is task:
                    self._init_task = None
            raise

    def _on_launch_done(self, task: "asyncio.Task[Browser]") -> None:
        """Retrieve the outcome so a launch nobody awaited is not reported as unhandled."""
        if task.cancelled() or task.exception() is not None:
            if self._init_task is task:
                self._init_task = None

    async def _launch(self) -> Browser:
        self.launch_attempts += 1
        executable_path = find_executable_path(self.settings.chrome_path)
        if executable_path is None:
            self.logger.warning("No browser found in system paths, using Playwright's bundled Chromium")

        launch_options: Dict[str, Any] = {
            "headless": self.settings.playwright_headless,
            "timeout": self.settings.browser_launch_timeout_ms,
            "args": LAUNCH_ARGS,
        }
        if executable_path:
            launch_options["executable_path"] = executable_path

        self.logger.info(
            "Launching browser",
            platform=sys.platform,
            executable=executable_path or "bundled",
            timeout_ms=self.settings.browser_launch_timeout_ms,
        )

        playwright = None
        try:
            playwright = await async_playwright().start()
            browser = await playwright.chromium.launch(**launch_options)
        except asyncio.CancelledError:
            if playwright is not None:
                await playwright.stop()
            raise
        except Exception as e:
            self.logger.error("Failed to launch browser", error=str(e))
            if sys.platform.startswith("linux"):
                self.logger.error("Linux troubleshooting", hint=LINUX_TROUBLESHOOTING)
            if playwright is not None:
                try:
                    await playwright.stop()
                except Exception as stop_error:
                    self.logger.warning("Failed to stop Playwright driver", error=str(stop_error))
            if "Executable doesn't exist" in str(e):
                raise BrowserNotFoundError(f"Browser binary not found: {e}") from e
            raise BrowserLaunchError(f"Browser launch failed: {e}") from e

        self._playwright = playwright
        self._browser = browser
        self.logger.info("Browser launched successfully")
        return browser

    async def close(self) -> None:
        """Close the shared browser and stop Playwright."""
        async with self._lock:
            task = self._init_task
            self._init_task = None
        if task is not None and not task.done():
            task.cancel()

        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                self.logger.warning("Error closing browser", error=str(e))
            self._browser = None

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

        self.logger.info("Browser pool closed")


class PlaywrightPNGGenerator:
    """Loads one document per isolated browser context and captures it."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(generator="playwright")  # structlog.BoundLoggerBase
        self.active_surfaces = 0

    async def capture(self, browser: Browser, html_content: str, width: int, height: int) -> bytes:
        """
        Render HTML in a fresh context and screenshot the canvas area.

        Args:
            browser: Shared browser; left open
            html_content: Complete document
            width: Viewport and clip width in CSS pixels
            height: Viewport and clip height in CSS pixels

        Returns:
            PNG bytes

        Raises:
            PNGGenerationError: If the page fails to load or capture
        """
        context: Optional[BrowserContext] = None
        try:
            context = await self._create_browser_context(browser, width, height)
            self.active_surfaces += 1
            page = await context.new_page()
            self._configure_page(page)

            await page.set_content(
                html_content, wait_until="load", timeout=self.settings.page_load_timeout_ms
            )
            self.logger.debug("HTML content loaded", html_length=len(html_content))

            await self._settle(page)

            return await page.screenshot(
                type="png",
                clip={"x": 0, "y": 0, "width": width, "height": height},
                omit_background=False,
            )
        except PNGGenerationError:
            raise
        except Exception as e:
            error_msg = f"PNG generation failed: {e}"
            self.logger.error("PNG generation error", error=error_msg)
            raise PNGGenerationError(error_msg) from e
        finally:
            if context is not None:
                await self._close_context(context)

    async def _create_browser_context(
        self, browser: Browser, width: int, height: int
    ) -> BrowserContext:
        """Create browser context with appropriate settings."""
        return await browser.new_context(
            viewport={"width": width, "height": height},
            device_scale_factor=self.settings.device_scale_factor,
            bypass_csp=True,
        )

    def _configure_page(self, page: Page) -> None:
        """Forward page console output to the log."""
        page.on(
            "console",
            lambda message: self.logger.debug(
                "Browser console", level=message.type, text=message.text
            ),
        )

    async def _settle(self, page: Page) -> None:
        """Give embedded fonts time to rasterize before capture."""
        if self.settings.wait_for_fonts:
            try:
                await asyncio.wait_for(
                    page.evaluate("document.fonts.ready.then(() => true)"),
                    timeout=self.settings.page_load_timeout_ms / 1000,
                )
            except (PlaywrightError, asyncio.TimeoutError) as e:
                self.logger.warning("Waiting for fonts failed", error=str(e))
        if self.settings.settle_delay_ms:
            await asyncio.sleep(self.settings.settle_delay_ms / 1000)

    async def _close_context(self, context: BrowserContext) -> None:
        try:
            await context.close()
        except Exception as e:
            self.logger.error("Failed to close browser context", error=str(e))
        finally:
            self.active_surfaces -= 1


# Global browser pool instance
_global_browser_pool: Optional[BrowserPool] = None


def get_browser_pool() -> BrowserPool:
    """Get the global browser pool; the browser itself launches on first acquire."""
    global _global_browser_pool
    if _global_browser_pool is None:
        _global_browser_pool = BrowserPool()
    return _global_browser_pool


async def close_browser_pool() -> None:
    """Close global browser pool."""
    global _global_browser_pool
    if _global_browser_pool:
        await _global_browser_pool.close()
        _global_browser_pool = None
