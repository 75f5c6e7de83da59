"""
Automation Driver: The Browser Capabilities the Capture Flow Needs

AutomationDriver is the narrow interface strategies program against.
SeleniumDriver adapts a live Selenium WebDriver to it and turns "the browser
session is gone" errors into DriverFault, the one failure that aborts a
capture session. Every other Selenium error is left for the calling
strategy to handle.

make_chrome_driver() builds a Chrome instance that saves PDFs to disk
instead of opening the built-in viewer.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence
import base64
import logging

from selenium import webdriver
from selenium.common.exceptions import (
    ElementClickInterceptedException,
    ElementNotInteractableException,
    InvalidSelectorException,
    InvalidSessionIdException,
    NoSuchElementException,
    NoSuchWindowException,
    WebDriverException,
)
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.action_chains import ActionChains
from selenium.webdriver.common.keys import Keys
from selenium.webdriver.common.print_page_options import PrintOptions
from urllib3.exceptions import MaxRetryError, ProtocolError

from .errors import DriverFault
from .locators import Locator

logger = logging.getLogger(__name__)

# Substrings of WebDriverException messages that mean the session is dead
DEAD_SESSION_MARKERS = (
    "invalid session id",
    "session deleted",
    "no such session",
    "chrome not reachable",
    "disconnected",
    "session not created",
)

MODIFIER_KEYS: Dict[str, str] = {
    "CONTROL": Keys.CONTROL,
    "CTRL": Keys.CONTROL,
    "COMMAND": Keys.COMMAND,
    "CMD": Keys.COMMAND,
    "SHIFT": Keys.SHIFT,
    "ALT": Keys.ALT,
}

NAMED_KEYS: Dict[str, str] = {
    "ENTER": Keys.ENTER,
    "ESCAPE": Keys.ESCAPE,
    "TAB": Keys.TAB,
    "DOWN": Keys.ARROW_DOWN,
    "UP": Keys.ARROW_UP,
}

INCH_CM = 2.54


class AutomationDriver(Protocol):
    """Browser operations consumed by the capture core."""

    @property
    def current_url(self) -> str: ...

    @property
    def page_source(self) -> str: ...

    @property
    def window_handles(self) -> List[str]: ...

    @property
    def current_window_handle(self) -> str: ...

    def switch_to_window(self, handle: str) -> None: ...

    def close_window(self) -> None: ...

    def find_elements(self, locator: Locator) -> List[Any]: ...

    def click(self, element: Any) -> None: ...

    def context_click(self, element: Any) -> None: ...

    def send_shortcut(self, keys: Sequence[str]) -> None: ...

    def execute_script(self, script: str, *args: Any) -> Any: ...

    def execute_async_script(self, script: str, *args: Any) -> Any: ...

    def print_to_pdf(self, options: Dict[str, Any]) -> bytes: ...

    def get_cookies(self) -> List[Dict[str, Any]]: ...

    def get_user_agent(self) -> Optional[str]: ...

    def set_download_directory(self, path: str) -> bool: ...


class SeleniumDriver:
    """
    AutomationDriver backed by a Selenium WebDriver.

    Usage:
        driver = SeleniumDriver(make_chrome_driver(download_dir="/tmp/dl"))
        html = driver.page_source
    """

    def __init__(self, driver: Any):
        self.driver = driver

    def _has_windows(self) -> bool:
        try:
            return bool(self.driver.window_handles)
        except WebDriverException:
            return False

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except InvalidSessionIdException as e:
            raise DriverFault(f"Browser session lost during {action}", {"error": str(e)}) from e
        except NoSuchWindowException as e:
            # Losing one window is recoverable; losing the last one is not
            if not self._has_windows():
                raise DriverFault(f"Last browser window closed during {action}", {"error": str(e)}) from e
            raise
        except (MaxRetryError, ProtocolError, ConnectionRefusedError) as e:
            raise DriverFault(f"Driver unreachable during {action}", {"error": str(e)}) from e
        except WebDriverException as e:
            msg = (e.msg or str(e)).lower()
            if any(marker in msg for marker in DEAD_SESSION_MARKERS):
                raise DriverFault(f"Browser session lost during {action}", {"error": msg}) from e
            raise

    @property
    def current_url(self) -> str:
        with self._guard("current_url"):
            return self.driver.current_url

    @property
    def page_source(self) -> str:
        with self._guard("page_source"):
            return self.driver.page_source

    @property
    def window_handles(self) -> List[str]:
        with self._guard("window_handles"):
            return list(self.driver.window_handles)

    @property
    def current_window_handle(self) -> str:
        with self._guard("current_window_handle"):
            return self.driver.current_window_handle

    def switch_to_window(self, handle: str) -> None:
        with self._guard("switch_to_window"):
            self.driver.switch_to.window(handle)

    def close_window(self) -> None:
        with self._guard("close_window"):
            self.driver.close()

    def find_elements(self, locator: Locator) -> List[Any]:
        with self._guard("find_elements"):
            try:
                return list(self.driver.find_elements(locator.by, locator.value))
            except (InvalidSelectorException, NoSuchElementException) as e:
                logger.debug(f"[DRIVER] Locator {locator} did not resolve: {e.msg}")
                return []

    def click(self, element: Any) -> None:
        with self._guard("click"):
            try:
                element.click()
            except (ElementClickInterceptedException, ElementNotInteractableException):
                # Overlays and hidden anchors still take a scripted click
                self.driver.execute_script("arguments[0].click();", element)

    def context_click(self, element: Any) -> None:
        with self._guard("context_click"):
            ActionChains(self.driver).context_click(element).perform()

    def send_shortcut(self, keys: Sequence[str]) -> None:
        """
        Press a key chord such as ("CONTROL", "s") on the focused page.

        Modifiers are held down, the remaining keys are typed, then the
        modifiers are released in reverse order.
        """
        modifiers = [MODIFIER_KEYS[k.upper()] for k in keys if k.upper() in MODIFIER_KEYS]
        plain = [NAMED_KEYS.get(k.upper(), k) for k in keys if k.upper() not in MODIFIER_KEYS]
        with self._guard("send_shortcut"):
            chain = ActionChains(self.driver)
            for mod in modifiers:
                chain.key_down(mod)
            if plain:
                chain.send_keys(*plain)
            for mod in reversed(modifiers):
                chain.key_up(mod)
            chain.perform()

    def execute_script(self, script: str, *args: Any) -> Any:
        with self._guard("execute_script"):
            return self.driver.execute_script(script, *args)

    def execute_async_script(self, script: str, *args: Any) -> Any:
        with self._guard("execute_async_script"):
            return self.driver.execute_async_script(script, *args)

    def print_to_pdf(self, options: Dict[str, Any]) -> bytes:
        """
        Render the current page to PDF.

        Uses the DevTools Page.printToPDF command on Chromium drivers (which
        honours every layout option) and falls back to WebDriver print_page.

        Args:
            options: Page.printToPDF parameters (inches, booleans)

        Returns:
            Raw PDF bytes
        """
        with self._guard("print_to_pdf"):
            if hasattr(self.driver, "execute_cdp_cmd"):
                result = self.driver.execute_cdp_cmd("Page.printToPDF", dict(options))
                return base64.b64decode(result.get("data", ""))

            po = PrintOptions()
            po.page_width = float(options.get("paperWidth", 8.5)) * INCH_CM
            po.page_height = float(options.get("paperHeight", 11)) * INCH_CM
            po.margin_top = float(options.get("marginTop", 0)) * INCH_CM
            po.margin_bottom = float(options.get("marginBottom", 0)) * INCH_CM
            po.margin_left = float(options.get("marginLeft", 0)) * INCH_CM
            po.margin_right = float(options.get("marginRight", 0)) * INCH_CM
            po.background = bool(options.get("printBackground", True))
            return base64.b64decode(self.driver.print_page(po))

    def get_cookies(self) -> List[Dict[str, Any]]:
        with self._guard("get_cookies"):
            return list(self.driver.get_cookies())

    def get_user_agent(self) -> Optional[str]:
        with self._guard("get_user_agent"):
            return self.driver.execute_script("return navigator.userAgent;")

    def set_download_directory(self, path: str) -> bool:
        """Point browser downloads at `path`; False if the driver can't."""
        if not hasattr(self.driver, "execute_cdp_cmd"):
            return False
        with self._guard("set_download_directory"):
            try:
                self.driver.execute_cdp_cmd(
                    "Browser.setDownloadBehavior",
                    {"behavior": "allow", "downloadPath": path, "eventsEnabled": False},
                )
            except WebDriverException:
                self.driver.execute_cdp_cmd(
                    "Page.setDownloadBehavior",
                    {"behavior": "allow", "downloadPath": path},
                )
        logger.info(f"[DRIVER] Downloads redirected to {path}")
        return True


def make_chrome_driver(download_dir: str, headless: bool = True) -> "webdriver.Chrome":
    """
    Create a Chrome WebDriver configured for downloads.

    Args:
        download_dir: Directory where downloads will be saved
        headless: Whether to run in headless mode

    Returns:
        Configured Chrome WebDriver instance
    """
    opts = Options()
    if headless:
        opts.add_argument("--headless=new")
    opts.add_argument("--no-sandbox")
    opts.add_argument("--disable-dev-shm-usage")
    opts.add_argument("--disable-gpu")
    opts.add_argument("--window-size=1920,1080")
    # Print shortcut saves straight to PDF instead of opening the dialog
    opts.add_argument("--kiosk-printing")

    prefs = {
        "download.default_directory": download_dir,
        "download.prompt_for_download": False,
        "download.directory_upgrade": True,
        "safebrowsing.enabled": True,
        "plugins.always_open_pdf_externally": True,
        "savefile.default_directory": download_dir,
    }
    opts.add_experimental_option("prefs", prefs)

    return webdriver.Chrome(options=opts)
