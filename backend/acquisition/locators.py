"""
Locators: Site Structure Kept Out of Orchestration Code

Every selector the capture flow uses is declared in DEFAULT_LOCATORS. When
the site changes its markup, update the table; strategies only ask for
elements by logical name through ElementLocator.locate().
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

BY_CSS = "css selector"
BY_XPATH = "xpath"
BY_ID = "id"
BY_LINK_TEXT = "link text"
BY_PARTIAL_LINK_TEXT = "partial link text"


@dataclass(frozen=True)
class Locator:
    """A (strategy, value) pair; `by` uses Selenium's By string values."""
    by: str
    value: str

    def __str__(self) -> str:
        return f"{self.by}={self.value}"


def css(value: str) -> Locator:
    return Locator(BY_CSS, value)


def xpath(value: str) -> Locator:
    return Locator(BY_XPATH, value)


LocatorTable = Mapping[str, Tuple[Locator, ...]]


DEFAULT_LOCATORS: LocatorTable = MappingProxyType({
    # Link or button that opens the CP 575 notice
    "notice_link": (
        css("a[href*='CP575' i]"),
        css("a[href*='notice' i][href$='.pdf' i]"),
        xpath("//a[contains(translate(., 'EINLETR', 'einletr'), 'ein letter')]"),
        xpath("//a[contains(., 'CP 575') or contains(., 'CP575')]"),
        Locator(BY_PARTIAL_LINK_TEXT, "Click here"),
        Locator(BY_PARTIAL_LINK_TEXT, "EIN Confirmation Letter"),
    ),
    "download_button": (
        css("button[id*='download' i]"),
        css("a[download]"),
        xpath("//button[contains(translate(., 'DOWNLAD', 'downlad'), 'download')]"),
        xpath("//input[@type='button' and contains(translate(@value, 'DOWNLAD', 'downlad'), 'download')]"),
    ),
    "print_button": (
        css("button[id*='print' i]"),
        xpath("//button[contains(translate(., 'PRINT', 'print'), 'print')]"),
        xpath("//a[contains(translate(., 'PRINT', 'print'), 'print')]"),
    ),
    # Region holding the notice text on the confirmation page
    "target_content": (
        css("#confirmation"),
        css("#main-content"),
        css(".notice"),
        css("main"),
        css("[role='main']"),
        css("#content"),
    ),
    # Page chrome to hide before printing
    "chrome_regions": (
        css("header"),
        css("nav"),
        css("footer"),
        css("[role='banner']"),
        css("[role='navigation']"),
        css("[role='contentinfo']"),
        css(".menu"),
        css(".navbar"),
        css(".breadcrumb"),
        css("#skip-link"),
    ),
})


class ElementLocator:
    """Resolve logical element names to live elements via a locator table."""

    def __init__(self, driver: Any, table: Optional[LocatorTable] = None):
        self.driver = driver
        self.table = table if table is not None else DEFAULT_LOCATORS

    def locators(self, name: str) -> Tuple[Locator, ...]:
        return tuple(self.table.get(name, ()))

    def locate(self, name: str) -> List[Any]:
        """
        Find elements for a logical name.

        Tries each locator in table order and returns the first non-empty
        match list. Driver adapters return [] for selectors that don't
        resolve, so only a dead driver (DriverFault) escapes.

        Args:
            name: Logical element name from the table

        Returns:
            List of driver elements (empty if nothing matched)
        """
        return self.locate_any(self.locators(name))

    def locate_any(self, locators: Tuple[Locator, ...]) -> List[Any]:
        for locator in locators:
            elements = self.driver.find_elements(locator)
            if elements:
                logger.debug(f"[LOCATE] {locator} -> {len(elements)} element(s)")
                return list(elements)
        return []

    def css_selectors(self, name: str) -> List[str]:
        """CSS values for a name, for injection into page scripts."""
        return [loc.value for loc in self.locators(name) if loc.by == BY_CSS]
