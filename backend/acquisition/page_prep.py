"""
Page Preparation: Strip Chrome Before Any Export

Runs once per session before triggers and acquire strategies. Hides site
chrome (header, nav, footer, menus) and clones the notice region into a
full-viewport container so that a print-to-PDF renders the notice alone.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from .locators import ElementLocator

logger = logging.getLogger(__name__)

ISOLATED_ID = "__capture_isolated__"
STYLE_ID = "__capture_hide_chrome__"
ISOLATE_STYLE_ID = "__capture_isolate_only__"

# Arguments: [chrome selectors], [target selectors], isolated id, style id
_PREPARE_JS = """
var chromeSelectors = arguments[0], targetSelectors = arguments[1];
var isolatedId = arguments[2], styleId = arguments[3];

if (!document.getElementById(styleId)) {
    var style = document.createElement('style');
    style.id = styleId;
    style.textContent = chromeSelectors.map(function (s) {
        return s + ' { display: none !important; }';
    }).join('\\n');
    (document.head || document.documentElement).appendChild(style);
}

var old = document.getElementById(isolatedId);
if (old) { old.parentNode.removeChild(old); }

for (var i = 0; i < targetSelectors.length; i++) {
    var node = null;
    try { node = document.querySelector(targetSelectors[i]); } catch (e) { node = null; }
    if (!node) { continue; }
    var box = document.createElement('div');
    box.id = isolatedId;
    box.style.cssText = 'position:fixed;top:0;left:0;width:100vw;min-height:100vh;' +
        'overflow:auto;background:#fff;z-index:2147483647;margin:0;padding:0;';
    box.appendChild(node.cloneNode(true));
    document.body.appendChild(box);
    return true;
}
return false;
"""

_ISOLATE_ONLY_JS = """
var isolatedId = arguments[0], styleId = arguments[1];
if (!document.getElementById(isolatedId)) { return false; }
if (!document.getElementById(styleId)) {
    var style = document.createElement('style');
    style.id = styleId;
    style.textContent = 'body > *:not(#' + isolatedId + ') { display: none !important; }\\n' +
        '#' + isolatedId + ' { position: static !important; }';
    (document.head || document.documentElement).appendChild(style);
}
return true;
"""


def prepare_page(
    driver: Any,
    locator: ElementLocator,
    extra_hidden: Sequence[str] = ()
) -> bool:
    """
    Hide chrome regions and isolate the notice content.

    Args:
        driver: AutomationDriver on the confirmation page
        locator: ElementLocator supplying chrome_regions / target_content selectors
        extra_hidden: Additional CSS selectors to hide

    Returns:
        True if a target node was cloned into the isolated container
    """
    chrome = locator.css_selectors("chrome_regions") + list(extra_hidden)
    targets = locator.css_selectors("target_content")
    isolated = bool(driver.execute_script(_PREPARE_JS, chrome, targets, ISOLATED_ID, STYLE_ID))
    logger.info(f"[PREP] Hid {len(chrome)} chrome selector(s); target isolated={isolated}")
    return isolated


def isolate_target_only(driver: Any) -> bool:
    """Hide every body child except the isolated container (content-area export)."""
    ok = bool(driver.execute_script(_ISOLATE_ONLY_JS, ISOLATED_ID, ISOLATE_STYLE_ID))
    logger.debug(f"[PREP] Isolate-only applied={ok}")
    return ok

