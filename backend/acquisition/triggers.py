"""
Trigger Strategies: Fire-and-Forget Actions That Make the Browser Save

Triggers never return bytes. Clicking a download link, pressing Ctrl+S or
calling a page's export function makes the browser write a file (picked up
later by the filesystem scan) or open a window (swept by the orchestrator,
which records its URL for direct fetch).

All triggers are rows in DEFAULT_TRIGGERS, interpreted by TriggerStrategy.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Tuple
import logging
import sys

from .errors import StrategyFailure
from .strategies import StrategyContext

logger = logging.getLogger(__name__)

PRIMARY_MODIFIER = "COMMAND" if sys.platform == "darwin" else "CONTROL"

# Page-defined (non-native) zero-argument globals that look like exporters
_FIND_EXPORT_FUNCTIONS_JS = """
var pattern = /download|export|print|save|pdf/i, found = [];
for (var name in window) {
    try {
        var fn = window[name];
        if (typeof fn !== 'function' || fn.length !== 0 || !pattern.test(name)) { continue; }
        if (Function.prototype.toString.call(fn).indexOf('[native code]') !== -1) { continue; }
        found.push(name);
    } catch (e) { /* cross-origin or throwing getters */ }
}
return found;
"""

_CALL_GLOBAL_JS = """
try { window[arguments[0]](); return true; } catch (e) { return false; }
"""

MAX_EXPORT_FUNCTIONS = 5


class TriggerKind(str, Enum):
    CLICK = "click"
    SHORTCUT = "shortcut"
    CONTEXT_SAVE = "context_save"
    SCRIPT_EXPORT = "script_export"


@dataclass(frozen=True)
class TriggerSpec:
    """
    One declarative trigger.

    Attributes:
        name: Identifier used in the attempt log
        trigger_kind: How the trigger acts on the page
        target_locators: Logical element names (locator table keys), tried in order
        keys: Key chord for shortcuts, or the menu accelerator after a context click
    """
    name: str
    trigger_kind: TriggerKind
    target_locators: Tuple[str, ...] = ()
    keys: Tuple[str, ...] = ()


DEFAULT_TRIGGERS: Tuple[TriggerSpec, ...] = (
    TriggerSpec("click_notice_link", TriggerKind.CLICK, ("notice_link",)),
    TriggerSpec("click_download_button", TriggerKind.CLICK, ("download_button",)),
    TriggerSpec("click_print_button", TriggerKind.CLICK, ("print_button",)),
    TriggerSpec("save_shortcut", TriggerKind.SHORTCUT, keys=(PRIMARY_MODIFIER, "s")),
    TriggerSpec("print_shortcut", TriggerKind.SHORTCUT, keys=(PRIMARY_MODIFIER, "p")),
    # "Save link as..." carries the K accelerator in Chromium's link menu
    TriggerSpec("context_save_notice_link", TriggerKind.CONTEXT_SAVE, ("notice_link",), keys=("k",)),
    TriggerSpec("script_export", TriggerKind.SCRIPT_EXPORT),
)


class TriggerStrategy:
    """Executes one TriggerSpec against the page."""

    def __init__(self, spec: TriggerSpec):
        self.spec = spec
        self.strategy_id = f"trigger_{spec.name}"

    def _first_element(self, ctx: StrategyContext) -> Any:
        for name in self.spec.target_locators:
            elements = ctx.locator.locate(name)
            if elements:
                return elements[0]
        raise StrategyFailure(
            f"No element for {list(self.spec.target_locators)}",
            strategy_id=self.strategy_id,
        )

    def fire(self, ctx: StrategyContext) -> None:
        """
        Perform the trigger.

        Raises:
            StrategyFailure: If the trigger had nothing to act on
        """
        kind = self.spec.trigger_kind
        driver = ctx.driver

        if kind is TriggerKind.CLICK:
            driver.click(self._first_element(ctx))

        elif kind is TriggerKind.SHORTCUT:
            if not self.spec.keys:
                raise StrategyFailure("Shortcut trigger without keys", strategy_id=self.strategy_id)
            driver.send_shortcut(self.spec.keys)

        elif kind is TriggerKind.CONTEXT_SAVE:
            driver.context_click(self._first_element(ctx))
            if self.spec.keys:
                driver.send_shortcut(self.spec.keys)

        elif kind is TriggerKind.SCRIPT_EXPORT:
            names: List[str] = list(driver.execute_script(_FIND_EXPORT_FUNCTIONS_JS) or [])
            if not names:
                raise StrategyFailure("No page export functions found", strategy_id=self.strategy_id)
            called = [n for n in names[:MAX_EXPORT_FUNCTIONS] if driver.execute_script(_CALL_GLOBAL_JS, n)]
            logger.info(f"[TRIGGER] Export functions found={names} called={called}")

        else:
            raise StrategyFailure(f"Unknown trigger kind: {kind}", strategy_id=self.strategy_id)

        logger.info(f"[TRIGGER] Fired {self.spec.name}")

    def __repr__(self) -> str:
        return f"TriggerStrategy(id='{self.strategy_id}', kind={self.spec.trigger_kind.value})"


def default_triggers() -> List[TriggerStrategy]:
    return [TriggerStrategy(spec) for spec in DEFAULT_TRIGGERS]
