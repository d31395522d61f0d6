"""Hybrid operator: a browser and a desktop operator behind one surface.

The active mode starts from keyword scoring of the instruction and then
follows each action: anything with a URL or a selector goes to the
browser, bare ``x``/``y`` coordinates go to the desktop, everything else
stays in the current mode.
"""

from __future__ import annotations

import logging
from typing import Any

from robin.exceptions import InitializationError
from robin.models.action import Action, ActionResult, ActionType, Screenshot
from robin.models.config import OperatorType
from robin.operators.base import Operator, has_point
from robin.operators.browser import BrowserOperator
from robin.operators.desktop import DesktopOperator

logger = logging.getLogger(__name__)

BROWSER_MODE = "browser"
DESKTOP_MODE = "desktop"

WEB_KEYWORDS = ("website", "browser", "url", "http", "www", "search online", "web page", "navigate to")
DESKTOP_KEYWORDS = ("file", "folder", "desktop", "application", "window", "system")


def determine_initial_mode(instruction: str) -> str:
    """Pick the starting mode: browser only when web keywords outscore desktop ones."""
    text = instruction.lower()
    web_score = sum(1 for keyword in WEB_KEYWORDS if keyword in text)
    desktop_score = sum(1 for keyword in DESKTOP_KEYWORDS if keyword in text)
    return BROWSER_MODE if web_score > desktop_score else DESKTOP_MODE


def determine_mode_for_action(action: Action, current_mode: str) -> str:
    if action.type == ActionType.NAVIGATE:
        return BROWSER_MODE
    if action.parameters.get("selector") or action.parameters.get("url"):
        return BROWSER_MODE
    if has_point(action):
        return DESKTOP_MODE
    return current_mode


class HybridOperator(Operator):
    """Routes each action to the browser or the desktop surface."""

    operator_type = OperatorType.HYBRID
    capabilities = BrowserOperator.capabilities | DesktopOperator.capabilities

    def __init__(
        self,
        browser: BrowserOperator | None = None,
        desktop: DesktopOperator | None = None,
    ) -> None:
        self.browser = browser or BrowserOperator()
        self.desktop = desktop or DesktopOperator()
        self._mode = DESKTOP_MODE

    @property
    def is_initialized(self) -> bool:
        return self.browser.is_initialized and self.desktop.is_initialized

    @property
    def mode(self) -> str:
        return self._mode

    def switch_mode(self, mode: str) -> None:
        if mode not in (BROWSER_MODE, DESKTOP_MODE):
            raise ValueError(f"Unknown mode {mode!r}")
        if mode != self._mode:
            logger.info("Switching mode %s -> %s", self._mode, mode)
        self._mode = mode

    def _active(self) -> BrowserOperator | DesktopOperator:
        return self.browser if self._mode == BROWSER_MODE else self.desktop

    async def initialize(self, settings: dict[str, Any] | None = None) -> None:
        settings = dict(settings or {})
        try:
            await self.desktop.initialize(settings)
            await self.browser.initialize(settings)
        except InitializationError:
            await self.cleanup()
            raise
        logger.info("Hybrid operator initialized")

    async def prepare(self, instruction: str) -> None:
        self._mode = determine_initial_mode(instruction)
        logger.info("Initial mode for instruction: %s", self._mode)

    async def capture(self) -> Screenshot:
        return await self._active().capture()

    async def execute(self, action: Action) -> ActionResult:
        previous = self._mode
        target = determine_mode_for_action(action, previous)
        operator = self.browser if target == BROWSER_MODE else self.desktop
        if not operator.supports(action.type):
            other = self.desktop if operator is self.browser else self.browser
            if other.supports(action.type):
                operator = other
                target = BROWSER_MODE if other is self.browser else DESKTOP_MODE
        self.switch_mode(target)

        result = await operator.execute(action)
        extra: dict[str, Any] = {"mode": target}
        if target != previous:
            extra["mode_switch"] = {"from": previous, "to": target}
        return result.with_data(**extra)

    async def query_state(self) -> dict[str, Any]:
        state = await self._active().query_state()
        return {"mode": self._mode, **state}

    async def cleanup(self) -> None:
        await self.browser.cleanup()
        await self.desktop.cleanup()
