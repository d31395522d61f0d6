"""Browser operator: one page driven through a ``BrowserDriver``."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from robin.exceptions import ActionFailed
from robin.models.action import Action, ActionType, Screenshot
from robin.models.config import OperatorType
from robin.operators.base import BaseOperator, has_point, optional_number, require_str
from robin.operators.drivers import resolve_driver

logger = logging.getLogger(__name__)

DEFAULT_NAVIGATION_TIMEOUT_MS = 30_000
DEFAULT_WAIT_TIMEOUT_MS = 30_000
DEFAULT_SCROLL_AMOUNT = 500


class BrowserOperator(BaseOperator):
    """Automates a single browser page.

    Settings used (all optional): ``driver`` (instance), ``browser_driver``
    (registered name or import path), ``navigation_timeout_ms``, plus
    whatever the driver's ``launch`` consumes (``headless``, ``width``,
    ``height``, ``user_agent``, ``executable_path``).
    """

    operator_type = OperatorType.BROWSER
    capabilities = frozenset({
        ActionType.NAVIGATE,
        ActionType.CLICK,
        ActionType.TYPE,
        ActionType.KEY,
        ActionType.SCROLL,
        ActionType.SCREENSHOT,
        ActionType.WAIT,
    })

    def __init__(self, driver: Any | None = None) -> None:
        super().__init__(driver)
        self._last_url = ""

    async def _on_initialize(self, settings: dict[str, Any]) -> None:
        if self._driver is None:
            self._driver = resolve_driver(settings.get("driver") or settings.get("browser_driver"), "browser")
        await self._driver.launch(settings)

    async def _on_cleanup(self) -> None:
        if self._driver is not None:
            await self._driver.close()

    async def _on_capture(self) -> Screenshot:
        image = await self._driver.screenshot()
        width, height = self._driver.viewport()
        return Screenshot(width=width, height=height, image_data=image, format="png")

    async def _on_query_state(self) -> dict[str, Any]:
        url = await self._driver.current_url()
        if url:
            self._last_url = url
        return {"url": url or self._last_url, "title": await self._driver.title()}

    async def _on_execute(self, action: Action) -> dict[str, Any]:
        handler = {
            ActionType.NAVIGATE: self._navigate,
            ActionType.CLICK: self._click,
            ActionType.TYPE: self._type,
            ActionType.KEY: self._key,
            ActionType.SCROLL: self._scroll,
            ActionType.SCREENSHOT: self._screenshot,
            ActionType.WAIT: self._wait,
        }[action.type]
        return await handler(action)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _navigate(self, action: Action) -> dict[str, Any]:
        url = require_str(action, "url")
        timeout_ms = int(self._settings.get("navigation_timeout_ms") or DEFAULT_NAVIGATION_TIMEOUT_MS)
        try:
            final_url = await asyncio.wait_for(self._driver.goto(url, timeout_ms), timeout_ms / 1000)
        except TimeoutError as exc:
            raise TimeoutError(f"Navigation to {url} timed out after {timeout_ms}ms") from exc
        self._last_url = final_url or url
        logger.info("Navigation completed: %s", self._last_url)
        return {"url": self._last_url}

    async def _click(self, action: Action) -> dict[str, Any]:
        selector = action.parameters.get("selector")
        if selector:
            await self._driver.click(selector=selector)
            return {"selector": selector}
        if has_point(action):
            x, y = action.parameters["x"], action.parameters["y"]
            await self._driver.click(x=x, y=y)
            return {"x": x, "y": y}
        raise ActionFailed("Either selector or coordinates must be provided for click")

    async def _type(self, action: Action) -> dict[str, Any]:
        text = require_str(action, "text")
        selector = action.parameters.get("selector") or None
        await self._driver.type_text(text, selector=selector)
        return {"selector": selector, "length": len(text)}

    async def _key(self, action: Action) -> dict[str, Any]:
        key = require_str(action, "key")
        await self._driver.press_key(key)
        return {"key": key}

    async def _scroll(self, action: Action) -> dict[str, Any]:
        direction = action.parameters.get("direction") or "down"
        if direction not in ("up", "down"):
            raise ActionFailed(f"Invalid scroll direction {direction!r}")
        amount = int(optional_number(action, "amount") or DEFAULT_SCROLL_AMOUNT)
        await self._driver.scroll(direction, amount)
        return {"direction": direction, "amount": amount}

    async def _screenshot(self, action: Action) -> dict[str, Any]:
        shot = await self._on_capture()
        return {"screenshot": shot.metadata()}

    async def _wait(self, action: Action) -> dict[str, Any]:
        selector = action.parameters.get("selector")
        if selector:
            timeout_ms = int(optional_number(action, "timeout") or DEFAULT_WAIT_TIMEOUT_MS)
            await self._driver.wait_for_selector(selector, timeout_ms)
            return {"selector": selector}
        duration = optional_number(action, "duration")
        if duration is None:
            raise ActionFailed("Either selector or duration must be provided for wait")
        await asyncio.sleep(duration / 1000)
        return {"duration": duration}
