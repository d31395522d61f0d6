"""Desktop operator: OS-level input and screen capture through a ``DesktopDriver``."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from robin.exceptions import ActionFailed
from robin.models.action import Action, ActionType, Screenshot
from robin.models.config import OperatorType
from robin.operators.base import BaseOperator, optional_number, require_str
from robin.operators.drivers import resolve_driver

logger = logging.getLogger(__name__)

DEFAULT_SCROLL_AMOUNT = 3
DEFAULT_WAIT_MS = 1000

_CLICK_STYLE: dict[ActionType, tuple[str, int]] = {
    ActionType.CLICK: ("left", 1),
    ActionType.DOUBLE_CLICK: ("left", 2),
    ActionType.RIGHT_CLICK: ("right", 1),
}


def parse_key_combo(combo: str) -> list[str]:
    """Split ``"ctrl+shift+t"`` into ``["ctrl", "shift", "t"]``.

    A lone ``"+"`` is the plus key itself.
    """
    combo = combo.strip()
    if combo == "+":
        return ["+"]
    keys = [part.strip().lower() for part in combo.split("+")]
    if any(not k for k in keys):
        raise ActionFailed(f"Invalid key combination {combo!r}")
    return keys


class DesktopOperator(BaseOperator):
    """Automates the whole screen with coordinate-based input.

    Every coordinate is validated against the screen bounds before it
    reaches the driver.
    """

    operator_type = OperatorType.DESKTOP
    capabilities = frozenset({
        ActionType.CLICK,
        ActionType.DOUBLE_CLICK,
        ActionType.RIGHT_CLICK,
        ActionType.DRAG,
        ActionType.TYPE,
        ActionType.KEY,
        ActionType.SCROLL,
        ActionType.WAIT,
        ActionType.SCREENSHOT,
    })

    async def _on_initialize(self, settings: dict[str, Any]) -> None:
        if self._driver is None:
            self._driver = resolve_driver(settings.get("driver") or settings.get("desktop_driver"), "desktop")
        await self._driver.start(settings)

    async def _on_cleanup(self) -> None:
        if self._driver is not None:
            await self._driver.close()

    async def _on_capture(self) -> Screenshot:
        image = await self._driver.screenshot()
        width, height = self._driver.screen_size()
        return Screenshot(width=width, height=height, image_data=image, format="png")

    async def _on_query_state(self) -> dict[str, Any]:
        width, height = self._driver.screen_size()
        return {"screen": {"width": width, "height": height}, "window": await self._driver.active_window()}

    async def _on_execute(self, action: Action) -> dict[str, Any]:
        if action.type in _CLICK_STYLE:
            return await self._click(action)
        handler = {
            ActionType.DRAG: self._drag,
            ActionType.TYPE: self._type,
            ActionType.KEY: self._key,
            ActionType.SCROLL: self._scroll,
            ActionType.WAIT: self._wait,
            ActionType.SCREENSHOT: self._screenshot,
        }[action.type]
        return await handler(action)

    # ------------------------------------------------------------------
    # Coordinates
    # ------------------------------------------------------------------

    def _point(self, params: dict[str, Any], x_key: str = "x", y_key: str = "y") -> tuple[int, int]:
        x, y = params.get(x_key), params.get(y_key)
        for name, value in ((x_key, x), (y_key, y)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ActionFailed(f"Parameter '{name}' must be a number, got {value!r}")
        width, height = self._driver.screen_size()
        if not (0 <= x < width and 0 <= y < height):
            raise ActionFailed(f"Point ({x}, {y}) is outside the screen bounds {width}x{height}")
        return int(x), int(y)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _click(self, action: Action) -> dict[str, Any]:
        x, y = self._point(action.parameters)
        button, clicks = _CLICK_STYLE[action.type]
        await self._driver.click(x, y, button=button, clicks=clicks)
        return {"x": x, "y": y, "button": button, "clicks": clicks}

    async def _drag(self, action: Action) -> dict[str, Any]:
        params = action.parameters
        if isinstance(params.get("from"), dict) and isinstance(params.get("to"), dict):
            from_x, from_y = self._point(params["from"])
            to_x, to_y = self._point(params["to"])
        else:
            from_x, from_y = self._point(params, "from_x", "from_y")
            to_x, to_y = self._point(params, "to_x", "to_y")
        await self._driver.drag(from_x, from_y, to_x, to_y)
        return {"from": {"x": from_x, "y": from_y}, "to": {"x": to_x, "y": to_y}}

    async def _type(self, action: Action) -> dict[str, Any]:
        text = require_str(action, "text")
        await self._driver.type_text(text)
        return {"length": len(text)}

    async def _key(self, action: Action) -> dict[str, Any]:
        keys = parse_key_combo(require_str(action, "key"))
        modifiers = action.parameters.get("modifiers") or []
        if not isinstance(modifiers, list):
            raise ActionFailed("Parameter 'modifiers' must be a list")
        keys = [str(m).lower() for m in modifiers] + keys
        await self._driver.hotkey(*keys)
        return {"keys": keys}

    async def _scroll(self, action: Action) -> dict[str, Any]:
        direction = action.parameters.get("direction") or "down"
        if direction not in ("up", "down"):
            raise ActionFailed(f"Invalid scroll direction {direction!r}")
        amount = int(optional_number(action, "amount") or DEFAULT_SCROLL_AMOUNT)
        signed = amount if direction == "up" else -amount
        if "x" in action.parameters or "y" in action.parameters:
            x, y = self._point(action.parameters)
            await self._driver.scroll(signed, x=x, y=y)
        else:
            await self._driver.scroll(signed)
        return {"direction": direction, "amount": amount}

    async def _wait(self, action: Action) -> dict[str, Any]:
        duration = optional_number(action, "duration")
        duration = DEFAULT_WAIT_MS if duration is None else duration
        await asyncio.sleep(duration / 1000)
        return {"duration": duration}

    async def _screenshot(self, action: Action) -> dict[str, Any]:
        shot = await self._on_capture()
        return {"screenshot": shot.metadata()}
