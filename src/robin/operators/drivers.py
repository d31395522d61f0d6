"""Driver protocols: the seam between operators and a concrete automation backend.

An operator never talks to Playwright, Puppeteer, pyautogui, or an OS input
API directly.  It drives one of these protocols, and the host supplies an
implementation.  Drivers are named in operator settings
(``browser_driver`` / ``desktop_driver``) by registered name or by
``module:attr`` import path, or passed in directly as ``driver``.

Driver conventions:

* Raise ``robin.exceptions.ActionFailed`` for expected failures (element not
  found, target not clickable).  The operator reports them as failed results.
* Raise ``TimeoutError`` when a wait or navigation exceeds its budget.
* Anything else is treated as a crashed or disconnected backend.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from robin.exceptions import InitializationError

logger = logging.getLogger(__name__)


@runtime_checkable
class BrowserDriver(Protocol):
    """A single browser page."""

    async def launch(self, settings: dict[str, Any]) -> None:
        """Start or attach to the browser and open a page."""
        ...

    async def goto(self, url: str, timeout_ms: int) -> str:
        """Navigate and return the final URL after redirects."""
        ...

    async def click(self, *, selector: str | None = None, x: float | None = None, y: float | None = None) -> None:
        ...

    async def type_text(self, text: str, *, selector: str | None = None) -> None:
        ...

    async def press_key(self, key: str) -> None:
        ...

    async def scroll(self, direction: str, amount: int) -> None:
        ...

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        ...

    async def screenshot(self) -> bytes:
        """PNG bytes of the current viewport."""
        ...

    def viewport(self) -> tuple[int, int]:
        ...

    async def current_url(self) -> str:
        ...

    async def title(self) -> str:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class DesktopDriver(Protocol):
    """OS-level screen capture and input injection."""

    async def start(self, settings: dict[str, Any]) -> None:
        """Check permissions and connect to the display."""
        ...

    def screen_size(self) -> tuple[int, int]:
        ...

    async def click(self, x: int, y: int, *, button: str = "left", clicks: int = 1) -> None:
        ...

    async def drag(self, from_x: int, from_y: int, to_x: int, to_y: int) -> None:
        ...

    async def type_text(self, text: str) -> None:
        ...

    async def hotkey(self, *keys: str) -> None:
        """Press *keys* together (``hotkey("ctrl", "c")``)."""
        ...

    async def scroll(self, amount: int, *, x: int | None = None, y: int | None = None) -> None:
        """Scroll by *amount* notches; negative scrolls down."""
        ...

    async def screenshot(self) -> bytes:
        ...

    async def active_window(self) -> str:
        ...

    async def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

DriverFactory = Callable[[], Any]

_DRIVERS: dict[str, DriverFactory] = {}


def register_driver(name: str, factory: DriverFactory) -> None:
    """Register a zero-argument driver factory under *name*."""
    _DRIVERS[name] = factory
    logger.debug("Registered driver %s", name)


def unregister_driver(name: str) -> None:
    _DRIVERS.pop(name, None)


def registered_drivers() -> list[str]:
    return sorted(_DRIVERS)


def resolve_driver(ref: Any, kind: str) -> Any:
    """Turn a driver reference from operator settings into a driver instance.

    *ref* may be an instance, a class or zero-argument factory, a registered
    name, or a ``module:attr`` import path.

    Raises:
        InitializationError: If *ref* is empty or cannot be resolved.
    """
    if ref is None or ref == "":
        raise InitializationError(
            f"No {kind} driver configured (set operator.{kind}_driver)",
            details={"kind": kind},
        )

    obj = ref
    if isinstance(ref, str):
        if ref in _DRIVERS:
            obj = _DRIVERS[ref]
        else:
            from robin.plugins import load_object

            obj = load_object(ref)

    if isinstance(obj, type) or (callable(obj) and not hasattr(obj, "screenshot")):
        try:
            obj = obj()
        except Exception as exc:
            raise InitializationError(f"Cannot construct {kind} driver {ref!r}: {exc}") from exc
    return obj
