"""Operator contract and the shared template behind the concrete variants.

An operator turns one ``Action`` into an effect on a surface and can capture
that surface.  The contract the engine relies on:

* ``execute`` never raises for expected automation failures.  Unsupported
  action types, bad parameters, ``ActionFailed`` and ``TimeoutError`` all
  become ``success=False`` results.
* Anything else a driver raises is an operator-level fault and surfaces as
  ``OperatorError``.
* ``query_state`` is best-effort and never raises.
* ``cleanup`` is idempotent and safe after a failed ``initialize``.
"""

from __future__ import annotations

import abc
import logging
from typing import Any

from robin.exceptions import ActionFailed, InitializationError, OperatorError
from robin.models.action import Action, ActionResult, ActionType, Screenshot
from robin.models.config import OperatorType

logger = logging.getLogger(__name__)


class Operator(abc.ABC):
    """Abstract automation surface."""

    operator_type: OperatorType
    capabilities: frozenset[ActionType] = frozenset()

    @property
    @abc.abstractmethod
    def is_initialized(self) -> bool:
        ...

    @abc.abstractmethod
    async def initialize(self, settings: dict[str, Any] | None = None) -> None:
        """Launch or attach to the surface.

        Raises:
            InitializationError: If the surface is unreachable.
        """

    async def prepare(self, instruction: str) -> None:
        """Hook called once per run before the first capture."""

    @abc.abstractmethod
    async def capture(self) -> Screenshot:
        ...

    @abc.abstractmethod
    async def execute(self, action: Action) -> ActionResult:
        ...

    @abc.abstractmethod
    async def query_state(self) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def cleanup(self) -> None:
        ...

    def supports(self, action_type: ActionType) -> bool:
        return action_type in self.capabilities


class BaseOperator(Operator):
    """Template for single-driver operators.

    Subclasses implement the ``_on_*`` hooks; this class supplies the
    initialisation guard, capability check, and failure conversion.
    """

    def __init__(self, driver: Any | None = None) -> None:
        self._driver = driver
        self._settings: dict[str, Any] = {}
        self._initialized = False
        self._needs_cleanup = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def driver(self) -> Any:
        return self._driver

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, settings: dict[str, Any] | None = None) -> None:
        if self._initialized:
            raise OperatorError(f"{type(self).__name__} is already initialized")

        self._settings = dict(settings or {})
        self._needs_cleanup = True
        try:
            await self._on_initialize(self._settings)
        except Exception as exc:
            logger.error("%s failed to initialize: %s", type(self).__name__, exc)
            await self.cleanup()
            if isinstance(exc, InitializationError):
                raise
            raise InitializationError(
                f"Failed to initialize {self.operator_type.value} operator: {exc}"
            ) from exc

        self._initialized = True
        logger.info("%s initialized", type(self).__name__)

    async def cleanup(self) -> None:
        if not self._needs_cleanup:
            return
        self._needs_cleanup = False
        self._initialized = False
        try:
            await self._on_cleanup()
        except Exception as exc:
            logger.warning("Error during %s cleanup: %s", type(self).__name__, exc)
        logger.info("%s cleaned up", type(self).__name__)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def execute(self, action: Action) -> ActionResult:
        self._require_initialized()

        if not self.supports(action.type):
            return self._failed(
                action, f"Action type '{action.type.value}' is not supported by the {self.operator_type.value} operator"
            )

        try:
            data = await self._on_execute(action)
        except OperatorError:
            raise
        except ActionFailed as exc:
            logger.info("Action %s failed: %s", action.type.value, exc)
            return self._failed(action, str(exc))
        except TimeoutError as exc:
            logger.info("Action %s timed out", action.type.value)
            return self._failed(action, str(exc) or f"{action.type.value} timed out")
        except Exception as exc:
            raise OperatorError(
                f"{self.operator_type.value} driver fault during {action.type.value}: {exc}",
                details={"action_id": action.id},
            ) from exc

        return ActionResult(id=action.id, success=True, data=data or {})

    async def capture(self) -> Screenshot:
        self._require_initialized()
        try:
            return await self._on_capture()
        except OperatorError:
            raise
        except Exception as exc:
            raise OperatorError(f"Failed to capture screenshot: {exc}") from exc

    async def query_state(self) -> dict[str, Any]:
        if not self._initialized:
            return {}
        try:
            return await self._on_query_state()
        except Exception as exc:
            logger.debug("query_state failed on %s: %s", type(self).__name__, exc)
            return {}

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def _on_initialize(self, settings: dict[str, Any]) -> None:
        ...

    @abc.abstractmethod
    async def _on_execute(self, action: Action) -> dict[str, Any]:
        """Perform *action* and return result data."""

    @abc.abstractmethod
    async def _on_capture(self) -> Screenshot:
        ...

    @abc.abstractmethod
    async def _on_query_state(self) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def _on_cleanup(self) -> None:
        ...

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise OperatorError(f"{type(self).__name__} is not initialized")

    @staticmethod
    def _failed(action: Action, error: str) -> ActionResult:
        return ActionResult(id=action.id, success=False, error=error)


def require_str(action: Action, name: str) -> str:
    """Return a non-empty string parameter or raise ``ActionFailed``."""
    value = action.parameters.get(name)
    if not isinstance(value, str) or not value:
        raise ActionFailed(f"Missing or invalid '{name}' for {action.type.value}")
    return value


def optional_number(action: Action, name: str) -> float | None:
    value = action.parameters.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ActionFailed(f"Parameter '{name}' must be a number, got {value!r}")
    return value


def has_point(action: Action) -> bool:
    """True when the action carries numeric ``x`` and ``y``."""
    x, y = action.parameters.get("x"), action.parameters.get("y")
    return all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (x, y))
