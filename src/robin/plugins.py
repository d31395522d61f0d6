"""Import-path loading for host-supplied drivers and LLM backends."""

from __future__ import annotations

import importlib
import logging
from typing import Any

from robin.exceptions import InitializationError

logger = logging.getLogger(__name__)


def load_object(path: str) -> Any:
    """Resolve ``"package.module:attr"`` (or ``"package.module.attr"``) to an object.

    Raises:
        InitializationError: If the module cannot be imported or the
            attribute does not exist.
    """
    if ":" in path:
        module_name, _, attr_path = path.partition(":")
    else:
        module_name, _, attr_path = path.rpartition(".")
    if not module_name or not attr_path:
        raise InitializationError(f"Invalid import path: {path!r} (expected 'module:attr')")

    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as exc:
        raise InitializationError(f"Cannot import module {module_name!r}: {exc}") from exc

    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            raise InitializationError(f"{module_name!r} has no attribute {attr_path!r}") from exc

    logger.debug("Loaded %s", path)
    return obj


def import_plugins(modules: list[str]) -> None:
    """Import each module for its registration side effects."""
    for name in modules:
        try:
            importlib.import_module(name)
        except ImportError as exc:
            raise InitializationError(f"Cannot import plugin {name!r}: {exc}") from exc
        logger.info("Loaded plugin module %s", name)
