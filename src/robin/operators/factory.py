"""Build an operator from ``OperatorConfig``."""

from __future__ import annotations

import logging

from robin.exceptions import InitializationError
from robin.models.config import OperatorConfig, OperatorType
from robin.operators.base import Operator
from robin.operators.browser import BrowserOperator
from robin.operators.desktop import DesktopOperator
from robin.operators.hybrid import HybridOperator

logger = logging.getLogger(__name__)

_OPERATORS: dict[OperatorType, type[Operator]] = {
    OperatorType.BROWSER: BrowserOperator,
    OperatorType.DESKTOP: DesktopOperator,
    OperatorType.HYBRID: HybridOperator,
}


def create_operator(config: OperatorConfig) -> Operator:
    """Return an uninitialised operator for ``config.type``.

    Raises:
        InitializationError: If the operator type is unknown.
    """
    try:
        operator_type = OperatorType(config.type)
    except ValueError as exc:
        raise InitializationError(f"Unsupported operator type: {config.type!r}") from exc

    cls = _OPERATORS.get(operator_type)
    if cls is None:
        raise InitializationError(f"Unsupported operator type: {operator_type.value!r}")
    logger.debug("Creating %s operator", operator_type.value)
    return cls()
