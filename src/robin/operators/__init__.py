"""Operators: execute actions against a browser or desktop surface.

Concrete automation backends plug in through ``robin.operators.drivers``.
"""

from robin.operators.base import BaseOperator, Operator
from robin.operators.browser import BrowserOperator
from robin.operators.desktop import DesktopOperator
from robin.operators.drivers import BrowserDriver, DesktopDriver, register_driver
from robin.operators.factory import create_operator
from robin.operators.hybrid import HybridOperator

__all__ = [
    "BaseOperator",
    "BrowserDriver",
    "BrowserOperator",
    "DesktopDriver",
    "DesktopOperator",
    "HybridOperator",
    "Operator",
    "create_operator",
    "register_driver",
]
