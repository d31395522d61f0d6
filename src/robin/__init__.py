"""Robin: vision-model driven UI automation with a bounded execution engine."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("robin-agent")
except PackageNotFoundError:
    __version__ = "0.0.0"
