"""Planner contract."""

from __future__ import annotations

import abc
from collections.abc import Sequence

from robin.models.action import ActionResult, Screenshot
from robin.models.analysis import Analysis


class Planner(abc.ABC):
    """Maps (screenshot, instruction, history) to the next ``Analysis``.

    ``analyze_screenshot`` always returns a well-formed ``Analysis``, even
    for ambiguous input or an unparseable model reply.  It raises
    ``PlannerError`` only for transport or authorization faults.
    """

    @abc.abstractmethod
    async def analyze_screenshot(
        self,
        screenshot: Screenshot,
        instruction: str,
        iteration: int,
        prior_results: Sequence[ActionResult],
    ) -> Analysis:
        ...

    async def cleanup(self) -> None:
        """Release backend resources. Safe to call more than once."""
