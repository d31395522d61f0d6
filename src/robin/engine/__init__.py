"""The execution engine and its stopping heuristic."""

from robin.engine.engine import ExecutionEngine, extract_url
from robin.engine.heuristics import HeuristicDecision, evaluate

__all__ = ["ExecutionEngine", "HeuristicDecision", "evaluate", "extract_url"]
