"""Planners: turn a screenshot and instruction into the next ``Analysis``."""

from robin.planner.base import Planner
from robin.planner.factory import PlannerCapabilities, create_planner
from robin.planner.vision import VisionPlanner

__all__ = ["Planner", "PlannerCapabilities", "VisionPlanner", "create_planner"]
