"""Optimizer and start-time predictor adapter."""

from .client import OptimizerClient
from .parser import parse_route_plan, parse_start_time_prediction

__all__ = ["OptimizerClient", "parse_route_plan", "parse_start_time_prediction"]
