"""Charges-and-taxes rule evaluation for the marketplace checkout."""

from .charge_rules import EvaluationRequest, EvaluationResult, evaluate, evaluate_charges

__all__ = ["EvaluationRequest", "EvaluationResult", "evaluate", "evaluate_charges"]
