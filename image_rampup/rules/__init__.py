"""Ramp rule evaluation for excluding flows from a rollout."""

from .evaluator import NoRampRules, RampRuleEvaluator, RuleEvaluator

__all__ = ["NoRampRules", "RampRuleEvaluator", "RuleEvaluator"]
