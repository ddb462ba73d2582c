"""
Optimization Module

Rule-based cost optimization:
- rules: declarative rule catalog and evaluation
- OptimizationService: suggestion generation and lifecycle
- ResourceInventoryFactory: configured inventory backend
"""

from .domain.factory import ResourceInventoryFactory
from .domain.rules import RULE_CATALOG, evaluate_resource, register_rule
from .domain.service import OptimizationService

__all__ = ["ResourceInventoryFactory", "RULE_CATALOG", "evaluate_resource", "register_rule", "OptimizationService"]
