from .enforcer import ScopeEnforcer
from .models import ScopeRule, ScopeRuleKind, parse_rules

__all__ = ["ScopeEnforcer", "ScopeRule", "ScopeRuleKind", "parse_rules"]
