"""
Differential Analyzer Module
Compares two scans of one account: resource deltas, compliance deltas and a risk verdict.
"""

from .analyzer import (
    # Entry point
    compute_differential,
    coerce_scan,
    coerce_options,
)
from .resources import analyze_resource_changes
from .compliance import analyze_compliance_changes, index_by_rule
from .security import analyze_security_impact, risk_direction
from .recommendations import generate_recommendations, NO_SIGNIFICANT_CHANGES

__all__ = [
    'compute_differential',
    'coerce_scan',
    'coerce_options',
    'analyze_resource_changes',
    'analyze_compliance_changes',
    'index_by_rule',
    'analyze_security_impact',
    'risk_direction',
    'generate_recommendations',
    'NO_SIGNIFICANT_CHANGES',
]
