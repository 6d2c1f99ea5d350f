"""Fixed recommendation table for differential results."""

from typing import Callable, List, Tuple

from ..models import ComplianceChanges, ResourceChanges, RiskDirection, SecurityImpact

NO_SIGNIFICANT_CHANGES = "No significant changes were detected. Continue regular monitoring."

Rule = Callable[[ResourceChanges, ComplianceChanges, SecurityImpact], bool]

# Evaluated in order; every matching rule contributes its text
RECOMMENDATION_RULES: List[Tuple[Rule, str]] = [
    (lambda r, c, s: r.added > 10,
     "Many resources were added. Verify tagging and cost monitoring for the new resources."),
    (lambda r, c, s: r.removed > 5,
     "Several resources were removed. Review backup and data retention policies."),
    (lambda r, c, s: c.new_violations > 0,
     "New compliance violations were detected. A review by the security team is recommended."),
    (lambda r, c, s: c.resolved_violations > c.new_violations,
     "Compliance posture is improving. Keep continuous monitoring in place."),
    (lambda r, c, s: s.risk_level == RiskDirection.INCREASED,
     "Security risk has increased. Urgent remediation may be required."),
    (lambda r, c, s: s.critical_changes > 0,
     "New critical security issues were detected. Immediate action is required."),
]


def generate_recommendations(resources: ResourceChanges, compliance: ComplianceChanges,
                             security: SecurityImpact) -> List[str]:
    recommendations = [text for rule, text in RECOMMENDATION_RULES if rule(resources, compliance, security)]
    return recommendations or [NO_SIGNIFICANT_CHANGES]
