"""
Domain models for cost anti-pattern findings and their aggregates.
Defines detection rules, findings, cost summaries and the remediation roadmap.
"""
from typing import List, Dict, Any, Optional, Callable
from dataclasses import dataclass, field

from cloudsave.domain.infra_models import NormalizedInfra


# Severity rank used for ordering (lower sorts first)
SEVERITY_ORDER: Dict[str, int] = {
    "critical": 0,
    "high": 1,
    "medium": 2,
    "low": 3,
}

# Allowed finding categories (strict set)
ALLOWED_CATEGORIES = {
    "overprovisioned",
    "architectural",
    "missing-feature",
    "env-mismatch",
}


@dataclass(frozen=True)
class Finding:
    """A detected cost anti-pattern on one resource. Immutable once produced."""
    id: str
    service: str  # e.g., "Lambda", "RDS", "ECS"
    issue: str  # Short title
    description: str
    severity: str  # Must be a key of SEVERITY_ORDER
    category: str  # Must be one of ALLOWED_CATEGORIES
    current_config: str
    recommended_config: str
    current_cost: int  # Monthly USD
    optimized_cost: int  # Monthly USD after the fix
    saving: int  # Monthly USD saved
    saving_percent: float
    resource_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "id": self.id,
            "service": self.service,
            "issue": self.issue,
            "description": self.description,
            "severity": self.severity,
            "category": self.category,
            "current_config": self.current_config,
            "recommended_config": self.recommended_config,
            "current_cost": self.current_cost,
            "optimized_cost": self.optimized_cost,
            "saving": self.saving,
            "saving_percent": self.saving_percent,
        }
        if self.resource_name is not None:
            result["resource_name"] = self.resource_name
        return result


@dataclass(frozen=True)
class DetectionRule:
    """
    A registered anti-pattern rule: static metadata plus a pure check function.

    The check receives a NormalizedInfra and returns the findings it produces;
    it must not mutate the model.
    """
    id: str
    name: str
    service: str
    severity: str
    category: str
    estimated_monthly_saving: int
    description: str
    check: Callable[[NormalizedInfra], List[Finding]] = field(repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert rule metadata to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "service": self.service,
            "severity": self.severity,
            "category": self.category,
            "estimated_monthly_saving": self.estimated_monthly_saving,
            "description": self.description,
        }


@dataclass
class CostBreakdown:
    """Cost comparison for a single AWS service."""
    service: str
    current_monthly_cost: int
    optimized_monthly_cost: int
    monthly_saving: int
    annual_saving: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "service": self.service,
            "current_monthly_cost": self.current_monthly_cost,
            "optimized_monthly_cost": self.optimized_monthly_cost,
            "monthly_saving": self.monthly_saving,
            "annual_saving": self.annual_saving,
        }


@dataclass
class CostSummary:
    """Aggregated cost summary across all services."""
    total_current_cost: int
    total_optimized_cost: int
    total_monthly_saving: int
    total_annual_saving: int
    saving_percent: float
    breakdown: List[CostBreakdown]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_current_cost": self.total_current_cost,
            "total_optimized_cost": self.total_optimized_cost,
            "total_monthly_saving": self.total_monthly_saving,
            "total_annual_saving": self.total_annual_saving,
            "saving_percent": self.saving_percent,
            "breakdown": [row.to_dict() for row in self.breakdown],
        }


@dataclass
class RemediationRoadmap:
    """Findings grouped by implementation effort."""
    quick_wins: List[Finding] = field(default_factory=list)
    medium_effort: List[Finding] = field(default_factory=list)
    needs_planning: List[Finding] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "quick_wins": [finding.to_dict() for finding in self.quick_wins],
            "medium_effort": [finding.to_dict() for finding in self.medium_effort],
            "needs_planning": [finding.to_dict() for finding in self.needs_planning],
        }
