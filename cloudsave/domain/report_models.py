"""
Domain models for analysis reports and parse results.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass
from datetime import datetime

from cloudsave.domain.infra_models import NormalizedInfra
from cloudsave.domain.finding_models import Finding, CostSummary, RemediationRoadmap


# Parse statuses
PARSE_STATUS_PARSED = "parsed"
PARSE_STATUS_EMPTY = "empty"
PARSE_STATUS_UNPARSEABLE = "unparseable"


@dataclass
class ParseResult:
    """Outcome of turning one submitted file into a NormalizedInfra."""
    status: str  # "parsed" | "empty" | "unparseable"
    file_type: str  # cdk | terraform | cloudformation | ecs-task | zip | image | unknown
    infra: Optional[NormalizedInfra] = None  # None when unparseable

    @property
    def is_parsed(self) -> bool:
        return self.infra is not None


@dataclass
class AnalysisReport:
    """Complete analysis report for one submitted file. Assembled per request, never stored."""
    id: str
    created_at: datetime
    input_file_name: str
    input_file_type: str
    parse_status: str
    infra: NormalizedInfra
    issues: List[Finding]
    cost_summary: CostSummary
    roadmap: RemediationRoadmap
    pricing_version: str
    region: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "input_file_name": self.input_file_name,
            "input_file_type": self.input_file_type,
            "parse_status": self.parse_status,
            "infra": self.infra.to_dict(),
            "detected_services": self.infra.detected_services(),
            "issues": [issue.to_dict() for issue in self.issues],
            "cost_summary": self.cost_summary.to_dict(),
            "roadmap": self.roadmap.to_dict(),
            "pricing_version": self.pricing_version,
            "region": self.region,
        }
