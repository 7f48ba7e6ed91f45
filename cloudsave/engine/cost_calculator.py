"""
Cost calculator.
Aggregates findings into per-service cost breakdowns, totals and a remediation roadmap.
"""
from typing import Dict, List

from cloudsave.domain.finding_models import Finding, CostBreakdown, CostSummary, RemediationRoadmap
from cloudsave.engine.rules import round_half_up, saving_percent


MONTHS_PER_YEAR = 12

# Services whose overprovisioning is fixed by a resize rather than a redesign
RESIZABLE_SERVICES = {"Lambda", "RDS", "ECS"}


def calculate_cost_summary(findings: List[Finding]) -> CostSummary:
    """
    Aggregate findings into a cost summary.

    Findings are grouped by their exact service string. Each group's costs are
    summed and rounded once; totals are the sums of the breakdown rows, so the
    per-service savings always add up to the total saving.

    Args:
        findings: Findings from the anti-pattern engine

    Returns:
        CostSummary with the breakdown sorted by monthly saving descending
    """
    by_service: Dict[str, List[Finding]] = {}
    for finding in findings:
        by_service.setdefault(finding.service, []).append(finding)

    breakdown = []
    for service, service_findings in by_service.items():
        current = round_half_up(sum(f.current_cost for f in service_findings))
        optimized = round_half_up(sum(f.optimized_cost for f in service_findings))
        monthly_saving = current - optimized
        breakdown.append(
            CostBreakdown(
                service=service,
                current_monthly_cost=current,
                optimized_monthly_cost=optimized,
                monthly_saving=monthly_saving,
                annual_saving=monthly_saving * MONTHS_PER_YEAR,
            )
        )

    breakdown.sort(key=lambda row: row.monthly_saving, reverse=True)

    total_current = sum(row.current_monthly_cost for row in breakdown)
    total_optimized = sum(row.optimized_monthly_cost for row in breakdown)
    total_saving = sum(row.monthly_saving for row in breakdown)

    return CostSummary(
        total_current_cost=total_current,
        total_optimized_cost=total_optimized,
        total_monthly_saving=total_saving,
        total_annual_saving=total_saving * MONTHS_PER_YEAR,
        saving_percent=saving_percent(total_current, total_optimized),
        breakdown=breakdown,
    )


def build_optimization_roadmap(findings: List[Finding]) -> RemediationRoadmap:
    """
    Group findings by implementation effort.

    Quick wins are environment mismatches, missing S3 features and low-severity
    CloudFront findings. Overprovisioned Lambda, RDS and ECS resources are
    medium effort. Everything else needs planning.

    Args:
        findings: Findings from the anti-pattern engine

    Returns:
        RemediationRoadmap preserving the input order within each group
    """
    roadmap = RemediationRoadmap()

    for finding in findings:
        if (
            finding.category == "env-mismatch"
            or (finding.service == "CloudFront" and finding.severity == "low")
            or (finding.service == "S3" and finding.category == "missing-feature")
        ):
            roadmap.quick_wins.append(finding)
        elif finding.category == "overprovisioned" and finding.service in RESIZABLE_SERVICES:
            roadmap.medium_effort.append(finding)
        else:
            roadmap.needs_planning.append(finding)

    return roadmap
