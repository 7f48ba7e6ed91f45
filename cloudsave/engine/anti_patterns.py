"""
Anti-pattern detection engine.
Runs every registered rule against a NormalizedInfra and orders the findings.
"""
import logging
from typing import List, Sequence

from cloudsave.domain.infra_models import NormalizedInfra
from cloudsave.domain.finding_models import DetectionRule, Finding, SEVERITY_ORDER
from cloudsave.engine.rules import ALL_RULES


logger = logging.getLogger(__name__)


def detect_anti_patterns(infra: NormalizedInfra, rules: Sequence[DetectionRule] = ALL_RULES) -> List[Finding]:
    """
    Evaluate all rules against the infrastructure model.

    A rule that raises is logged and contributes no findings; the remaining
    rules still run. Findings are ordered by severity (critical first), then by
    monthly saving descending; ties keep rule evaluation order.

    Args:
        infra: Normalized infrastructure model
        rules: Rule registry to evaluate (defaults to ALL_RULES)

    Returns:
        Ordered list of findings (possibly empty)
    """
    findings: List[Finding] = []

    for rule in rules:
        try:
            findings.extend(rule.check(infra))
        except Exception as error:
            logger.error(f"Rule {rule.id} ({rule.name}) failed: {error}", exc_info=True)

    # sorted() is stable, so equal keys keep encounter order
    ordered = sorted(findings, key=lambda finding: (SEVERITY_ORDER[finding.severity], -finding.saving))

    logger.info(
        "Evaluated %d rules: %d findings",
        len(rules),
        len(ordered),
    )
    return ordered
