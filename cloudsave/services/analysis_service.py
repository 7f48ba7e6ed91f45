"""
Analysis service.
Runs the full pipeline for one submitted file: detect, extract, evaluate rules,
aggregate costs and assemble the report.
"""
from typing import Union
from datetime import datetime, timezone
import logging
import secrets

from cloudsave.core.config import config
from cloudsave.domain.report_models import AnalysisReport
from cloudsave.engine.anti_patterns import detect_anti_patterns
from cloudsave.engine.cost_calculator import calculate_cost_summary, build_optimization_roadmap
from cloudsave.parsers.detector import KIND_IMAGE
from cloudsave.pricing.aws_pricing import PRICING_VERSION
from cloudsave.services.infra_parser import parse_file


logger = logging.getLogger(__name__)

REPORT_ID_PREFIX = "rpt_"


class AnalysisError(Exception):
    """Raised when a submitted file cannot be analyzed."""
    pass


class UnparseableInputError(AnalysisError):
    """Raised when no infrastructure model can be produced from the input."""
    pass


class UnsupportedImageError(AnalysisError):
    """Raised when an architecture diagram is submitted instead of infrastructure code."""
    pass


def generate_report_id() -> str:
    """Random, URL-safe report identifier (e.g., 'rpt_3f9a0c1d2e4b5a69')."""
    return f"{REPORT_ID_PREFIX}{secrets.token_hex(8)}"


def analyze(file_name: str, data: Union[bytes, str]) -> AnalysisReport:
    """
    Analyze one submitted infrastructure file.

    A recognised file with no resources still yields a report (with
    parse_status 'empty' and no findings). Reports are never stored.

    Args:
        file_name: Original file name, used for format detection
        data: Raw file bytes or decoded text

    Returns:
        AnalysisReport for the file

    Raises:
        UnsupportedImageError: If the file is an image
        UnparseableInputError: If no extractor could produce a model
        ArchiveLimitExceededError: If an archive exceeds the entry limit
        InvalidArchiveError: If a .zip upload is not a ZIP archive
    """
    try:
        result = parse_file(file_name, data)
    except UnicodeDecodeError as error:
        raise UnparseableInputError(f"{file_name} is not UTF-8 text") from error

    if result.file_type == KIND_IMAGE:
        raise UnsupportedImageError("Architecture diagrams cannot be analyzed; upload infrastructure code instead")

    if not result.is_parsed:
        raise UnparseableInputError(
            f"No infrastructure could be parsed from {file_name} (detected as {result.file_type})"
        )

    infra = result.infra
    findings = detect_anti_patterns(infra)
    cost_summary = calculate_cost_summary(findings)
    roadmap = build_optimization_roadmap(findings)

    report = AnalysisReport(
        id=generate_report_id(),
        created_at=datetime.now(timezone.utc),
        input_file_name=file_name,
        input_file_type=result.file_type,
        parse_status=result.status,
        infra=infra,
        issues=findings,
        cost_summary=cost_summary,
        roadmap=roadmap,
        pricing_version=PRICING_VERSION,
        region=config.PRICING_REGION,
    )

    logger.info(
        "Analysis complete for %s: type=%s, services=%s, findings=%d, monthly_saving=%d",
        file_name,
        result.file_type,
        ",".join(infra.detected_services()) or "none",
        len(findings),
        cost_summary.total_monthly_saving,
    )
    return report
