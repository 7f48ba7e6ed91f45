"""
Infrastructure parsing service.
Routes a submitted file to the extractor for its dialect and expands archives
member by member, merging the partial models in archive order.
"""
from typing import Callable, Dict, List, Union
import logging

from cloudsave.domain.infra_models import NormalizedInfra, merge_infra
from cloudsave.domain.report_models import (
    ParseResult,
    PARSE_STATUS_PARSED,
    PARSE_STATUS_EMPTY,
    PARSE_STATUS_UNPARSEABLE,
)
from cloudsave.parsers.detector import (
    detect_file_kind,
    KIND_CDK,
    KIND_TERRAFORM,
    KIND_CLOUDFORMATION,
    KIND_ECS_TASK,
    KIND_ZIP,
    KIND_IMAGE,
)
from cloudsave.parsers.cdk_parser import parse_cdk
from cloudsave.parsers.terraform_parser import parse_terraform
from cloudsave.parsers.cloudformation_parser import parse_cloudformation
from cloudsave.parsers.ecs_parser import parse_ecs_task
from cloudsave.utils.archive import expand_archive


logger = logging.getLogger(__name__)

# One extractor per textual dialect, all sharing the extract(content) contract
EXTRACTORS: Dict[str, Callable[[str], NormalizedInfra]] = {
    KIND_CDK: parse_cdk,
    KIND_TERRAFORM: parse_terraform,
    KIND_CLOUDFORMATION: parse_cloudformation,
    KIND_ECS_TASK: parse_ecs_task,
}


def extract_text(file_name: str, content: str) -> ParseResult:
    """
    Detect and extract a single textual file.

    Args:
        file_name: File name used for detection
        content: Decoded file content

    Returns:
        ParseResult; unparseable when no extractor applies
    """
    kind = detect_file_kind(file_name, content)
    extractor = EXTRACTORS.get(kind)
    if extractor is None:
        logger.info(f"No extractor for {file_name} (detected as {kind})")
        return ParseResult(status=PARSE_STATUS_UNPARSEABLE, file_type=kind)

    infra = extractor(content)
    status = PARSE_STATUS_EMPTY if infra.is_empty() else PARSE_STATUS_PARSED
    logger.debug(f"Extracted {file_name} as {kind}: {', '.join(infra.detected_services()) or 'no resources'}")
    return ParseResult(status=status, file_type=kind, infra=infra)


def _parse_archive(data: bytes) -> ParseResult:
    models: List[NormalizedInfra] = []
    for member_name, content in expand_archive(data):
        try:
            result = extract_text(member_name, content)
        except Exception as error:
            logger.warning(
                f"Skipping archive member {member_name}: extraction failed ({type(error).__name__})",
                exc_info=True,
            )
            continue
        if result.is_parsed:
            models.append(result.infra)

    if not models:
        return ParseResult(status=PARSE_STATUS_UNPARSEABLE, file_type=KIND_ZIP)

    infra = merge_infra(models)
    status = PARSE_STATUS_EMPTY if infra.is_empty() else PARSE_STATUS_PARSED
    return ParseResult(status=status, file_type=KIND_ZIP, infra=infra)


def parse_file(file_name: str, data: Union[bytes, str]) -> ParseResult:
    """
    Parse a submitted file into a NormalizedInfra.

    Archives are expanded and every supported member is detected and extracted
    on its own; the partial models are merged in member order. Images and
    unknown files produce no model.

    Args:
        file_name: Original file name
        data: Raw bytes, or already decoded text

    Returns:
        ParseResult with status parsed, empty or unparseable

    Raises:
        ArchiveLimitExceededError: If an archive has too many entries
        InvalidArchiveError: If a .zip upload is not a ZIP archive
        UnicodeDecodeError: If a textual file is not valid UTF-8
    """
    kind = detect_file_kind(file_name, "")
    if kind == KIND_ZIP:
        if isinstance(data, str):
            data = data.encode("utf-8")
        return _parse_archive(data)

    if kind == KIND_IMAGE:
        return ParseResult(status=PARSE_STATUS_UNPARSEABLE, file_type=KIND_IMAGE)

    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return extract_text(file_name, data)
