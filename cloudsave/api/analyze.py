"""
API routes for infrastructure cost analysis.
"""
from typing import Dict, Any
from fastapi import APIRouter, HTTPException, UploadFile, File
from starlette.concurrency import run_in_threadpool
from pydantic import BaseModel, Field
import logging

from cloudsave.core.config import config
from cloudsave.engine.rules import ALL_RULES
from cloudsave.services.analysis_service import (
    analyze,
    UnparseableInputError,
    UnsupportedImageError,
)
from cloudsave.utils.archive import ArchiveLimitExceededError, InvalidArchiveError


logger = logging.getLogger(__name__)
router = APIRouter()


class AnalyzeTextRequest(BaseModel):
    """Request model for analyzing infrastructure code submitted as text."""
    file_name: str = Field(..., description="File name used for format detection (e.g., main.tf, stack.ts)")
    content: str = Field(..., description="Raw file content")


def _run_analysis(file_name: str, data: Any) -> Dict[str, Any]:
    """
    Run the analysis pipeline and map service errors to HTTP errors.

    Args:
        file_name: Submitted file name
        data: Raw bytes or text

    Returns:
        JSON response with the report

    Raises:
        HTTPException: 413 archive too large, 400 invalid archive,
                       415 image input, 422 unparseable, 500 otherwise
    """
    try:
        logger.info(f"analyze: Stage=parse - Starting analysis of {file_name}")
        report = analyze(file_name, data)
        logger.info(
            f"analyze: Stage=complete - {len(report.issues)} findings, "
            f"${report.cost_summary.total_monthly_saving}/month potential saving"
        )
        return {
            "status": "ok",
            "report": report.to_dict(),
        }

    except ArchiveLimitExceededError as error:
        logger.info(f"analyze: Stage=parse - Archive rejected: {error}")
        raise HTTPException(status_code=413, detail=str(error)) from error
    except InvalidArchiveError as error:
        logger.info(f"analyze: Stage=parse - Invalid archive: {error}")
        raise HTTPException(status_code=400, detail=str(error)) from error
    except UnsupportedImageError as error:
        logger.info(f"analyze: Stage=parse - Image input rejected for {file_name}")
        raise HTTPException(status_code=415, detail=str(error)) from error
    except UnparseableInputError as error:
        logger.info(f"analyze: Stage=parse - {error}")
        raise HTTPException(
            status_code=422,
            detail=(
                "Could not parse infrastructure from the provided file. "
                "Please ensure it contains valid AWS resource definitions."
            ),
        ) from error
    except HTTPException:
        raise
    except Exception as error:
        logger.error(f"analyze: Stage=unknown - Unexpected error: {error}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="Analysis failed. Please try again with a valid infrastructure file.",
        ) from error


@router.post("/api/analyze")
async def analyze_upload(file: UploadFile = File(...)) -> Dict[str, Any]:
    """
    Analyze an uploaded infrastructure file or ZIP archive.

    Accepts CDK sources (.ts/.js/.py), Terraform (.tf/.tf.json),
    CloudFormation templates (.json/.yaml/.yml), ECS task definitions (.json)
    and ZIP archives of these.

    Args:
        file: Uploaded file (multipart form field 'file')

    Returns:
        JSON response with the analysis report

    Raises:
        HTTPException: If the file is too large, unsupported or unparseable
    """
    data = await file.read()
    if len(data) > config.MAX_FILE_SIZE_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File size ({len(data) / 1024 / 1024:.1f}MB) exceeds the {config.MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB limit.",
        )
    if not file.filename:
        raise HTTPException(status_code=400, detail="File name is required")

    # Parsing is CPU-bound; keep it off the event loop
    return await run_in_threadpool(_run_analysis, file.filename, data)


@router.post("/api/analyze/text")
async def analyze_text(request: AnalyzeTextRequest) -> Dict[str, Any]:
    """
    Analyze infrastructure code submitted as JSON text.

    Args:
        request: Request body with file_name and content

    Returns:
        JSON response with the analysis report
    """
    if not request.file_name:
        raise HTTPException(status_code=400, detail="file_name is required")

    return await run_in_threadpool(_run_analysis, request.file_name, request.content)


@router.get("/api/rules")
async def list_rules() -> Dict[str, Any]:
    """
    List the registered anti-pattern detection rules.

    Returns:
        JSON response with rule metadata in evaluation order
    """
    return {
        "status": "ok",
        "rule_count": len(ALL_RULES),
        "rules": [rule.to_dict() for rule in ALL_RULES],
    }
