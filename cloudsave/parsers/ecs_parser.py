"""
ECS task definition extractor.
Reads a task definition JSON export (as written by `aws ecs describe-task-definition`
or `register-task-definition --generate-cli-skeleton`) into a NormalizedInfra.
"""
import re
import json
import logging
from typing import Any, Dict, Optional

from cloudsave.domain.infra_models import NormalizedInfra, EcsService
from cloudsave.parsers.common import coerce_int


logger = logging.getLogger(__name__)

DEFAULT_CPU = 256
DEFAULT_MEMORY = 512
DEFAULT_SERVICE_NAME = "ecs-task"

_ARN_FAMILY = re.compile(r"task-definition/([\w-]+):")


def _unwrap(document: Any) -> Optional[Dict[str, Any]]:
    """Accept a bare task definition, a {"taskDefinition": {...}} wrapper or a one-element array."""
    if isinstance(document, list):
        document = document[0] if document else None
    if not isinstance(document, dict):
        return None
    wrapped = document.get("taskDefinition")
    if isinstance(wrapped, dict):
        return wrapped
    return document


def _family_from_arn(arn: Any) -> Optional[str]:
    if not isinstance(arn, str):
        return None
    match = _ARN_FAMILY.search(arn)
    return match.group(1) if match else None


def parse_ecs_task(content: str) -> NormalizedInfra:
    """
    Parse an ECS task definition JSON document.

    Args:
        content: Raw JSON text

    Returns:
        NormalizedInfra with one ECS service, or an empty model if the
        document is malformed
    """
    infra = NormalizedInfra()

    try:
        document = json.loads(content)
    except json.JSONDecodeError as error:
        logger.warning(f"ECS task definition is not valid JSON: {error.msg} (line {error.lineno})")
        return infra

    task_def = _unwrap(document)
    if task_def is None:
        logger.warning("ECS task definition has an unexpected top-level shape; skipping")
        return infra

    compatibilities = task_def.get("requiresCompatibilities") or []
    launch_type = "FARGATE" if isinstance(compatibilities, list) and "FARGATE" in compatibilities else "EC2"

    family = task_def.get("family")
    if not isinstance(family, str) or not family:
        family = _family_from_arn(task_def.get("taskDefinitionArn"))

    infra.ecs_services.append(
        EcsService(
            name=family or DEFAULT_SERVICE_NAME,
            # A task definition carries no desired count
            desired_count=1,
            cpu=coerce_int(task_def.get("cpu"), DEFAULT_CPU),
            memory=coerce_int(task_def.get("memory"), DEFAULT_MEMORY),
            launch_type=launch_type,
        )
    )
    return infra
