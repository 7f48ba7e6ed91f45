"""
File format detection.
Picks the extractor for a submitted file from its name and a sample of its content.
"""
from typing import Tuple


# File kinds
KIND_CDK = "cdk"
KIND_TERRAFORM = "terraform"
KIND_CLOUDFORMATION = "cloudformation"
KIND_ECS_TASK = "ecs-task"
KIND_ZIP = "zip"
KIND_IMAGE = "image"
KIND_UNKNOWN = "unknown"

IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "svg", "gif", "webp"}

ECS_MARKERS: Tuple[str, ...] = (
    "containerDefinitions",
    "taskDefinitionArn",
    "requiresCompatibilities",
)

TERRAFORM_MARKERS: Tuple[str, ...] = (
    'provider "aws"',
    'resource "aws_',
    "terraform {",
)

CDK_MARKERS: Tuple[str, ...] = (
    "aws-cdk",
    "aws_cdk",
    "cdk.Stack",
    "new Stack(",
    "Construct",
    "new lambda.",
    "new rds.",
    "new ecs.",
)

# Only the head of large files is inspected
SAMPLE_SIZE = 64 * 1024


def _is_cloudformation(content: str, resources_marker: str) -> bool:
    if "AWSTemplateFormatVersion" in content:
        return True
    return resources_marker in content and "AWS::" in content


def detect_file_kind(file_name: str, content: str) -> str:
    """
    Detect the infrastructure dialect of a file.

    The extension decides first for archives and images. Ambiguous extensions
    are disambiguated by content markers; an unmatched .ts file is assumed to
    be CDK.

    Args:
        file_name: Original file name (path components are allowed)
        content: File content, or a sample of it

    Returns:
        One of cdk, terraform, cloudformation, ecs-task, zip, image, unknown
    """
    lower = file_name.lower()
    extension = lower.rsplit(".", 1)[-1] if "." in lower else ""
    sample = content[:SAMPLE_SIZE]

    if extension == "zip":
        return KIND_ZIP

    if extension in IMAGE_EXTENSIONS:
        return KIND_IMAGE

    if extension == "json" and not lower.endswith(".tf.json"):
        # ECS markers win over CloudFormation markers
        if any(marker in sample for marker in ECS_MARKERS):
            return KIND_ECS_TASK
        if _is_cloudformation(sample, '"Resources"'):
            return KIND_CLOUDFORMATION

    if extension in ("yaml", "yml"):
        if _is_cloudformation(sample, "Resources:"):
            return KIND_CLOUDFORMATION

    if extension == "tf" or lower.endswith(".tf.json"):
        if any(marker in sample for marker in TERRAFORM_MARKERS):
            return KIND_TERRAFORM

    if extension in ("ts", "js", "py"):
        if any(marker in sample for marker in CDK_MARKERS):
            return KIND_CDK

    if extension == "ts":
        return KIND_CDK

    return KIND_UNKNOWN
