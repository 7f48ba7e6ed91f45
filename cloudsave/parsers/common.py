"""
Helpers shared by the dialect extractors: environment resolution, value coercion
and unresolved-reference detection.
"""
import re
import math
import logging
from typing import Any, Iterable, List, Optional

from cloudsave.domain.infra_models import ENV_PROD, ENV_STAGING, ENV_DEV


logger = logging.getLogger(__name__)

PROD_TOKENS = {"prod", "production", "prd", "live"}
STAGING_TOKENS = {"staging", "stage", "stg", "uat"}
DEV_TOKENS = {"dev", "development", "test", "testing", "qa", "sandbox", "sbx"}

# Tag keys that declare the environment explicitly
ENV_TAG_KEYS = {"environment", "env", "stage"}

# Terraform expressions that cannot be resolved without evaluating the module
UNRESOLVED_PREFIXES = ("var.", "local.", "module.", "data.")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")
_LEADING_INT = re.compile(r"^\s*(-?\d+)")


def split_name_tokens(text: str) -> List[str]:
    """
    Split an identifier into lower-case word tokens.

    Handles camelCase, snake_case, kebab-case and dotted names, so
    'ordersDbProd', 'orders_db_prod' and 'orders-db-prod' all yield
    ['orders', 'db', 'prod'].
    """
    spaced = _CAMEL_BOUNDARY.sub(" ", text)
    return [token.lower() for token in _NON_ALNUM.split(spaced) if token]


def _env_from_tokens(tokens: Iterable[str]) -> Optional[str]:
    token_set = set(tokens)
    if token_set & PROD_TOKENS:
        return ENV_PROD
    if token_set & STAGING_TOKENS:
        return ENV_STAGING
    if token_set & DEV_TOKENS:
        return ENV_DEV
    return None


def detect_env(names: Iterable[str], tag_value: Optional[str] = None, default: str = ENV_DEV) -> str:
    """
    Resolve the deployment environment of a resource.

    An explicit environment tag wins; otherwise name tokens are inspected, with
    production tokens taking priority over staging, and staging over dev.

    Args:
        names: Resource identities to inspect (logical id, name attribute, ...)
        tag_value: Value of an Environment/Env tag, if one was found
        default: Environment used when nothing matches

    Returns:
        'prod', 'staging' or 'dev'
    """
    if tag_value:
        env = _env_from_tokens(split_name_tokens(tag_value))
        if env:
            return env

    tokens: List[str] = []
    for name in names:
        if name:
            tokens.extend(split_name_tokens(name))
    return _env_from_tokens(tokens) or default


def coerce_int(value: Any, default: Optional[int]) -> Optional[int]:
    """
    Coerce a number or numeric string to int.

    Strings are read up to the first non-digit ('4096' and '512 MiB' both
    work). Booleans, infinities, NaN, unresolved references and anything else
    fall back to the default.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return default


def is_unresolved_reference(value: str) -> bool:
    """True for values that only resolve at deploy time (variables, locals, interpolations)."""
    stripped = value.strip().strip('"')
    return stripped.startswith(UNRESOLVED_PREFIXES) or "${" in stripped


def placeholder_name(prefix: str, index: int) -> str:
    """Generated name for a resource without an identity, e.g. 'lambda-function-1'."""
    return f"{prefix}-{index}"
