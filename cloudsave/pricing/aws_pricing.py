"""
Static AWS pricing assumptions used by the anti-pattern rules.

All values are USD list prices for us-east-1. The table is versioned so that a
report can always be traced back to the prices it was computed with; bump
PRICING_VERSION whenever any value below changes.
"""
import re
from typing import Dict, Optional, Pattern


PRICING_VERSION = "2026.1"

# Standard assumption: 24/7 operation
HOURS_PER_MONTH = 730

LAMBDA_PRICING: Dict[str, float] = {
    "per_gb_second": 0.0000166667,
    "per_request": 0.0000002,
    "free_requests": 1_000_000,
    "free_gb_seconds": 400_000,
    # Estimation parameters, not measured usage
    "assumed_monthly_requests": 10_000_000,
    "assumed_duration_ms": 200,
}

# Monthly on-demand price per RDS instance class (single-AZ)
RDS_INSTANCE_MONTHLY: Dict[str, float] = {
    "db.t3.micro": 12.41,
    "db.t3.small": 24.82,
    "db.t3.medium": 58.40,
    "db.t3.large": 116.80,
    "db.t3.xlarge": 233.60,
    "db.t3.2xlarge": 467.20,
    "db.r5.large": 172.80,
    "db.r5.xlarge": 345.60,
    "db.r5.2xlarge": 691.20,
    "db.r6g.large": 155.52,
    "db.r6g.xlarge": 311.04,
    "db.m5.large": 155.52,
    "db.m5.xlarge": 311.04,
}

RDS_PRICING: Dict[str, float] = {
    "multi_az_multiplier": 2.0,
    "default_monthly_cost": 100.0,
    "storage_per_gb_month": 0.115,
}

FARGATE_PRICING: Dict[str, float] = {
    "per_vcpu_hour": 0.04048,
    "per_gb_hour": 0.004445,
}

NAT_GATEWAY_PRICING: Dict[str, float] = {
    "per_hour": 0.045,
    "per_gb": 0.045,
    "monthly_base": 32.40,
    "assumed_monthly_data_gb": 100,
}

NLB_PRICING: Dict[str, float] = {
    "per_hour": 0.0225,
    "monthly_base": 16.20,
    "per_lcu_hour": 0.006,
    "assumed_lcus": 10,
}

# Per GB-month by storage class
S3_PRICING: Dict[str, float] = {
    "standard": 0.023,
    "ia": 0.0125,
    "glacier": 0.004,
    "intelligent_tiering": 0.023,
    "assumed_bucket_size_gb": 500,
}

# Per million requests
API_GATEWAY_PRICING: Dict[str, float] = {
    "rest": 3.50,
    "http": 1.00,
    "assumed_monthly_requests_millions": 10,
    # Flat integration cost kept on both sides of the NLB comparison
    "baseline_integration_monthly": 35,
}

DYNAMODB_PRICING: Dict[str, float] = {
    "provisioned_read_cu_hour": 0.00013,
    "provisioned_write_cu_hour": 0.00065,
    "on_demand_read_per_million": 0.25,
    "on_demand_write_per_million": 1.25,
    "storage_per_gb": 0.25,
    "default_read_capacity": 100,
    "default_write_capacity": 100,
    "assumed_monthly_reads_millions": 10,
    "assumed_monthly_writes_millions": 5,
}

ELASTICACHE_NODE_MONTHLY: Dict[str, float] = {
    "cache.t3.micro": 12.41,
    "cache.t3.small": 24.82,
    "cache.t3.medium": 49.64,
    "cache.r5.large": 121.97,
    "cache.r5.xlarge": 243.94,
    "cache.r6g.large": 109.58,
}

ELASTICACHE_DEFAULT_NODE_MONTHLY = 50.0

# Per GB transferred
CLOUDFRONT_PRICING: Dict[str, float] = {
    "price_class_all": 0.0085,
    "price_class_200": 0.0060,
    "price_class_100": 0.0050,
    "assumed_monthly_transfer_gb": 1000,
}

EC2_PRICING: Dict[str, float] = {
    "previous_gen_monthly": 120,
    "current_gen_monthly": 80,
}

EC2_PREVIOUS_GEN_PATTERN: Pattern[str] = re.compile(
    r"\b(t1\.|m1\.|m2\.|m3\.|c1\.|c3\.|r3\.|i2\.|hs1\.|cr1\.|m4\.)"
)

# Previous generation family -> current generation replacement
EC2_MODERN_EQUIVALENTS: Dict[str, str] = {
    "m4": "m5",
    "m3": "m5",
    "m2": "r5",
    "m1": "m5",
    "c3": "c5",
    "c1": "c5",
    "r3": "r5",
    "i2": "i3",
    "t1": "t3",
}


def get_rds_monthly_price(instance_class: str) -> float:
    """
    Get the single-AZ monthly price for an RDS instance class.

    Args:
        instance_class: RDS instance class (e.g., 'db.r5.xlarge')

    Returns:
        Monthly price in USD, or the default price for unknown classes
    """
    return RDS_INSTANCE_MONTHLY.get(instance_class, RDS_PRICING["default_monthly_cost"])


def get_elasticache_node_price(node_type: str) -> float:
    """Monthly price for one ElastiCache node, with a flat default for unknown types."""
    return ELASTICACHE_NODE_MONTHLY.get(node_type, ELASTICACHE_DEFAULT_NODE_MONTHLY)


def fargate_hourly_price(cpu_units: int, memory_mib: int) -> float:
    """
    Hourly Fargate price for one task.

    Args:
        cpu_units: ECS CPU units (1024 = 1 vCPU)
        memory_mib: Task memory in MiB

    Returns:
        Hourly price in USD
    """
    vcpu = cpu_units / 1024
    memory_gb = memory_mib / 1024
    return vcpu * FARGATE_PRICING["per_vcpu_hour"] + memory_gb * FARGATE_PRICING["per_gb_hour"]


def get_modern_equivalent(instance_type: str) -> Optional[str]:
    """
    Map a previous-generation EC2 instance type to its current-generation equivalent.

    Args:
        instance_type: EC2 instance type (e.g., 'm4.large')

    Returns:
        Current-generation instance type (e.g., 'm5.large'), or None if the
        family has no known replacement
    """
    family, _, size = instance_type.partition(".")
    replacement = EC2_MODERN_EQUIVALENTS.get(family.lower())
    if replacement is None:
        return None
    return f"{replacement}.{size}" if size else replacement
