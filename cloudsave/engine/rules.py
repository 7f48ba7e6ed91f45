"""
Anti-pattern detection rules.

Every rule is a DetectionRule record: static metadata plus a pure check function
that reads a NormalizedInfra and returns Findings. Cost figures come from the
static pricing table and are rounded half-up to whole dollars per finding.
"""
import math
import re
from typing import List

from cloudsave.domain.infra_models import NormalizedInfra, ENV_PROD
from cloudsave.domain.finding_models import DetectionRule, Finding
from cloudsave.pricing.aws_pricing import (
    HOURS_PER_MONTH,
    LAMBDA_PRICING,
    RDS_INSTANCE_MONTHLY,
    RDS_PRICING,
    NAT_GATEWAY_PRICING,
    NLB_PRICING,
    S3_PRICING,
    API_GATEWAY_PRICING,
    DYNAMODB_PRICING,
    ELASTICACHE_NODE_MONTHLY,
    CLOUDFRONT_PRICING,
    EC2_PRICING,
    EC2_PREVIOUS_GEN_PATTERN,
    get_rds_monthly_price,
    get_elasticache_node_price,
    fargate_hourly_price,
    get_modern_equivalent,
)


LAMBDA_MEMORY_THRESHOLD_MB = 2048
LAMBDA_RECOMMENDED_MEMORY_MB = 1024
LAMBDA_TIMEOUT_THRESHOLD_S = 300
ECS_DESIRED_COUNT_THRESHOLD = 2
ELASTICACHE_NODE_THRESHOLD = 2

RDS_RIGHT_SIZED_CLASS = "db.t3.medium"
ELASTICACHE_RIGHT_SIZED_NODE = "cache.t3.medium"
PRICE_CLASS_ALL_VALUES = {"PriceClass_All", "ALL", "PRICE_CLASS_ALL"}

_NAME_UNSAFE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def round_half_up(value: float) -> int:
    """Round to the nearest whole number with halves rounding up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def saving_percent(current: float, optimized: float) -> float:
    """Saving as a percentage of current cost, one decimal place; 0 when current cost is not positive."""
    if current <= 0:
        return 0
    return round_half_up((current - optimized) / current * 100 * 10) / 10


def finding_id(rule_id: str, resource_name: str) -> str:
    """
    Build a deterministic finding id from a rule id and resource name.

    Every character outside [a-z0-9] (case-insensitive) becomes '-', then the
    result is lower-cased: ('rule-01', 'processOrders') -> 'rule-01-processorders'.
    """
    return f"{rule_id}-{_NAME_UNSAFE.sub('-', resource_name).lower()}"


def _finding(
    rule: str,
    service: str,
    resource_name: str,
    issue: str,
    description: str,
    severity: str,
    category: str,
    current_config: str,
    recommended_config: str,
    current_cost: float,
    optimized_cost: float,
    saving: float = None,
    percent: float = None,
) -> Finding:
    if saving is None:
        saving = current_cost - optimized_cost
    if percent is None:
        percent = saving_percent(current_cost, optimized_cost)
    return Finding(
        id=finding_id(rule, resource_name),
        service=service,
        issue=issue,
        description=description,
        severity=severity,
        category=category,
        current_config=current_config,
        recommended_config=recommended_config,
        current_cost=round_half_up(current_cost),
        optimized_cost=round_half_up(optimized_cost),
        saving=round_half_up(saving),
        saving_percent=percent,
        resource_name=resource_name,
    )


# ===== Lambda =====

def _lambda_monthly_cost(memory_mb: int) -> float:
    requests = LAMBDA_PRICING["assumed_monthly_requests"]
    duration_s = LAMBDA_PRICING["assumed_duration_ms"] / 1000
    compute = (memory_mb / 1024) * duration_s * requests * LAMBDA_PRICING["per_gb_second"]
    return compute + requests * LAMBDA_PRICING["per_request"]


def check_lambda_memory(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    for fn in infra.lambda_functions:
        if fn.memory <= LAMBDA_MEMORY_THRESHOLD_MB:
            continue
        findings.append(
            _finding(
                "rule-01",
                "Lambda",
                fn.name,
                issue="Overprovisioned Memory",
                description=(
                    f'Function "{fn.name}" allocates {fn.memory}MB but typical workloads rarely need more '
                    f"than {LAMBDA_RECOMMENDED_MEMORY_MB}MB. Memory beyond that point adds cost without "
                    "a matching performance gain."
                ),
                severity="high",
                category="overprovisioned",
                current_config=f"{fn.memory}MB memory",
                recommended_config="1024MB with ARM64 (Graviton2)",
                current_cost=_lambda_monthly_cost(fn.memory),
                optimized_cost=_lambda_monthly_cost(LAMBDA_RECOMMENDED_MEMORY_MB),
            )
        )
    return findings


def check_lambda_timeout(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    for fn in infra.lambda_functions:
        if fn.timeout <= LAMBDA_TIMEOUT_THRESHOLD_S:
            continue
        findings.append(
            _finding(
                "rule-02",
                "Lambda",
                fn.name,
                issue="Excessively Long Timeout",
                description=(
                    f'Function "{fn.name}" has a {fn.timeout}s timeout. Long timeouts keep hung '
                    "invocations billing until they are killed and usually point at work that belongs "
                    "in an asynchronous pipeline. API-backed functions should finish within 30s."
                ),
                severity="medium",
                category="overprovisioned",
                current_config=f"{fn.timeout}s timeout",
                recommended_config="30s timeout (or redesign for async processing)",
                current_cost=40,
                optimized_cost=20,
            )
        )
    return findings


# ===== RDS =====

def check_rds_multi_az(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    for db in infra.rds_instances:
        if not db.multi_az or db.env == ENV_PROD:
            continue
        base_monthly = get_rds_monthly_price(db.instance_class)
        findings.append(
            _finding(
                "rule-03",
                "RDS",
                db.name,
                issue="MultiAZ Enabled in Non-Production",
                description=(
                    f'Database "{db.name}" ({db.env}) has MultiAZ enabled, which doubles its cost. '
                    f"Synchronous standby replication buys availability that a {db.env} environment "
                    "does not need."
                ),
                severity="critical",
                category="env-mismatch",
                current_config=f"{db.instance_class} + MultiAZ ({db.env})",
                recommended_config=f"{db.instance_class}, Single-AZ ({db.env})",
                current_cost=base_monthly * RDS_PRICING["multi_az_multiplier"],
                optimized_cost=base_monthly,
            )
        )
    return findings


def check_rds_oversized(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    for db in infra.rds_instances:
        if db.env == ENV_PROD or "xlarge" not in db.instance_class:
            continue
        findings.append(
            _finding(
                "rule-04",
                "RDS",
                db.name,
                issue="Oversized Instance in Dev Environment",
                description=(
                    f'Database "{db.name}" uses {db.instance_class} in a {db.env} environment. '
                    f"Non-production databases rarely need more than {RDS_RIGHT_SIZED_CLASS}."
                ),
                severity="high",
                category="overprovisioned",
                current_config=f"{db.instance_class} ({db.env})",
                recommended_config=f"{RDS_RIGHT_SIZED_CLASS} ({db.env})",
                current_cost=get_rds_monthly_price(db.instance_class),
                optimized_cost=RDS_INSTANCE_MONTHLY[RDS_RIGHT_SIZED_CLASS],
            )
        )
    return findings


# ===== ECS =====

def check_ecs_over_scaled(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    for svc in infra.ecs_services:
        if svc.desired_count <= ECS_DESIRED_COUNT_THRESHOLD:
            continue
        task_monthly = fargate_hourly_price(svc.cpu, svc.memory) * HOURS_PER_MONTH
        findings.append(
            _finding(
                "rule-05",
                "ECS",
                svc.name,
                issue="Over-Scaled ECS Service",
                description=(
                    f'ECS service "{svc.name}" runs {svc.desired_count} tasks. Non-production '
                    "environments usually need a single task, and every extra task multiplies the "
                    "Fargate bill."
                ),
                severity="high",
                category="overprovisioned",
                current_config=f"{svc.desired_count} tasks, {svc.cpu} CPU units, {svc.memory}MB",
                recommended_config="1 task for non-production environments",
                current_cost=task_monthly * svc.desired_count,
                optimized_cost=task_monthly,
            )
        )
    return findings


def check_fargate_over_allocated(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    for svc in infra.ecs_services:
        if svc.launch_type != "FARGATE" or svc.cpu < 4096 or svc.memory < 8192:
            continue
        vcpu = svc.cpu / 1024
        findings.append(
            _finding(
                "rule-06",
                "ECS",
                svc.name,
                issue="Fargate Task Over-Allocated",
                description=(
                    f'Service "{svc.name}" allocates {svc.cpu} CPU units ({vcpu:g} vCPU) and '
                    f"{svc.memory}MB. Typical services run comfortably on 2 vCPU / 4GB; right-size "
                    "first and scale on measured utilisation."
                ),
                severity="medium",
                category="overprovisioned",
                current_config=f"{svc.cpu} CPU units, {svc.memory}MB memory",
                recommended_config="2048 CPU units (2 vCPU), 4096MB; measure then adjust",
                current_cost=fargate_hourly_price(svc.cpu, svc.memory) * HOURS_PER_MONTH,
                optimized_cost=fargate_hourly_price(2048, 4096) * HOURS_PER_MONTH,
            )
        )
    return findings


# ===== API Gateway =====

def check_api_gateway_nlb(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    nlb_monthly = NLB_PRICING["monthly_base"] + HOURS_PER_MONTH * NLB_PRICING["per_lcu_hour"] * NLB_PRICING["assumed_lcus"]
    baseline = API_GATEWAY_PRICING["baseline_integration_monthly"]
    for api in infra.api_gateway_apis:
        if not api.uses_nlb:
            continue
        findings.append(
            _finding(
                "rule-07",
                "API Gateway",
                api.name,
                issue="NLB + API Gateway Anti-Pattern",
                description=(
                    f'API "{api.name}" reaches its backend through a Network Load Balancer. The NLB '
                    "adds hourly and LCU charges that a direct Lambda, ALB or HTTP integration avoids."
                ),
                severity="high",
                category="architectural",
                current_config=f"{api.type} API + NLB + VPC Link",
                recommended_config="API Gateway HTTP API with direct Lambda or ALB integration",
                current_cost=nlb_monthly + baseline,
                optimized_cost=baseline,
                saving=nlb_monthly,
            )
        )
    return findings


def check_rest_api(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    requests_millions = API_GATEWAY_PRICING["assumed_monthly_requests_millions"]
    for api in infra.api_gateway_apis:
        if api.type != "REST" or api.uses_nlb:
            continue
        findings.append(
            _finding(
                "rule-08",
                "API Gateway",
                api.name,
                issue="REST API: Consider Migrating to HTTP API",
                description=(
                    f'API "{api.name}" is a REST API ($3.50 per million requests). HTTP APIs cost '
                    "$1.00 per million and cover Lambda proxy, JWT authorizers and CORS natively."
                ),
                severity="medium",
                category="architectural",
                current_config="REST API ($3.50/million requests)",
                recommended_config="HTTP API ($1.00/million requests)",
                current_cost=requests_millions * API_GATEWAY_PRICING["rest"],
                optimized_cost=requests_millions * API_GATEWAY_PRICING["http"],
            )
        )
    return findings


# ===== S3 =====

def check_s3_lifecycle(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    size_gb = S3_PRICING["assumed_bucket_size_gb"]
    current = size_gb * S3_PRICING["standard"]
    # Lifecycle keeps 40% in Standard, moves 40% to IA and 20% to Glacier
    optimized = (
        size_gb * 0.4 * S3_PRICING["standard"]
        + size_gb * 0.4 * S3_PRICING["ia"]
        + size_gb * 0.2 * S3_PRICING["glacier"]
    )
    for bucket in infra.s3_buckets:
        if bucket.has_lifecycle_policy:
            continue
        findings.append(
            _finding(
                "rule-09",
                "S3",
                bucket.name,
                issue="No Lifecycle Policy",
                description=(
                    f'Bucket "{bucket.name}" has no lifecycle policy, so every object stays in S3 '
                    "Standard forever. Transitioning older objects to Infrequent Access or Glacier "
                    "cuts storage cost by 40-80%."
                ),
                severity="medium",
                category="missing-feature",
                current_config="S3 Standard, no lifecycle transitions",
                recommended_config="Lifecycle: 30d to S3-IA, 90d to Glacier",
                current_cost=current,
                optimized_cost=optimized,
            )
        )
    return findings


def check_s3_intelligent_tiering(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    for bucket in infra.s3_buckets:
        # Buckets without lifecycle rules are already reported by rule-09
        if bucket.has_intelligent_tiering or not bucket.has_lifecycle_policy:
            continue
        findings.append(
            _finding(
                "rule-10",
                "S3",
                bucket.name,
                issue="Intelligent Tiering Not Enabled",
                description=(
                    f'Bucket "{bucket.name}" could use S3 Intelligent-Tiering, which moves objects '
                    "between access tiers automatically with no retrieval fees. Expect 15-30% savings "
                    "on objects with variable access."
                ),
                severity="low",
                category="missing-feature",
                current_config="S3 Standard without Intelligent Tiering",
                recommended_config="S3 Intelligent-Tiering for objects > 128KB",
                current_cost=115,
                optimized_cost=80,
                saving=35,
                percent=30,
            )
        )
    return findings


# ===== NAT Gateway =====

def check_nat_gateways(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    per_gateway = NAT_GATEWAY_PRICING["monthly_base"] + NAT_GATEWAY_PRICING["per_gb"] * NAT_GATEWAY_PRICING["assumed_monthly_data_gb"]
    for group in infra.nat_gateways:
        if group.count <= 1:
            continue
        findings.append(
            _finding(
                "rule-11",
                "NAT Gateway",
                group.name,
                issue=f"{group.count} NAT Gateways Detected",
                description=(
                    f"{group.count} NAT Gateways are deployed at roughly ${round_half_up(per_gateway)}/month "
                    "each. Outside production a single NAT Gateway is enough."
                ),
                severity="high",
                category="overprovisioned",
                current_config=f"{group.count} NAT Gateways",
                recommended_config="1 NAT Gateway for non-production (or NAT instance for dev)",
                current_cost=per_gateway * group.count,
                optimized_cost=per_gateway,
            )
        )
    return findings


# ===== DynamoDB =====

def check_dynamodb_provisioned(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    on_demand = (
        DYNAMODB_PRICING["assumed_monthly_reads_millions"] * DYNAMODB_PRICING["on_demand_read_per_million"]
        + DYNAMODB_PRICING["assumed_monthly_writes_millions"] * DYNAMODB_PRICING["on_demand_write_per_million"]
    )
    for table in infra.dynamodb_tables:
        if table.billing_mode != "PROVISIONED":
            continue
        rcu = table.read_capacity if table.read_capacity is not None else int(DYNAMODB_PRICING["default_read_capacity"])
        wcu = table.write_capacity if table.write_capacity is not None else int(DYNAMODB_PRICING["default_write_capacity"])
        provisioned = (
            rcu * DYNAMODB_PRICING["provisioned_read_cu_hour"]
            + wcu * DYNAMODB_PRICING["provisioned_write_cu_hour"]
        ) * HOURS_PER_MONTH
        findings.append(
            _finding(
                "rule-12",
                "DynamoDB",
                table.name,
                issue="Provisioned Capacity: Consider On-Demand",
                description=(
                    f'Table "{table.name}" uses PROVISIONED billing ({rcu} RCU, {wcu} WCU). For '
                    "variable workloads PAY_PER_REQUEST removes the cost of idle capacity."
                ),
                severity="medium",
                category="architectural",
                current_config=f"PROVISIONED: {rcu} RCU, {wcu} WCU",
                recommended_config="PAY_PER_REQUEST (On-Demand), no capacity planning needed",
                current_cost=provisioned,
                optimized_cost=on_demand,
                saving=max(0, provisioned - on_demand),
            )
        )
    return findings


# ===== ElastiCache =====

def check_elasticache_oversized(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    for cluster in infra.elasticache_clusters:
        if "large" not in cluster.node_type or cluster.num_nodes <= ELASTICACHE_NODE_THRESHOLD:
            continue
        findings.append(
            _finding(
                "rule-13",
                "ElastiCache",
                cluster.name,
                issue="Oversized ElastiCache Cluster",
                description=(
                    f'Cluster "{cluster.name}" runs {cluster.num_nodes}x {cluster.node_type}. Unless '
                    f"memory or throughput needs are proven, start with 2x {ELASTICACHE_RIGHT_SIZED_NODE} "
                    "and scale on CloudWatch metrics."
                ),
                severity="medium",
                category="overprovisioned",
                current_config=f"{cluster.num_nodes}x {cluster.node_type} ({cluster.engine})",
                recommended_config=f"2x {ELASTICACHE_RIGHT_SIZED_NODE}, scale up with data",
                current_cost=get_elasticache_node_price(cluster.node_type) * cluster.num_nodes,
                optimized_cost=ELASTICACHE_NODE_MONTHLY[ELASTICACHE_RIGHT_SIZED_NODE] * 2,
            )
        )
    return findings


# ===== CloudFront =====

def check_cloudfront_price_class(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    transfer_gb = CLOUDFRONT_PRICING["assumed_monthly_transfer_gb"]
    for dist in infra.cloudfront_distributions:
        if dist.price_class not in PRICE_CLASS_ALL_VALUES:
            continue
        findings.append(
            _finding(
                "rule-14",
                "CloudFront",
                dist.name,
                issue="PriceClass_All: Consider Regional Price Class",
                description=(
                    f'Distribution "{dist.name}" serves from every edge location, including the most '
                    "expensive regions. If users are mainly in North America, Europe and Asia, "
                    "PriceClass_100 or PriceClass_200 lowers transfer cost."
                ),
                severity="low",
                category="overprovisioned",
                current_config="PriceClass_All (global edge network)",
                recommended_config="PriceClass_100 (US, Canada, Europe, Asia) or PriceClass_200",
                current_cost=transfer_gb * CLOUDFRONT_PRICING["price_class_all"],
                optimized_cost=transfer_gb * CLOUDFRONT_PRICING["price_class_100"],
            )
        )
    return findings


# ===== EC2 =====

def check_ec2_previous_generation(infra: NormalizedInfra) -> List[Finding]:
    findings = []
    for instance in infra.ec2_instances:
        if not EC2_PREVIOUS_GEN_PATTERN.search(instance.instance_type):
            continue
        modern = get_modern_equivalent(instance.instance_type) or instance.instance_type
        findings.append(
            _finding(
                "rule-15",
                "EC2",
                instance.name,
                issue="Previous Generation Instance Type",
                description=(
                    f'Instance "{instance.name}" uses {instance.instance_type}, a previous-generation '
                    f"type. Current-generation instances ({modern}) give 10-40% better "
                    "price-performance, and moving is usually a stop and start."
                ),
                severity="medium",
                category="overprovisioned",
                current_config=f"{instance.instance_type} (previous generation)",
                recommended_config=f"{modern} (current generation, ~33% cheaper/faster)",
                current_cost=EC2_PRICING["previous_gen_monthly"],
                optimized_cost=EC2_PRICING["current_gen_monthly"],
            )
        )
    return findings


# Evaluation order; findings are re-sorted by the engine
ALL_RULES: List[DetectionRule] = [
    DetectionRule(
        id="rule-01",
        name="Lambda Overprovisioned Memory",
        service="Lambda",
        severity="high",
        category="overprovisioned",
        estimated_monthly_saving=160,
        description="Lambda function has memory allocation exceeding 2048MB.",
        check=check_lambda_memory,
    ),
    DetectionRule(
        id="rule-02",
        name="Lambda Long Timeout",
        service="Lambda",
        severity="medium",
        category="overprovisioned",
        estimated_monthly_saving=40,
        description="Lambda function has an excessively long timeout.",
        check=check_lambda_timeout,
    ),
    DetectionRule(
        id="rule-03",
        name="RDS MultiAZ in Non-Production",
        service="RDS",
        severity="critical",
        category="env-mismatch",
        estimated_monthly_saving=200,
        description="RDS instance has MultiAZ enabled in a non-production environment.",
        check=check_rds_multi_az,
    ),
    DetectionRule(
        id="rule-04",
        name="RDS Oversized Instance in Dev",
        service="RDS",
        severity="high",
        category="overprovisioned",
        estimated_monthly_saving=300,
        description="RDS instance uses an oversized instance class in a non-production environment.",
        check=check_rds_oversized,
    ),
    DetectionRule(
        id="rule-05",
        name="ECS Over-Scaled Service",
        service="ECS",
        severity="high",
        category="overprovisioned",
        estimated_monthly_saving=150,
        description="ECS service runs more than 2 tasks.",
        check=check_ecs_over_scaled,
    ),
    DetectionRule(
        id="rule-06",
        name="ECS Fargate CPU/Memory Over-Allocated",
        service="ECS",
        severity="medium",
        category="overprovisioned",
        estimated_monthly_saving=100,
        description="ECS Fargate task has very high CPU and memory allocation relative to typical usage.",
        check=check_fargate_over_allocated,
    ),
    DetectionRule(
        id="rule-07",
        name="API Gateway with Unnecessary NLB",
        service="API Gateway",
        severity="high",
        category="architectural",
        estimated_monthly_saving=180,
        description="API Gateway is paired with a Network Load Balancer, adding unnecessary cost.",
        check=check_api_gateway_nlb,
    ),
    DetectionRule(
        id="rule-08",
        name="API Gateway REST Instead of HTTP API",
        service="API Gateway",
        severity="medium",
        category="architectural",
        estimated_monthly_saving=70,
        description="API Gateway REST API is used where the cheaper HTTP API would suffice.",
        check=check_rest_api,
    ),
    DetectionRule(
        id="rule-09",
        name="S3 Missing Lifecycle Policy",
        service="S3",
        severity="medium",
        category="missing-feature",
        estimated_monthly_saving=50,
        description="S3 bucket has no lifecycle policy, allowing objects to accumulate indefinitely.",
        check=check_s3_lifecycle,
    ),
    DetectionRule(
        id="rule-10",
        name="S3 Missing Intelligent Tiering",
        service="S3",
        severity="low",
        category="missing-feature",
        estimated_monthly_saving=30,
        description="S3 bucket with lifecycle rules does not use Intelligent Tiering.",
        check=check_s3_intelligent_tiering,
    ),
    DetectionRule(
        id="rule-11",
        name="NAT Gateway Overuse",
        service="NAT Gateway",
        severity="high",
        category="overprovisioned",
        estimated_monthly_saving=90,
        description="More than one NAT Gateway is deployed.",
        check=check_nat_gateways,
    ),
    DetectionRule(
        id="rule-12",
        name="DynamoDB Provisioned Capacity",
        service="DynamoDB",
        severity="medium",
        category="architectural",
        estimated_monthly_saving=60,
        description="DynamoDB table uses PROVISIONED billing, which can be wasteful for variable workloads.",
        check=check_dynamodb_provisioned,
    ),
    DetectionRule(
        id="rule-13",
        name="ElastiCache Oversized Cluster",
        service="ElastiCache",
        severity="medium",
        category="overprovisioned",
        estimated_monthly_saving=120,
        description="ElastiCache cluster uses large node types with more than 2 nodes.",
        check=check_elasticache_oversized,
    ),
    DetectionRule(
        id="rule-14",
        name="CloudFront PriceClass_All",
        service="CloudFront",
        severity="low",
        category="overprovisioned",
        estimated_monthly_saving=25,
        description="CloudFront distribution uses PriceClass_All, enabling the most expensive edge locations.",
        check=check_cloudfront_price_class,
    ),
    DetectionRule(
        id="rule-15",
        name="EC2 Previous Generation Instance Type",
        service="EC2",
        severity="medium",
        category="overprovisioned",
        estimated_monthly_saving=80,
        description="EC2 instance uses a previous generation instance type with worse price-performance.",
        check=check_ec2_previous_generation,
    ),
]
