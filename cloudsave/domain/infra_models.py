"""
Domain models for the normalized infrastructure inventory.
Every dialect extractor produces a NormalizedInfra; the rule engine only ever reads this shape.
"""
from typing import List, Dict, Any, Optional, Iterable
from dataclasses import dataclass, field


# Environment labels resolved by the extractors
ENV_PROD = "prod"
ENV_STAGING = "staging"
ENV_DEV = "dev"


@dataclass
class LambdaFunction:
    """A Lambda function and the settings that drive its cost."""
    name: str
    memory: int = 128  # MB
    timeout: int = 30  # seconds
    runtime: str = "nodejs20.x"
    provisioned: bool = False
    architecture: str = "X86_64"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "memory": self.memory,
            "timeout": self.timeout,
            "runtime": self.runtime,
            "provisioned": self.provisioned,
            "architecture": self.architecture,
        }


@dataclass
class RdsInstance:
    """An RDS database instance."""
    name: str
    instance_class: str = "db.t3.medium"
    engine: str = "mysql"
    multi_az: bool = False
    env: str = ENV_DEV
    storage: int = 100  # GB
    iops: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "name": self.name,
            "instance_class": self.instance_class,
            "engine": self.engine,
            "multi_az": self.multi_az,
            "env": self.env,
            "storage": self.storage,
        }
        if self.iops is not None:
            result["iops"] = self.iops
        return result


@dataclass
class EcsService:
    """An ECS service with the task size it runs."""
    name: str
    desired_count: int = 1
    cpu: int = 256  # CPU units (1024 = 1 vCPU)
    memory: int = 512  # MiB
    launch_type: str = "FARGATE"  # "FARGATE" | "EC2"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "desired_count": self.desired_count,
            "cpu": self.cpu,
            "memory": self.memory,
            "launch_type": self.launch_type,
        }


@dataclass
class ApiGatewayApi:
    """An API Gateway API."""
    name: str
    type: str = "REST"  # "REST" | "HTTP" | "WebSocket"
    uses_nlb: bool = False
    uses_vpc_link: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "type": self.type,
            "uses_nlb": self.uses_nlb,
            "uses_vpc_link": self.uses_vpc_link,
        }


@dataclass
class S3Bucket:
    """An S3 bucket and its storage management features."""
    name: str
    has_lifecycle_policy: bool = False
    has_intelligent_tiering: bool = False
    versioning_enabled: bool = False
    public_access: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "has_lifecycle_policy": self.has_lifecycle_policy,
            "has_intelligent_tiering": self.has_intelligent_tiering,
            "versioning_enabled": self.versioning_enabled,
            "public_access": self.public_access,
        }


@dataclass
class Ec2Instance:
    """An EC2 instance."""
    name: str
    instance_type: str = "t3.medium"
    env: str = ENV_DEV

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "instance_type": self.instance_type,
            "env": self.env,
        }


@dataclass
class DynamoDbTable:
    """A DynamoDB table."""
    name: str
    billing_mode: str = "PROVISIONED"  # "PROVISIONED" | "PAY_PER_REQUEST"
    read_capacity: Optional[int] = None
    write_capacity: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "name": self.name,
            "billing_mode": self.billing_mode,
        }
        if self.read_capacity is not None:
            result["read_capacity"] = self.read_capacity
        if self.write_capacity is not None:
            result["write_capacity"] = self.write_capacity
        return result


@dataclass
class CloudFrontDistribution:
    """A CloudFront distribution."""
    name: str
    price_class: str = "PriceClass_100"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "price_class": self.price_class,
        }


@dataclass
class NatGatewayGroup:
    """All NAT gateways of a template, modeled as one named group with a total count."""
    name: str
    count: int = 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "count": self.count,
        }


@dataclass
class ElastiCacheCluster:
    """An ElastiCache cluster or replication group."""
    name: str
    node_type: str = "cache.t3.micro"
    num_nodes: int = 1
    engine: str = "redis"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "node_type": self.node_type,
            "num_nodes": self.num_nodes,
            "engine": self.engine,
        }


# (attribute, serialized key, collection key, display name) in canonical order
COLLECTIONS = (
    ("lambda_functions", "lambda", "functions", "Lambda"),
    ("rds_instances", "rds", "instances", "RDS"),
    ("ecs_services", "ecs", "services", "ECS"),
    ("api_gateway_apis", "api_gateway", "apis", "API Gateway"),
    ("s3_buckets", "s3", "buckets", "S3"),
    ("ec2_instances", "ec2", "instances", "EC2"),
    ("dynamodb_tables", "dynamodb", "tables", "DynamoDB"),
    ("cloudfront_distributions", "cloudfront", "distributions", "CloudFront"),
    ("nat_gateways", "nat", "gateways", "NAT Gateway"),
    ("elasticache_clusters", "elasticache", "clusters", "ElastiCache"),
)


@dataclass
class NormalizedInfra:
    """
    Canonical inventory of AWS resources found in one submission.

    Collections are always lists on the model; empty collections are omitted
    when serialized. NAT gateways hold at most one logical group per model.
    """
    lambda_functions: List[LambdaFunction] = field(default_factory=list)
    rds_instances: List[RdsInstance] = field(default_factory=list)
    ecs_services: List[EcsService] = field(default_factory=list)
    api_gateway_apis: List[ApiGatewayApi] = field(default_factory=list)
    s3_buckets: List[S3Bucket] = field(default_factory=list)
    ec2_instances: List[Ec2Instance] = field(default_factory=list)
    dynamodb_tables: List[DynamoDbTable] = field(default_factory=list)
    cloudfront_distributions: List[CloudFrontDistribution] = field(default_factory=list)
    nat_gateways: List[NatGatewayGroup] = field(default_factory=list)
    elasticache_clusters: List[ElastiCacheCluster] = field(default_factory=list)

    def is_empty(self) -> bool:
        """True when no collection holds a resource."""
        return not any(getattr(self, attr) for attr, _, _, _ in COLLECTIONS)

    def detected_services(self) -> List[str]:
        """Display names of the non-empty collections, in canonical order."""
        return [display for attr, _, _, display in COLLECTIONS if getattr(self, attr)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization, omitting empty collections."""
        result = {}
        for attr, key, items_key, _ in COLLECTIONS:
            items = getattr(self, attr)
            if items:
                result[key] = {items_key: [item.to_dict() for item in items]}
        return result


def merge_infra(models: Iterable[NormalizedInfra]) -> NormalizedInfra:
    """
    Merge partial models into one.

    Same-typed collections are concatenated in iteration order. NAT groups are
    collapsed into a single group named after the first one seen, whose count
    is the sum of all counts.

    Args:
        models: Partial models, typically one per archive member

    Returns:
        Merged NormalizedInfra
    """
    merged = NormalizedInfra()
    nat_groups: List[NatGatewayGroup] = []

    for model in models:
        for attr, _, _, _ in COLLECTIONS:
            if attr == "nat_gateways":
                nat_groups.extend(model.nat_gateways)
            else:
                getattr(merged, attr).extend(getattr(model, attr))

    if nat_groups:
        merged.nat_gateways = [
            NatGatewayGroup(
                name=nat_groups[0].name,
                count=sum(group.count for group in nat_groups),
            )
        ]

    return merged
