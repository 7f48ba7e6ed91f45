"""
CloudFormation template extractor (JSON and YAML, including SAM resources).

JSON templates are read with the json module. YAML templates are read with PyYAML
using a loader that maps short-form intrinsic tags (!Ref, !Sub, !GetAtt, ...) to
their long form. If neither parse succeeds, a line-oriented scanner recovers the
Resources section so a partially broken template still yields an inventory.
"""
import re
import json
import logging
from typing import Any, Dict, List, Optional

import yaml

from cloudsave.domain.infra_models import (
    NormalizedInfra,
    LambdaFunction,
    RdsInstance,
    EcsService,
    ApiGatewayApi,
    S3Bucket,
    Ec2Instance,
    DynamoDbTable,
    CloudFrontDistribution,
    NatGatewayGroup,
    ElastiCacheCluster,
    ENV_DEV,
)
from cloudsave.parsers.common import coerce_int, detect_env, ENV_TAG_KEYS


logger = logging.getLogger(__name__)

DEFAULT_ENV = ENV_DEV
NAT_GROUP_NAME = "nat-gateway"

Resources = Dict[str, Dict[str, Any]]


class CloudFormationLoader(yaml.SafeLoader):
    """SafeLoader that accepts CloudFormation short-form intrinsic function tags."""


def _intrinsic_constructor(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> Dict[str, Any]:
    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)

    if tag_suffix in ("Ref", "Condition"):
        return {tag_suffix: value}
    if tag_suffix == "GetAtt" and isinstance(value, str):
        value = value.split(".", 1)
    return {f"Fn::{tag_suffix}": value}


CloudFormationLoader.add_multi_constructor("!", _intrinsic_constructor)


# ===== Fallback line scanner =====

_SCANNER_KEY_VALUE = re.compile(r"^-?\s*([\w:.-]+)\s*:\s*(.*)$")


def _scalar(raw: str) -> Any:
    value = raw.strip()
    if value.startswith("!Ref "):
        return {"Ref": value[5:].strip()}
    if value.startswith("!"):
        tag, _, rest = value.partition(" ")
        return {f"Fn::{tag[1:]}": rest.strip()}
    value = value.strip("'\"")
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    if re.fullmatch(r"-?\d+", value):
        return int(value)
    return value


def scan_resources(content: str) -> Resources:
    """
    Recover the Resources section of a template that no parser accepts.

    Finds the `Resources:` line, treats every key at the first indentation level
    below it as a logical ID, and captures its `Type` plus a flattened view of
    its `Properties` block up to the next sibling. Nested property keys are
    flattened, first occurrence wins.

    Args:
        content: Raw template text

    Returns:
        Mapping of logical ID to {"Type": ..., "Properties": {...}}
    """
    lines = content.splitlines()
    start = next(
        (i for i, line in enumerate(lines) if re.match(r"^\s*Resources\s*:\s*$", line)),
        None,
    )
    if start is None:
        return {}

    base_indent = len(lines[start]) - len(lines[start].lstrip(" "))
    resources: Resources = {}
    resource_indent: Optional[int] = None
    attribute_indent: Optional[int] = None
    current: Optional[Dict[str, Any]] = None
    in_properties = False

    for line in lines[start + 1:]:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        indent = len(line) - len(line.lstrip(" "))
        if indent <= base_indent:
            # Next top-level section
            break
        if resource_indent is None:
            resource_indent = indent

        match = _SCANNER_KEY_VALUE.match(stripped)
        if indent == resource_indent:
            if match and not match.group(2):
                current = {"Type": None, "Properties": {}}
                resources[match.group(1)] = current
                attribute_indent = None
                in_properties = False
            else:
                current = None
            continue

        if current is None or not match:
            continue
        if attribute_indent is None:
            attribute_indent = indent

        key, value = match.group(1), match.group(2)
        if indent == attribute_indent:
            if key == "Type":
                current["Type"] = str(_scalar(value))
            in_properties = key == "Properties"
        elif in_properties:
            # Keys that open a nested block are kept as empty markers
            current["Properties"].setdefault(key, _scalar(value) if value else {})

    return {logical_id: r for logical_id, r in resources.items() if r.get("Type")}


def load_resources(content: str) -> Resources:
    """
    Parse a template and return its Resources mapping.

    JSON is tried when the content starts with '{', YAML otherwise; the line
    scanner is the last resort.
    """
    document: Any = None
    stripped = content.strip()
    try:
        if stripped.startswith("{"):
            document = json.loads(stripped)
        else:
            document = yaml.load(content, Loader=CloudFormationLoader)
    except (json.JSONDecodeError, yaml.YAMLError) as error:
        logger.warning(f"CloudFormation template did not parse ({type(error).__name__}); using line scanner")
        return scan_resources(content)

    if not isinstance(document, dict):
        logger.warning("CloudFormation template has no top-level mapping; using line scanner")
        return scan_resources(content)

    resources = document.get("Resources")
    if not isinstance(resources, dict):
        return {}
    # YAML keys such as 1234: load as ints; logical IDs are always names
    return {
        str(logical_id): resource
        for logical_id, resource in resources.items()
        if isinstance(resource, dict) and isinstance(resource.get("Type"), str)
    }


# ===== Property helpers =====

def _props(resource: Dict[str, Any]) -> Dict[str, Any]:
    props = resource.get("Properties")
    return props if isinstance(props, dict) else {}


def _str_prop(props: Dict[str, Any], key: str) -> Optional[str]:
    """String value of a property; intrinsic functions do not resolve to a string."""
    value = props.get(key)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


def _bool_prop(props: Dict[str, Any], key: str) -> bool:
    value = props.get(key)
    return value is True or (isinstance(value, str) and value.lower() == "true")


def _find_key(value: Any, key: str) -> Any:
    """Depth-first search for key in nested mappings and lists."""
    if isinstance(value, dict):
        if key in value:
            return value[key]
        for nested in value.values():
            found = _find_key(nested, key)
            if found is not None:
                return found
    elif isinstance(value, list):
        for nested in value:
            found = _find_key(nested, key)
            if found is not None:
                return found
    return None


def _ref(value: Any) -> Optional[str]:
    if isinstance(value, dict) and isinstance(value.get("Ref"), str):
        return value["Ref"]
    if isinstance(value, str):
        return value
    return None


def _env_tag(props: Dict[str, Any]) -> Optional[str]:
    tags = props.get("Tags")
    if isinstance(tags, list):
        for tag in tags:
            if isinstance(tag, dict) and str(tag.get("Key", "")).lower() in ENV_TAG_KEYS:
                value = tag.get("Value")
                return value if isinstance(value, str) else None
    elif isinstance(tags, dict):
        # SAM uses a plain map for tags
        for key, value in tags.items():
            if str(key).lower() in ENV_TAG_KEYS and isinstance(value, str):
                return value
    return None


def _of_type(resources: Resources, *types: str) -> List[tuple]:
    return [(logical_id, r) for logical_id, r in resources.items() if r["Type"] in types]


# ===== Resource extraction =====

def _parse_lambda(resources: Resources, infra: NormalizedInfra) -> None:
    provisioned_targets = set()
    for _, resource in _of_type(resources, "AWS::Lambda::Alias", "AWS::Lambda::Version"):
        props = _props(resource)
        if props.get("ProvisionedConcurrencyConfig"):
            target = _ref(props.get("FunctionName"))
            if target:
                provisioned_targets.add(target)

    for logical_id, resource in _of_type(resources, "AWS::Lambda::Function", "AWS::Serverless::Function"):
        props = _props(resource)
        architectures = props.get("Architectures")
        architecture = architectures[0] if isinstance(architectures, list) and architectures else "x86_64"
        infra.lambda_functions.append(
            LambdaFunction(
                name=_str_prop(props, "FunctionName") or logical_id,
                memory=coerce_int(props.get("MemorySize"), 128),
                timeout=coerce_int(props.get("Timeout"), 30),
                runtime=_str_prop(props, "Runtime") or "nodejs20.x",
                provisioned=(
                    logical_id in provisioned_targets
                    or bool(props.get("ProvisionedConcurrencyConfig"))
                ),
                architecture=str(architecture).upper(),
            )
        )


def _parse_rds(resources: Resources, infra: NormalizedInfra) -> None:
    for logical_id, resource in _of_type(resources, "AWS::RDS::DBInstance"):
        props = _props(resource)
        name = _str_prop(props, "DBInstanceIdentifier") or logical_id
        infra.rds_instances.append(
            RdsInstance(
                name=name,
                instance_class=_str_prop(props, "DBInstanceClass") or "db.t3.medium",
                engine=_str_prop(props, "Engine") or "mysql",
                multi_az=_bool_prop(props, "MultiAZ"),
                env=detect_env([logical_id, name], _env_tag(props), DEFAULT_ENV),
                storage=coerce_int(props.get("AllocatedStorage"), 100),
                iops=coerce_int(props.get("Iops"), None),
            )
        )


def _task_launch_type(props: Dict[str, Any]) -> str:
    compatibilities = props.get("RequiresCompatibilities")
    if isinstance(compatibilities, list) and "EC2" in compatibilities and "FARGATE" not in compatibilities:
        return "EC2"
    return "FARGATE"


def _parse_ecs(resources: Resources, infra: NormalizedInfra) -> None:
    task_defs = dict(_of_type(resources, "AWS::ECS::TaskDefinition"))
    linked = set()

    for logical_id, resource in _of_type(resources, "AWS::ECS::Service"):
        props = _props(resource)
        task_ref = _ref(props.get("TaskDefinition"))
        task_props = _props(task_defs[task_ref]) if task_ref in task_defs else {}
        if task_ref in task_defs:
            linked.add(task_ref)

        infra.ecs_services.append(
            EcsService(
                name=_str_prop(props, "ServiceName") or logical_id,
                desired_count=coerce_int(props.get("DesiredCount"), 1),
                cpu=coerce_int(task_props.get("Cpu"), 256),
                memory=coerce_int(task_props.get("Memory"), 512),
                launch_type=(_str_prop(props, "LaunchType") or "FARGATE").upper(),
            )
        )

    # Task definitions no service runs are still reported
    for logical_id, resource in task_defs.items():
        if logical_id in linked:
            continue
        props = _props(resource)
        infra.ecs_services.append(
            EcsService(
                name=_str_prop(props, "Family") or logical_id,
                desired_count=1,
                cpu=coerce_int(props.get("Cpu"), 256),
                memory=coerce_int(props.get("Memory"), 512),
                launch_type=_task_launch_type(props),
            )
        )


def _parse_api_gateway(resources: Resources, infra: NormalizedInfra) -> None:
    rest_vpc_link = bool(_of_type(resources, "AWS::ApiGateway::VpcLink"))
    network_lb = any(
        _str_prop(_props(resource), "Type") == "network"
        for _, resource in _of_type(resources, "AWS::ElasticLoadBalancingV2::LoadBalancer")
    )
    # REST API VPC links always target a network load balancer
    uses_nlb = rest_vpc_link or network_lb
    http_vpc_link = bool(_of_type(resources, "AWS::ApiGatewayV2::VpcLink"))

    api_types = ("AWS::ApiGateway::RestApi", "AWS::Serverless::Api", "AWS::ApiGatewayV2::Api", "AWS::Serverless::HttpApi")
    for logical_id, resource in _of_type(resources, *api_types):
        props = _props(resource)
        name = _str_prop(props, "Name") or logical_id
        if resource["Type"] in ("AWS::ApiGateway::RestApi", "AWS::Serverless::Api"):
            infra.api_gateway_apis.append(
                ApiGatewayApi(name=name, type="REST", uses_nlb=uses_nlb, uses_vpc_link=rest_vpc_link)
            )
        else:
            protocol = (_str_prop(props, "ProtocolType") or "HTTP").upper()
            infra.api_gateway_apis.append(
                ApiGatewayApi(
                    name=name,
                    type="WebSocket" if protocol == "WEBSOCKET" else "HTTP",
                    uses_nlb=False,
                    uses_vpc_link=http_vpc_link,
                )
            )


def _parse_s3(resources: Resources, infra: NormalizedInfra) -> None:
    for logical_id, resource in _of_type(resources, "AWS::S3::Bucket"):
        props = _props(resource)
        serialized = json.dumps(props, default=str)

        versioning = _find_key(props.get("VersioningConfiguration"), "Status")
        if versioning is None:
            # Flattened by the line scanner
            versioning = props.get("Status")

        blocked = _find_key(props.get("PublicAccessBlockConfiguration"), "BlockPublicAcls")
        if blocked is None:
            blocked = props.get("BlockPublicAcls")

        infra.s3_buckets.append(
            S3Bucket(
                name=_str_prop(props, "BucketName") or logical_id,
                has_lifecycle_policy="LifecycleConfiguration" in props,
                has_intelligent_tiering=(
                    "IntelligentTieringConfigurations" in props
                    or "INTELLIGENT_TIERING" in serialized
                ),
                versioning_enabled=str(versioning).lower() == "enabled",
                public_access=not (blocked is True or str(blocked).lower() == "true"),
            )
        )


def _parse_ec2(resources: Resources, infra: NormalizedInfra) -> None:
    for logical_id, resource in _of_type(resources, "AWS::EC2::Instance"):
        props = _props(resource)
        infra.ec2_instances.append(
            Ec2Instance(
                name=logical_id,
                instance_type=_str_prop(props, "InstanceType") or "t3.medium",
                env=detect_env([logical_id], _env_tag(props), DEFAULT_ENV),
            )
        )


def _parse_dynamodb(resources: Resources, infra: NormalizedInfra) -> None:
    for logical_id, resource in _of_type(resources, "AWS::DynamoDB::Table"):
        props = _props(resource)
        infra.dynamodb_tables.append(
            DynamoDbTable(
                name=_str_prop(props, "TableName") or logical_id,
                billing_mode=(_str_prop(props, "BillingMode") or "PROVISIONED").upper(),
                read_capacity=coerce_int(_find_key(props, "ReadCapacityUnits"), None),
                write_capacity=coerce_int(_find_key(props, "WriteCapacityUnits"), None),
            )
        )


def _parse_cloudfront(resources: Resources, infra: NormalizedInfra) -> None:
    for logical_id, resource in _of_type(resources, "AWS::CloudFront::Distribution"):
        price_class = _find_key(_props(resource), "PriceClass")
        infra.cloudfront_distributions.append(
            CloudFrontDistribution(
                name=logical_id,
                price_class=price_class if isinstance(price_class, str) else "PriceClass_100",
            )
        )


def _parse_nat(resources: Resources, infra: NormalizedInfra) -> None:
    gateways = _of_type(resources, "AWS::EC2::NatGateway")
    if gateways:
        infra.nat_gateways.append(NatGatewayGroup(name=NAT_GROUP_NAME, count=len(gateways)))


def _elasticache_nodes(props: Dict[str, Any]) -> int:
    nodes = coerce_int(props.get("NumCacheNodes"), None) or coerce_int(props.get("NumCacheClusters"), None)
    if nodes:
        return nodes
    node_groups = coerce_int(props.get("NumNodeGroups"), None)
    if node_groups:
        return node_groups * (coerce_int(props.get("ReplicasPerNodeGroup"), 0) + 1)
    return 1


def _parse_elasticache(resources: Resources, infra: NormalizedInfra) -> None:
    cache_types = ("AWS::ElastiCache::CacheCluster", "AWS::ElastiCache::ReplicationGroup")
    for logical_id, resource in _of_type(resources, *cache_types):
        props = _props(resource)
        infra.elasticache_clusters.append(
            ElastiCacheCluster(
                name=logical_id,
                node_type=_str_prop(props, "CacheNodeType") or "cache.t3.micro",
                num_nodes=_elasticache_nodes(props),
                engine=_str_prop(props, "Engine") or "redis",
            )
        )


_RESOURCE_PARSERS = (
    _parse_lambda,
    _parse_rds,
    _parse_ecs,
    _parse_api_gateway,
    _parse_s3,
    _parse_ec2,
    _parse_dynamodb,
    _parse_cloudfront,
    _parse_nat,
    _parse_elasticache,
)


def parse_cloudformation(content: str) -> NormalizedInfra:
    """
    Parse a CloudFormation (or SAM) template into a NormalizedInfra.

    Args:
        content: Raw template text, JSON or YAML

    Returns:
        NormalizedInfra holding every recognised resource
    """
    resources = load_resources(content)
    logger.debug(f"Found {len(resources)} CloudFormation resources")

    infra = NormalizedInfra()
    for parse in _RESOURCE_PARSERS:
        parse(resources, infra)
    return infra
