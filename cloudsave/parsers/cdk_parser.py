"""
AWS CDK extractor for TypeScript, JavaScript and Python stacks.

This is a heuristic text scan, not a compiler front end. Each construct
instantiation (`new lambda.Function(this, 'Id', {...})` or
`_lambda.Function(self, "Id", memory_size=...)`) is located, its argument list is
delimited by balanced-bracket scanning, and attributes are read from that argument
list only, so values are never paired with the wrong construct.
"""
import re
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass

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
    ENV_STAGING,
)
from cloudsave.parsers.common import coerce_int, detect_env, placeholder_name, ENV_TAG_KEYS


logger = logging.getLogger(__name__)

DEFAULT_ENV = ENV_STAGING
NAT_GROUP_NAME = "vpc-nat-gateway"

_QUOTES = "'\"`"
_OPENERS = "([{"
_CLOSERS = ")]}"

# ec2.InstanceClass enum members -> instance family
INSTANCE_CLASS_FAMILIES: Dict[str, str] = {
    "BURSTABLE2": "t2",
    "BURSTABLE3": "t3",
    "BURSTABLE3_AMD": "t3a",
    "BURSTABLE4_GRAVITON": "t4g",
    "MEMORY4": "r4",
    "MEMORY5": "r5",
    "MEMORY6_GRAVITON": "r6g",
    "MEMORY6_INTEL": "r6i",
    "STANDARD4": "m4",
    "STANDARD5": "m5",
    "STANDARD6_GRAVITON": "m6g",
    "STANDARD6_INTEL": "m6i",
    "COMPUTE4": "c4",
    "COMPUTE5": "c5",
    "COMPUTE6_GRAVITON": "c6g",
}

_INSTANCE_TYPE_OF = re.compile(
    r"InstanceType\.of\(\s*(?:[\w.]*InstanceClass\.)?(\w+)\s*,\s*(?:[\w.]*InstanceSize\.)?(\w+)\s*\)"
)
_INSTANCE_TYPE_LITERAL = re.compile(r"InstanceType\(\s*['\"]([\w.]+)['\"]\s*\)")
_DURATION = re.compile(r"(?:[\w.]*Duration\.)?(seconds|minutes|hours)\(\s*(\d+)")
_DURATION_FACTORS = {"seconds": 1, "minutes": 60, "hours": 3600}
_STRING_LITERAL = re.compile(r"^\s*(?:['\"`])([^'\"`]*)(?:['\"`])\s*$")
_ASSIGNMENT = re.compile(
    r"(?:\b(?:const|let|var)\s+|\b(?:this|self)\.)?([A-Za-z_]\w*)\s*(?::\s*[\w.<>\[\]]+\s*)?=\s*$"
)
_TAG_CALL = re.compile(
    r"Tags\.of\(\s*([\w.]+)\s*\)\.add\(\s*['\"]([^'\"]+)['\"]\s*,\s*['\"]([^'\"]+)['\"]"
)
_STACK_CLASS = re.compile(r"\bclass\s+(\w+)\s*(?:extends\b|\()")
_SCOPE_ARG = re.compile(r"^\s*(?:this|self|scope)\b")


# ===== Text scanning =====

def _strip_comments(text: str) -> str:
    """
    Remove comments outside string literals.

    Block comments are always removed. `//` and `#` start a comment only at the
    start of a line or after whitespace, so URLs and TypeScript private fields
    survive.
    """
    out = []
    quote = None
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if quote:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue
        if ch in _QUOTES:
            quote = ch
            out.append(ch)
            i += 1
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        at_boundary = i == 0 or text[i - 1].isspace()
        if at_boundary and (ch == "#" or text.startswith("//", i)):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _matching_bracket(text: str, open_index: int) -> int:
    """Index of the bracket closing text[open_index], or -1 when unbalanced."""
    depth = 0
    quote = None
    i = open_index
    n = len(text)
    while i < n:
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
        elif ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _depth_map(text: str) -> List[int]:
    """Bracket depth of every character; characters inside strings are marked -1."""
    depths = [0] * len(text)
    depth = 0
    quote = None
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if quote:
            depths[i] = -1
            if ch == "\\" and i + 1 < n:
                depths[i + 1] = -1
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
            depths[i] = -1
        elif ch in _OPENERS:
            depths[i] = depth
            depth += 1
        elif ch in _CLOSERS:
            depth = max(0, depth - 1)
            depths[i] = depth
        else:
            depths[i] = depth
        i += 1
    return depths


def _expression_end(text: str, start: int) -> int:
    """End of the expression starting at start: the next top-level comma or closing bracket."""
    depth = 0
    quote = None
    i = start
    n = len(text)
    while i < n:
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
        elif ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            if depth == 0:
                return i
            depth -= 1
        elif ch == "," and depth == 0:
            return i
        i += 1
    return n


def _split_arguments(text: str) -> List[str]:
    parts = []
    start = 0
    while start <= len(text):
        end = _expression_end(text, start)
        parts.append(text[start:end])
        if end >= len(text) or text[end] != ",":
            break
        start = end + 1
    return [part for part in parts if part.strip()]


def _string_literal(expression: Optional[str]) -> Optional[str]:
    if expression is None:
        return None
    match = _STRING_LITERAL.match(expression)
    return match.group(1) if match else None


class _Scope:
    """Property lookups restricted to the top level of one construct's props."""

    def __init__(self, text: str):
        self.text = text
        self.depths = _depth_map(text)

    def _key_pattern(self, keys: Sequence[str], suffix: str) -> "re.Pattern":
        names = "|".join(re.escape(key) for key in keys)
        return re.compile(rf"(?<![\w.$])(?:{names}){suffix}")

    def raw(self, *keys: str) -> Optional[str]:
        """Expression assigned to the first matching top-level key (`key: x` or `key=x`)."""
        for match in self._key_pattern(keys, r"\s*[:=](?!=)\s*").finditer(self.text):
            if self.depths[match.start()] != 0:
                continue
            end = _expression_end(self.text, match.end())
            return self.text[match.end():end].strip()
        return None

    def has(self, *keys: str) -> bool:
        return self.raw(*keys) is not None or self.shorthand(*keys)

    def shorthand(self, *keys: str) -> bool:
        """TypeScript shorthand property (`{ cluster, taskDefinition }`)."""
        for match in self._key_pattern(keys, r"\s*(?=,|$)").finditer(self.text):
            if self.depths[match.start()] == 0:
                return True
        return False

    def integer(self, *keys: str, default: Optional[int] = None) -> Optional[int]:
        return coerce_int(self.raw(*keys), default)

    def flag(self, *keys: str) -> bool:
        value = self.raw(*keys)
        return value is not None and value.lower() == "true"

    def string(self, *keys: str) -> Optional[str]:
        return _string_literal(self.raw(*keys))

    def contains(self, pattern: str) -> bool:
        """Search anywhere in the props, nested objects included."""
        return re.search(pattern, self.text) is not None


@dataclass
class Construct:
    """One construct instantiation found in the source."""
    class_name: str
    variable: Optional[str]
    construct_id: Optional[str]
    props: _Scope
    position: int

    def name(self, placeholder: str) -> str:
        return self.variable or self.construct_id or placeholder


def find_constructs(text: str, class_names: Sequence[str], namespaces: Sequence[str] = ()) -> List[Construct]:
    """
    Find instantiations of the given construct classes.

    A match counts as a construct when it is preceded by `new` or its first
    argument is the enclosing scope (this/self/scope). When namespaces are
    given, a qualified class (`lambda.Function`) must have one of them in its
    qualifier; unqualified imports are always accepted.

    Args:
        text: Comment-free source
        class_names: Construct class names to look for
        namespaces: Lower-case fragments one of which the qualifier must contain

    Returns:
        Constructs in source order
    """
    alternatives = "|".join(re.escape(name) for name in class_names)
    pattern = re.compile(rf"(\bnew\s+)?((?:[A-Za-z_$][\w$]*\.)*)\b({alternatives})\s*\(")
    constructs = []

    for match in pattern.finditer(text):
        qualifier = match.group(2).rstrip(".").lower()
        if qualifier and namespaces and not any(ns in qualifier for ns in namespaces):
            continue

        open_index = match.end() - 1
        close_index = _matching_bracket(text, open_index)
        arguments_text = text[open_index + 1:] if close_index == -1 else text[open_index + 1:close_index]
        arguments = _split_arguments(arguments_text)

        if not match.group(1) and not (arguments and _SCOPE_ARG.match(arguments[0])):
            continue

        props_text = ",".join(arguments[2:]).strip()
        if props_text.startswith("{") and props_text.endswith("}"):
            props_text = props_text[1:-1]

        line_start = text.rfind("\n", 0, match.start()) + 1
        assignment = _ASSIGNMENT.search(text[line_start:match.start()])

        constructs.append(
            Construct(
                class_name=match.group(3),
                variable=assignment.group(1) if assignment else None,
                construct_id=_string_literal(arguments[1]) if len(arguments) > 1 else None,
                props=_Scope(props_text),
                position=match.start(),
            )
        )

    return constructs


# ===== Value interpretation =====

def _instance_size(size: str) -> str:
    size = size.upper()
    match = re.fullmatch(r"XLARGE(\d+)", size)
    if match:
        return f"{match.group(1)}xlarge"
    return size.lower()


def instance_type_from_expression(expression: Optional[str]) -> Optional[str]:
    """
    Resolve an ec2.InstanceType expression to an instance type string.

    `InstanceType.of(InstanceClass.BURSTABLE3, InstanceSize.MICRO)` gives
    't3.micro'; `new InstanceType('m4.large')` gives 'm4.large'.
    """
    if not expression:
        return None
    match = _INSTANCE_TYPE_OF.search(expression)
    if match:
        family = INSTANCE_CLASS_FAMILIES.get(match.group(1).upper(), match.group(1).lower())
        return f"{family}.{_instance_size(match.group(2))}"
    match = _INSTANCE_TYPE_LITERAL.search(expression)
    if match:
        return match.group(1)
    return _string_literal(expression)


def _duration_seconds(expression: Optional[str]) -> Optional[int]:
    if not expression:
        return None
    match = _DURATION.search(expression)
    if not match:
        return None
    return int(match.group(2)) * _DURATION_FACTORS[match.group(1)]


def _enum_member(expression: Optional[str], enum: str) -> Optional[str]:
    if not expression:
        return None
    match = re.search(rf"{enum}\.(\w+)", expression)
    return match.group(1) if match else None


def normalize_price_class(member: str) -> str:
    """PRICE_CLASS_ALL -> PriceClass_All, PRICE_CLASS_100 -> PriceClass_100."""
    suffix = member.upper().replace("PRICE_CLASS_", "")
    return f"PriceClass_{'All' if suffix == 'ALL' else suffix}"


# ===== Environment resolution =====

@dataclass
class _EnvContext:
    stack_names: List[str]
    stack_tag: Optional[str]
    variable_tags: Dict[str, str]

    def resolve(self, construct: Construct) -> str:
        fallback = detect_env(self.stack_names, self.stack_tag, DEFAULT_ENV)
        tag = self.variable_tags.get(construct.variable or "")
        return detect_env([construct.variable, construct.construct_id], tag, fallback)


def _env_context(text: str) -> _EnvContext:
    stack_tag = None
    variable_tags: Dict[str, str] = {}
    for target, key, value in _TAG_CALL.findall(text):
        if key.lower() not in ENV_TAG_KEYS:
            continue
        target = re.sub(r"^(?:this|self)\.", "", target)
        if target in ("this", "self", "app", "stack", "scope"):
            stack_tag = value
        else:
            variable_tags[target] = value
    return _EnvContext(
        stack_names=_STACK_CLASS.findall(text),
        stack_tag=stack_tag,
        variable_tags=variable_tags,
    )


# ===== Resource extraction =====

def _parse_lambda(text: str, infra: NormalizedInfra, env: _EnvContext) -> None:
    functions = find_constructs(
        text,
        ("Function", "NodejsFunction", "PythonFunction", "GoFunction", "DockerImageFunction", "SingletonFunction"),
        ("lambda", "nodejs", "python", "go"),
    )
    aliases = find_constructs(text, ("Alias", "Version"), ("lambda",))

    for index, construct in enumerate(functions, start=1):
        props = construct.props
        provisioned = props.contains(r"provisioned_?[cC]oncurrent_?[eE]xecutions\s*[:=]\s*[1-9]")
        if construct.variable and not provisioned:
            provisioned = any(
                alias.props.contains(rf"\b{re.escape(construct.variable)}\.")
                and alias.props.integer("provisionedConcurrentExecutions", "provisioned_concurrent_executions", default=0) > 0
                for alias in aliases
            )

        infra.lambda_functions.append(
            LambdaFunction(
                name=construct.name(placeholder_name("lambda-function", index)),
                memory=props.integer("memorySize", "memory_size", default=128),
                timeout=_duration_seconds(props.raw("timeout")) or 30,
                runtime=_enum_member(props.raw("runtime"), "Runtime") or "NODEJS_20_X",
                provisioned=provisioned,
                architecture=(_enum_member(props.raw("architecture"), "Architecture") or "X86_64").upper(),
            )
        )


def _parse_rds(text: str, infra: NormalizedInfra, env: _EnvContext) -> None:
    instances = find_constructs(
        text,
        ("DatabaseInstance", "DatabaseInstanceFromSnapshot", "DatabaseInstanceReadReplica", "CfnDBInstance"),
        ("rds",),
    )

    for index, construct in enumerate(instances, start=1):
        props = construct.props
        instance_class = props.string("dbInstanceClass", "db_instance_class")
        if instance_class is None:
            instance_type = instance_type_from_expression(props.raw("instanceType", "instance_type"))
            if instance_type:
                instance_class = instance_type if instance_type.startswith("db.") else f"db.{instance_type}"

        engine = _enum_member(props.raw("engine"), "DatabaseInstanceEngine") or props.string("engine")

        infra.rds_instances.append(
            RdsInstance(
                name=construct.name(placeholder_name("rds-instance", index)),
                instance_class=instance_class or "db.t3.medium",
                engine=(engine or "mysql").lower(),
                multi_az=props.flag("multiAz", "multi_az"),
                env=env.resolve(construct),
                storage=props.integer("allocatedStorage", "allocated_storage", default=100),
                iops=props.integer("iops"),
            )
        )


_ECS_SERVICE_CLASSES = (
    "FargateService",
    "Ec2Service",
    "ApplicationLoadBalancedFargateService",
    "NetworkLoadBalancedFargateService",
    "ApplicationLoadBalancedEc2Service",
    "NetworkLoadBalancedEc2Service",
)
_ECS_TASK_CLASSES = ("FargateTaskDefinition", "Ec2TaskDefinition", "TaskDefinition")


def _task_launch_type(task: Construct) -> str:
    if task.class_name == "Ec2TaskDefinition":
        return "EC2"
    if task.class_name == "TaskDefinition" and _enum_member(task.props.raw("compatibility"), "Compatibility") == "EC2":
        return "EC2"
    return "FARGATE"


def _linked_task(service: Construct, tasks: List[Construct]) -> Optional[Construct]:
    props = service.props
    reference = props.raw("taskDefinition", "task_definition")
    if reference is None and props.shorthand("taskDefinition"):
        reference = "taskDefinition"
    if reference:
        reference = re.sub(r"^(?:this|self)\.", "", reference.strip())
        for task in tasks:
            if task.variable == reference:
                return task
    if reference is not None and len(tasks) == 1:
        return tasks[0]
    return None


def _parse_ecs(text: str, infra: NormalizedInfra, env: _EnvContext) -> None:
    services = find_constructs(text, _ECS_SERVICE_CLASSES, ("ecs",))
    tasks = find_constructs(text, _ECS_TASK_CLASSES, ("ecs",))
    linked = set()
    index = 0

    for service in services:
        index += 1
        task = _linked_task(service, tasks)
        if task is not None:
            linked.add(task.position)
            sizing = task.props
        else:
            # Pattern constructs size their task on the service itself
            sizing = service.props

        infra.ecs_services.append(
            EcsService(
                name=service.name(placeholder_name("ecs-service", index)),
                desired_count=service.props.integer("desiredCount", "desired_count", default=1),
                cpu=sizing.integer("cpu", default=256),
                memory=sizing.integer("memoryLimitMiB", "memory_limit_mib", default=512),
                launch_type="EC2" if "Ec2" in service.class_name else "FARGATE",
            )
        )

    # Task definitions no service runs are still reported
    for task in tasks:
        if task.position in linked:
            continue
        index += 1
        infra.ecs_services.append(
            EcsService(
                name=task.name(placeholder_name("ecs-service", index)),
                desired_count=1,
                cpu=task.props.integer("cpu", default=256),
                memory=task.props.integer("memoryLimitMiB", "memory_limit_mib", default=512),
                launch_type=_task_launch_type(task),
            )
        )


def _parse_api_gateway(text: str, infra: NormalizedInfra, env: _EnvContext) -> None:
    apis = find_constructs(
        text,
        ("RestApi", "LambdaRestApi", "SpecRestApi", "HttpApi", "WebSocketApi"),
        ("apigateway", "apigw", "api"),
    )
    has_vpc_link = bool(find_constructs(text, ("VpcLink",), ("apigateway", "apigw", "api")))
    has_nlb = bool(find_constructs(text, ("NetworkLoadBalancer",), ("elb", "loadbalanc", "lb")))

    for index, construct in enumerate(apis, start=1):
        references_link = construct.props.contains(r"\bvpc_?[lL]ink\b")
        uses_vpc_link = has_vpc_link or references_link
        if construct.class_name == "HttpApi":
            api_type, uses_nlb = "HTTP", False
        elif construct.class_name == "WebSocketApi":
            api_type, uses_nlb = "WebSocket", False
        else:
            # REST API VPC links always target a network load balancer
            api_type, uses_nlb = "REST", uses_vpc_link or has_nlb

        infra.api_gateway_apis.append(
            ApiGatewayApi(
                name=construct.name(placeholder_name("api", index)),
                type=api_type,
                uses_nlb=uses_nlb,
                uses_vpc_link=uses_vpc_link,
            )
        )


def _parse_s3(text: str, infra: NormalizedInfra, env: _EnvContext) -> None:
    for index, construct in enumerate(find_constructs(text, ("Bucket",), ("s3",)), start=1):
        props = construct.props
        has_lifecycle = props.has("lifecycleRules", "lifecycle_rules")
        if construct.variable and not has_lifecycle:
            has_lifecycle = re.search(
                rf"\b{re.escape(construct.variable)}\.(?:addLifecycleRule|add_lifecycle_rule)\s*\(", text
            ) is not None

        infra.s3_buckets.append(
            S3Bucket(
                name=construct.name(placeholder_name("s3-bucket", index)),
                has_lifecycle_policy=has_lifecycle,
                has_intelligent_tiering=(
                    props.has("intelligentTieringConfigurations", "intelligent_tiering_configurations")
                    or props.contains(r"INTELLIGENT_TIERING")
                ),
                versioning_enabled=props.flag("versioned"),
                public_access=_enum_member(props.raw("blockPublicAccess", "block_public_access"), "BlockPublicAccess") != "BLOCK_ALL",
            )
        )


def _parse_ec2(text: str, infra: NormalizedInfra, env: _EnvContext) -> None:
    for index, construct in enumerate(find_constructs(text, ("Instance",), ("ec2",)), start=1):
        instance_type = instance_type_from_expression(construct.props.raw("instanceType", "instance_type"))
        infra.ec2_instances.append(
            Ec2Instance(
                name=construct.name(placeholder_name("ec2", index)),
                instance_type=instance_type or "t3.medium",
                env=env.resolve(construct),
            )
        )


def _billing_mode(props: _Scope) -> str:
    member = _enum_member(props.raw("billingMode", "billing_mode"), "BillingMode")
    if member:
        return member.upper()
    billing = props.raw("billing")
    if billing and re.search(r"Billing\.provisioned", billing):
        return "PROVISIONED"
    return "PAY_PER_REQUEST"


def _parse_dynamodb(text: str, infra: NormalizedInfra, env: _EnvContext) -> None:
    for index, construct in enumerate(find_constructs(text, ("Table", "TableV2"), ("dynamo", "ddb")), start=1):
        props = construct.props
        infra.dynamodb_tables.append(
            DynamoDbTable(
                name=construct.name(placeholder_name("dynamodb-table", index)),
                billing_mode=_billing_mode(props),
                read_capacity=props.integer("readCapacity", "read_capacity"),
                write_capacity=props.integer("writeCapacity", "write_capacity"),
            )
        )


def _parse_cloudfront(text: str, infra: NormalizedInfra, env: _EnvContext) -> None:
    distributions = find_constructs(text, ("Distribution", "CloudFrontWebDistribution"), ("cloudfront", "cf"))
    for index, construct in enumerate(distributions, start=1):
        member = _enum_member(construct.props.raw("priceClass", "price_class"), "PriceClass")
        infra.cloudfront_distributions.append(
            CloudFrontDistribution(
                name=construct.name(placeholder_name("cloudfront", index)),
                price_class=normalize_price_class(member) if member else "PriceClass_100",
            )
        )


def _parse_nat(text: str, infra: NormalizedInfra, env: _EnvContext) -> None:
    total = 0
    for construct in find_constructs(text, ("Vpc",), ("ec2",)):
        count = construct.props.integer("natGateways", "nat_gateways")
        if count is not None:
            total += count
        elif construct.props.has("natGatewayProvider", "nat_gateway_provider"):
            total += 1
    if total > 0:
        infra.nat_gateways.append(NatGatewayGroup(name=NAT_GROUP_NAME, count=total))


def _elasticache_nodes(props: _Scope) -> int:
    nodes = props.integer("numCacheNodes", "num_cache_nodes") or props.integer("numCacheClusters", "num_cache_clusters")
    if nodes:
        return nodes
    node_groups = props.integer("numNodeGroups", "num_node_groups")
    if node_groups:
        return node_groups * (props.integer("replicasPerNodeGroup", "replicas_per_node_group", default=0) + 1)
    return 1


def _parse_elasticache(text: str, infra: NormalizedInfra, env: _EnvContext) -> None:
    clusters = find_constructs(text, ("CfnReplicationGroup", "CfnCacheCluster"), ("elasticache", "cache"))
    for index, construct in enumerate(clusters, start=1):
        props = construct.props
        infra.elasticache_clusters.append(
            ElastiCacheCluster(
                name=construct.name(placeholder_name("elasticache", index)),
                node_type=props.string("cacheNodeType", "cache_node_type") or "cache.t3.micro",
                num_nodes=_elasticache_nodes(props),
                engine=props.string("engine") or "redis",
            )
        )


_RESOURCE_PARSERS: Tuple[Callable[[str, NormalizedInfra, _EnvContext], None], ...] = (
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


def parse_cdk(content: str) -> NormalizedInfra:
    """
    Parse a CDK stack source file into a NormalizedInfra.

    Args:
        content: TypeScript, JavaScript or Python source

    Returns:
        NormalizedInfra holding every recognised construct
    """
    text = _strip_comments(content)
    env = _env_context(text)

    infra = NormalizedInfra()
    for parse in _RESOURCE_PARSERS:
        parse(text, infra, env)
    return infra
