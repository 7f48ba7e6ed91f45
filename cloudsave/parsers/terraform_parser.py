"""
Terraform HCL extractor.

Resource blocks are read with python-hcl2. Files hcl2 cannot parse (a missing
closing brace, a half-edited expression) go through a string-aware brace-depth
scanner that produces the same shape, so one broken block does not hide the
rest of the file. Expressions that only resolve at plan time (var.x, local.x,
module outputs, interpolations) are treated as unresolved and replaced by
documented defaults.
"""
import re
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple
from dataclasses import dataclass, field

import hcl2

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
from cloudsave.parsers.common import coerce_int, detect_env, is_unresolved_reference, ENV_TAG_KEYS


logger = logging.getLogger(__name__)

DEFAULT_ENV = ENV_DEV
NAT_GROUP_NAME = "nat-gateway"

_RESOURCE_HEADER = re.compile(r'resource\s+"([\w-]+)"\s+"([\w-]+)"\s*\{')
_KEY = re.compile(r'(?:"([^"\n]+)"|([\w-]+))[ \t]*')
_HEREDOC = re.compile(r"<<-?(\w+)[ \t]*\n")
_INT = re.compile(r"-?\d+")
_FLOAT = re.compile(r"-?\d+\.\d+")
_BRACKETS = {"{": "}", "[": "]", "(": ")"}


@dataclass
class TerraformBlock:
    """One `resource` block: its type, local name and attributes as python-hcl2 returns them."""
    type: str
    name: str
    attributes: Dict[str, Any] = field(default_factory=dict)


def _unquote(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


# ===== python-hcl2 =====

def _blocks_from_document(document: Dict[str, Any]) -> List[TerraformBlock]:
    """Flatten the `resource` section of a parsed document into blocks, in document order."""
    sections = document.get("resource", [])
    if isinstance(sections, dict):
        sections = [sections]

    blocks: List[TerraformBlock] = []
    for section in sections:
        if not isinstance(section, dict):
            continue
        for resource_type, instances in section.items():
            for instance in instances if isinstance(instances, list) else [instances]:
                if not isinstance(instance, dict):
                    continue
                for name, body in instance.items():
                    if isinstance(body, list):
                        body = body[0] if body else {}
                    if not isinstance(body, dict):
                        continue
                    blocks.append(
                        TerraformBlock(
                            type=_unquote(str(resource_type)),
                            name=_unquote(str(name)),
                            attributes=body,
                        )
                    )
    return blocks


def load_resource_blocks(content: str) -> List[TerraformBlock]:
    """
    Find every resource block in an HCL document.

    Args:
        content: Raw .tf content

    Returns:
        Blocks in document order; the brace-depth scanner is used when
        python-hcl2 rejects the file
    """
    try:
        document = hcl2.loads(content)
    except Exception as error:
        logger.warning(f"Terraform file did not parse ({type(error).__name__}); using block scanner")
        return scan_resource_blocks(content)

    if not isinstance(document, dict):
        return []
    return _blocks_from_document(document)


# ===== Brace-depth scanner =====

def _strip_comments(text: str) -> str:
    """Remove #, // and /* */ comments outside of string literals."""
    out = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
            continue
        if ch == "#" or text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _string_end(text: str, start: int) -> int:
    """Index just past the string literal opening at text[start]; ${...} may hold quotes."""
    depth = 0
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if text.startswith("${", i):
            depth += 1
            i += 2
            continue
        if depth:
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
        elif ch == '"':
            return i + 1
        elif ch == "\n":
            return i
        i += 1
    return n


def _find_closing(text: str, open_index: int) -> int:
    """Index of the bracket matching text[open_index], or -1 if it never closes."""
    opener = text[open_index]
    closer = _BRACKETS[opener]
    depth = 0
    i = open_index
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            i = _string_end(text, i)
            continue
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _expression_end(text: str, start: int) -> int:
    """End of a bare expression: the first newline or comma outside brackets and strings."""
    depth = 0
    i = start
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            i = _string_end(text, i)
            continue
        if ch in _BRACKETS:
            depth += 1
        elif ch in ")]}":
            if depth == 0:
                return i
            depth -= 1
        elif ch in "\n," and depth == 0:
            return i
        i += 1
    return n


def _line_end(text: str, start: int) -> int:
    end = text.find("\n", start)
    return len(text) if end == -1 else end + 1


def _scalar(raw: str) -> Any:
    """Literal value of a bare token; other expressions are wrapped as ${...} like python-hcl2."""
    raw = raw.strip()
    if not raw:
        return None
    if raw in ("true", "false"):
        return raw == "true"
    if _INT.fullmatch(raw):
        return int(raw)
    if _FLOAT.fullmatch(raw):
        return float(raw)
    if raw.startswith('"') and raw.endswith('"'):
        return raw[1:-1]
    return "${" + raw + "}"


def _split_elements(text: str) -> List[str]:
    elements = []
    position = 0
    n = len(text)
    while position < n:
        end = _expression_end(text, position)
        element = text[position:end].strip()
        if element:
            elements.append(element)
        position = end + 1
    return elements


def _scan_list(inner: str) -> List[Any]:
    values = []
    for element in _split_elements(inner):
        if element.startswith("{"):
            close = _find_closing(element, 0)
            values.append(_scan_body(element[1:close] if close != -1 else element[1:]))
        else:
            values.append(_scalar(element))
    return values


def _scan_value(body: str, position: int) -> Tuple[Any, int]:
    """Read the value of `key = value` starting at position; returns it and the next position."""
    n = len(body)
    while position < n and body[position] in " \t":
        position += 1
    if position >= n:
        return None, n

    ch = body[position]
    if ch == '"':
        end = _string_end(body, position)
        return _unquote(body[position:end]), end
    if ch in "{[":
        close = _find_closing(body, position)
        inner = body[position + 1:] if close == -1 else body[position + 1:close]
        next_position = n if close == -1 else close + 1
        if ch == "{":
            return _scan_body(inner), next_position
        return _scan_list(inner), next_position

    heredoc = _HEREDOC.match(body, position)
    if heredoc:
        terminator = re.compile(rf"(?m)^[ \t]*{re.escape(heredoc.group(1))}[ \t]*$")
        closing = terminator.search(body, heredoc.end())
        if closing is None:
            return body[heredoc.end():], n
        return body[heredoc.end():closing.start()], closing.end()

    end = _expression_end(body, position)
    return _scalar(body[position:end]), end


def _scan_body(body: str) -> Dict[str, Any]:
    """
    Read a block body into the shape python-hcl2 produces.

    Attributes map to their values, object values to dicts and nested blocks
    to a list of dicts (one per occurrence). Lines that are neither are skipped.
    """
    attributes: Dict[str, Any] = {}
    position = 0
    n = len(body)

    while position < n:
        while position < n and body[position] in " \t\r\n,":
            position += 1
        if position >= n:
            break

        match = _KEY.match(body, position)
        if not match:
            position = _line_end(body, position)
            continue
        key = match.group(1) or match.group(2)
        position = match.end()
        ch = body[position] if position < n else ""

        if ch in "=:":
            value, position = _scan_value(body, position + 1)
            attributes[key] = value
            continue

        if ch == '"':
            # Labelled nested block, e.g. dynamic "setting" { ... }
            label_end = body.find("{", position, _line_end(body, position))
            if label_end == -1:
                position = _line_end(body, position)
                continue
            position = label_end
            ch = "{"

        if ch == "{":
            close = _find_closing(body, position)
            inner = body[position + 1:] if close == -1 else body[position + 1:close]
            nested = attributes.get(key)
            if not isinstance(nested, list):
                nested = []
                attributes[key] = nested
            nested.append(_scan_body(inner))
            position = n if close == -1 else close + 1
            continue

        position = _line_end(body, position)

    return attributes


def scan_resource_blocks(content: str) -> List[TerraformBlock]:
    """
    Brace-depth scan for resource blocks in a file python-hcl2 rejected.

    An unterminated final block extends to the end of the document.
    """
    text = _strip_comments(content)
    blocks: List[TerraformBlock] = []
    position = 0

    while True:
        match = _RESOURCE_HEADER.search(text, position)
        if not match:
            break
        open_index = match.end() - 1
        close_index = _find_closing(text, open_index)
        if close_index == -1:
            logger.debug(f"Unterminated resource block {match.group(1)}.{match.group(2)}")
            body = text[open_index + 1:]
            position = len(text)
        else:
            body = text[open_index + 1:close_index]
            position = close_index + 1
        blocks.append(TerraformBlock(type=match.group(1), name=match.group(2), attributes=_scan_body(body)))

    return blocks


# ===== Attribute access =====

def get_attribute(attributes: Dict[str, Any], key: str) -> Optional[str]:
    """String attribute, or None when absent, not a scalar or unresolved."""
    value = attributes.get(key)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if not isinstance(value, str):
        return None
    value = _unquote(value)
    if is_unresolved_reference(value):
        return None
    return value


def get_int_attribute(attributes: Dict[str, Any], key: str, default: Optional[int] = None) -> Optional[int]:
    """Integer attribute; quoted numbers are accepted, unresolved values yield the default."""
    value = attributes.get(key)
    if isinstance(value, str):
        value = get_attribute(attributes, key)
    return coerce_int(value, default)


def get_bool_attribute(attributes: Dict[str, Any], key: str) -> bool:
    value = attributes.get(key)
    if isinstance(value, bool):
        return value
    return isinstance(value, str) and _unquote(value).lower() == "true"


def _string_list(attributes: Dict[str, Any], key: str) -> List[str]:
    value = attributes.get(key)
    if not isinstance(value, list):
        return []
    return [_unquote(item) for item in value if isinstance(item, str)]


def _nested_blocks(attributes: Dict[str, Any], name: str) -> List[Dict[str, Any]]:
    """Every `name { ... }` block or `name = { ... }` object inside a block."""
    value = attributes.get(name)
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return []


def _strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for nested in value.values():
            yield from _strings(nested)
    elif isinstance(value, list):
        for nested in value:
            yield from _strings(nested)


def _mentions(value: Any, text: str) -> bool:
    return any(text in string for string in _strings(value))


def _env_tag(attributes: Dict[str, Any]) -> Optional[str]:
    for tags in _nested_blocks(attributes, "tags"):
        for key, value in tags.items():
            if _unquote(str(key)).lower() not in ENV_TAG_KEYS or not isinstance(value, str):
                continue
            value = _unquote(value)
            if not is_unresolved_reference(value):
                return value
    return None


def _references(block: TerraformBlock, resource_type: str, name: str) -> bool:
    pattern = re.compile(rf"\b{re.escape(resource_type)}\.{re.escape(name)}\b")
    return any(pattern.search(string) for string in _strings(block.attributes))


class _BlockIndex:
    """Resource blocks in document order with lookups by type."""

    def __init__(self, blocks: List[TerraformBlock]):
        self.blocks = blocks

    def of(self, *types: str) -> List[TerraformBlock]:
        return [block for block in self.blocks if block.type in types]

    def has(self, resource_type: str) -> bool:
        return any(block.type == resource_type for block in self.blocks)


# ===== Resource extraction =====

def _parse_lambda(index: _BlockIndex, infra: NormalizedInfra) -> None:
    concurrency_configs = index.of("aws_lambda_provisioned_concurrency_config")

    for block in index.of("aws_lambda_function"):
        attributes = block.attributes
        architectures = _string_list(attributes, "architectures")
        provisioned = "provisioned_concurrent_executions" in attributes or any(
            _references(config, "aws_lambda_function", block.name) for config in concurrency_configs
        )
        infra.lambda_functions.append(
            LambdaFunction(
                name=block.name,
                memory=get_int_attribute(attributes, "memory_size", 128),
                timeout=get_int_attribute(attributes, "timeout", 30),
                runtime=get_attribute(attributes, "runtime") or "nodejs20.x",
                provisioned=provisioned,
                architecture=(architectures[0] if architectures else "x86_64").upper(),
            )
        )


def _parse_rds(index: _BlockIndex, infra: NormalizedInfra) -> None:
    for block in index.of("aws_db_instance", "aws_rds_cluster"):
        attributes = block.attributes
        identifier = get_attribute(attributes, "identifier") or get_attribute(attributes, "cluster_identifier")
        infra.rds_instances.append(
            RdsInstance(
                name=block.name,
                instance_class=(
                    get_attribute(attributes, "instance_class")
                    or get_attribute(attributes, "db_cluster_instance_class")
                    or "db.t3.medium"
                ),
                engine=get_attribute(attributes, "engine") or "mysql",
                multi_az=get_bool_attribute(attributes, "multi_az"),
                env=detect_env([block.name, identifier], _env_tag(attributes), DEFAULT_ENV),
                storage=get_int_attribute(attributes, "allocated_storage", 100),
                iops=get_int_attribute(attributes, "iops"),
            )
        )


def _task_launch_type(task_def: TerraformBlock) -> str:
    compatibilities = _string_list(task_def.attributes, "requires_compatibilities")
    if "FARGATE" not in compatibilities and "EC2" in compatibilities:
        return "EC2"
    return "FARGATE"


def _task_definition_name(service: TerraformBlock) -> Optional[str]:
    for string in _strings(service.attributes.get("task_definition")):
        match = re.search(r"\baws_ecs_task_definition\.([\w-]+)", string)
        if match:
            return match.group(1)
    return None


def _parse_ecs(index: _BlockIndex, infra: NormalizedInfra) -> None:
    task_defs = {block.name: block for block in index.of("aws_ecs_task_definition")}
    linked = set()

    for block in index.of("aws_ecs_service"):
        attributes = block.attributes
        task_def = task_defs.get(_task_definition_name(block) or "")
        if task_def is not None:
            linked.add(task_def.name)

        launch_type = get_attribute(attributes, "launch_type")
        if launch_type is None:
            strategies = _nested_blocks(attributes, "capacity_provider_strategy")
            launch_type = "FARGATE" if not strategies or _mentions(strategies, "FARGATE") else "EC2"

        infra.ecs_services.append(
            EcsService(
                name=block.name,
                desired_count=get_int_attribute(attributes, "desired_count", 1),
                cpu=get_int_attribute(task_def.attributes, "cpu", 256) if task_def else 256,
                memory=get_int_attribute(task_def.attributes, "memory", 512) if task_def else 512,
                launch_type=launch_type.upper(),
            )
        )

    # Task definitions no service runs are still reported
    for name, task_def in task_defs.items():
        if name in linked:
            continue
        infra.ecs_services.append(
            EcsService(
                name=name,
                desired_count=1,
                cpu=get_int_attribute(task_def.attributes, "cpu", 256),
                memory=get_int_attribute(task_def.attributes, "memory", 512),
                launch_type=_task_launch_type(task_def),
            )
        )


def _has_network_load_balancer(index: _BlockIndex) -> bool:
    for block in index.of("aws_lb", "aws_alb"):
        if (get_attribute(block.attributes, "load_balancer_type") or "").lower() == "network":
            return True
    return False


def _parse_api_gateway(index: _BlockIndex, infra: NormalizedInfra) -> None:
    # REST API VPC links always target a network load balancer
    rest_vpc_link = index.has("aws_api_gateway_vpc_link")
    uses_nlb = rest_vpc_link or _has_network_load_balancer(index)

    for block in index.of("aws_api_gateway_rest_api", "aws_apigatewayv2_api"):
        if block.type == "aws_api_gateway_rest_api":
            infra.api_gateway_apis.append(
                ApiGatewayApi(name=block.name, type="REST", uses_nlb=uses_nlb, uses_vpc_link=rest_vpc_link)
            )
        else:
            protocol = (get_attribute(block.attributes, "protocol_type") or "HTTP").upper()
            infra.api_gateway_apis.append(
                ApiGatewayApi(
                    name=block.name,
                    type="WebSocket" if protocol == "WEBSOCKET" else "HTTP",
                    uses_nlb=False,
                    uses_vpc_link=index.has("aws_apigatewayv2_vpc_link"),
                )
            )


def _bucket_related(index: _BlockIndex, resource_type: str, bucket: TerraformBlock) -> List[TerraformBlock]:
    bucket_name = get_attribute(bucket.attributes, "bucket")
    related = []
    for block in index.of(resource_type):
        if _references(block, "aws_s3_bucket", bucket.name):
            related.append(block)
        elif bucket_name and get_attribute(block.attributes, "bucket") == bucket_name:
            related.append(block)
    return related


def _parse_s3(index: _BlockIndex, infra: NormalizedInfra) -> None:
    for block in index.of("aws_s3_bucket"):
        attributes = block.attributes
        lifecycle = _bucket_related(index, "aws_s3_bucket_lifecycle_configuration", block)
        tiering = _bucket_related(index, "aws_s3_bucket_intelligent_tiering_configuration", block)
        versioning = _bucket_related(index, "aws_s3_bucket_versioning", block)
        access_blocks = _bucket_related(index, "aws_s3_bucket_public_access_block", block)

        has_lifecycle = bool(lifecycle) or bool(_nested_blocks(attributes, "lifecycle_rule"))
        has_tiering = (
            bool(tiering)
            or any(_mentions(related.attributes, "INTELLIGENT_TIERING") for related in lifecycle)
            or _mentions(attributes, "INTELLIGENT_TIERING")
        )

        versioned = any(
            get_bool_attribute(inner, "enabled") for inner in _nested_blocks(attributes, "versioning")
        ) or any(
            get_attribute(inner, "status") == "Enabled"
            for related in versioning
            for inner in _nested_blocks(related.attributes, "versioning_configuration")
        )

        blocked = get_bool_attribute(attributes, "block_public_acls") or any(
            get_bool_attribute(related.attributes, "block_public_acls") for related in access_blocks
        )

        infra.s3_buckets.append(
            S3Bucket(
                name=block.name,
                has_lifecycle_policy=has_lifecycle,
                has_intelligent_tiering=has_tiering,
                versioning_enabled=versioned,
                public_access=not blocked,
            )
        )


def _parse_ec2(index: _BlockIndex, infra: NormalizedInfra) -> None:
    for block in index.of("aws_instance"):
        infra.ec2_instances.append(
            Ec2Instance(
                name=block.name,
                instance_type=get_attribute(block.attributes, "instance_type") or "t3.medium",
                env=detect_env([block.name], _env_tag(block.attributes), DEFAULT_ENV),
            )
        )


def _parse_dynamodb(index: _BlockIndex, infra: NormalizedInfra) -> None:
    for block in index.of("aws_dynamodb_table"):
        attributes = block.attributes
        infra.dynamodb_tables.append(
            DynamoDbTable(
                name=block.name,
                billing_mode=(get_attribute(attributes, "billing_mode") or "PROVISIONED").upper(),
                read_capacity=get_int_attribute(attributes, "read_capacity"),
                write_capacity=get_int_attribute(attributes, "write_capacity"),
            )
        )


def _parse_cloudfront(index: _BlockIndex, infra: NormalizedInfra) -> None:
    for block in index.of("aws_cloudfront_distribution"):
        infra.cloudfront_distributions.append(
            CloudFrontDistribution(
                name=block.name,
                price_class=get_attribute(block.attributes, "price_class") or "PriceClass_100",
            )
        )


def _parse_nat(index: _BlockIndex, infra: NormalizedInfra) -> None:
    blocks = index.of("aws_nat_gateway")
    if not blocks:
        return
    # A literal count meta-argument multiplies the block; anything else counts once
    total = sum(get_int_attribute(block.attributes, "count", 1) for block in blocks)
    infra.nat_gateways.append(NatGatewayGroup(name=NAT_GROUP_NAME, count=total))


def _elasticache_nodes(attributes: Dict[str, Any]) -> int:
    nodes = get_int_attribute(attributes, "num_cache_nodes") or get_int_attribute(attributes, "num_cache_clusters")
    if nodes:
        return nodes
    node_groups = get_int_attribute(attributes, "num_node_groups")
    if node_groups:
        return node_groups * (get_int_attribute(attributes, "replicas_per_node_group", 0) + 1)
    return 1


def _parse_elasticache(index: _BlockIndex, infra: NormalizedInfra) -> None:
    for block in index.of("aws_elasticache_cluster", "aws_elasticache_replication_group"):
        attributes = block.attributes
        infra.elasticache_clusters.append(
            ElastiCacheCluster(
                name=block.name,
                node_type=(
                    get_attribute(attributes, "node_type")
                    or get_attribute(attributes, "cache_node_type")
                    or "cache.t3.micro"
                ),
                num_nodes=_elasticache_nodes(attributes),
                engine=get_attribute(attributes, "engine") or "redis",
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


def parse_terraform(content: str) -> NormalizedInfra:
    """
    Parse Terraform HCL into a NormalizedInfra.

    Args:
        content: Raw .tf file content

    Returns:
        NormalizedInfra holding every recognised AWS resource; empty when the
        file declares none
    """
    blocks = load_resource_blocks(content)
    logger.debug(f"Found {len(blocks)} Terraform resource blocks")

    index = _BlockIndex(blocks)
    infra = NormalizedInfra()
    for parse in _RESOURCE_PARSERS:
        parse(index, infra)
    return infra
