"""
Tests for the CDK extractor (TypeScript and Python stacks).
"""

import pytest
from cloudsave.parsers.cdk_parser import (
    parse_cdk,
    find_constructs,
    instance_type_from_expression,
    normalize_price_class,
)


PYTHON_STACK = '''
from aws_cdk import Stack, Duration, aws_lambda as _lambda, aws_dynamodb as dynamodb, aws_ec2 as ec2
from constructs import Construct


class ReportingStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Nightly export job
        exporter = _lambda.Function(
            self, "NightlyExporter",
            runtime=_lambda.Runtime.PYTHON_3_12,
            handler="index.handler",
            code=_lambda.Code.from_asset("lambda"),
            memory_size=3008,
            timeout=Duration.minutes(15),
        )

        table = dynamodb.Table(
            self, "ReportsTable",
            partition_key=dynamodb.Attribute(name="pk", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PROVISIONED,
            read_capacity=50,
            write_capacity=20,
        )

        ec2.Instance(
            self, "LegacyWorker",
            instance_type=ec2.InstanceType("m4.large"),
            machine_image=ec2.MachineImage.latest_amazon_linux2(),
            vpc=vpc,
        )
'''


def test_typescript_lambda_memory_and_timeout_are_extracted():
    """memorySize and Duration.seconds() are read from the function's own props."""
    content = """
    import * as cdk from 'aws-cdk-lib';
    const fn = new lambda.Function(this, 'ProcessOrders', {
      memorySize: 4096,
      timeout: cdk.Duration.seconds(900),
    });
    """

    infra = parse_cdk(content)

    assert len(infra.lambda_functions) == 1
    fn = infra.lambda_functions[0]
    assert fn.name == 'fn'
    assert fn.memory == 4096
    assert fn.timeout == 900


def test_attributes_are_paired_with_their_own_construct(cdk_stack_ts):
    """Each function gets its own values, never a neighbour's."""
    infra = parse_cdk(cdk_stack_ts)

    functions = {fn.name: fn for fn in infra.lambda_functions}
    assert set(functions) == {'processOrders', 'healthCheck'}
    assert functions['processOrders'].memory == 4096
    assert functions['processOrders'].timeout == 900
    assert functions['processOrders'].runtime == 'NODEJS_20_X'
    assert functions['healthCheck'].memory == 256
    # No timeout declared: default applies instead of processOrders' value
    assert functions['healthCheck'].timeout == 30
    assert functions['healthCheck'].architecture == 'ARM_64'


def test_rds_instance_type_of_is_resolved(cdk_stack_ts):
    """InstanceType.of(InstanceClass.R5, InstanceSize.XLARGE) becomes db.r5.xlarge."""
    infra = parse_cdk(cdk_stack_ts)

    assert len(infra.rds_instances) == 1
    db = infra.rds_instances[0]
    assert db.name == 'devDatabase'
    assert db.instance_class == 'db.r5.xlarge'
    assert db.engine == 'mysql'
    assert db.multi_az is True
    assert db.env == 'dev'
    assert db.storage == 500


def test_ecs_service_reads_size_from_referenced_task_definition(cdk_stack_ts):
    """A service passing `taskDefinition` shorthand is sized by that task definition."""
    infra = parse_cdk(cdk_stack_ts)

    assert len(infra.ecs_services) == 1
    svc = infra.ecs_services[0]
    assert svc.name == 'appService'
    assert svc.desired_count == 5
    assert svc.cpu == 4096
    assert svc.memory == 16384
    assert svc.launch_type == 'FARGATE'


def test_unlinked_task_definition_is_reported_on_its_own():
    """A task definition that no service references becomes its own entry."""
    content = """
    const batchTask = new ecs.FargateTaskDefinition(this, 'BatchTask', {
      cpu: 2048,
      memoryLimitMiB: 4096,
    });
    """

    infra = parse_cdk(content)

    assert len(infra.ecs_services) == 1
    assert infra.ecs_services[0].name == 'batchTask'
    assert infra.ecs_services[0].cpu == 2048
    assert infra.ecs_services[0].desired_count == 1


def test_rest_api_with_vpc_link_uses_nlb(cdk_stack_ts):
    """A REST API in a stack with a VPC link and NLB is flagged as using the NLB."""
    infra = parse_cdk(cdk_stack_ts)

    assert len(infra.api_gateway_apis) == 1
    api = infra.api_gateway_apis[0]
    assert api.name == 'ordersApi'
    assert api.type == 'REST'
    assert api.uses_nlb is True
    assert api.uses_vpc_link is True


def test_http_api_is_not_rest():
    """HttpApi constructs are HTTP APIs without NLB."""
    content = "const api = new apigwv2.HttpApi(this, 'PublicApi', {});"

    infra = parse_cdk(content)

    assert infra.api_gateway_apis[0].type == 'HTTP'
    assert infra.api_gateway_apis[0].uses_nlb is False


def test_nat_gateways_come_from_vpc(cdk_stack_ts):
    """natGateways on a VPC becomes one named NAT group."""
    infra = parse_cdk(cdk_stack_ts)

    assert len(infra.nat_gateways) == 1
    assert infra.nat_gateways[0].name == 'vpc-nat-gateway'
    assert infra.nat_gateways[0].count == 3


def test_nat_provider_counts_as_one_gateway():
    """A VPC with a NAT provider and no explicit count has one gateway."""
    content = """
    const vpc = new ec2.Vpc(this, 'Vpc', {
      natGatewayProvider: ec2.NatProvider.instanceV2({ instanceType: new ec2.InstanceType('t3.nano') }),
    });
    """

    infra = parse_cdk(content)

    assert infra.nat_gateways[0].count == 1


def test_zero_nat_gateways_produce_no_group():
    """natGateways: 0 yields no NAT collection."""
    content = "const vpc = new ec2.Vpc(this, 'Vpc', { natGateways: 0 });"

    infra = parse_cdk(content)

    assert infra.nat_gateways == []


def test_s3_bucket_flags(cdk_stack_ts):
    """Bucket props map onto lifecycle, versioning and public access flags."""
    infra = parse_cdk(cdk_stack_ts)

    bucket = infra.s3_buckets[0]
    assert bucket.name == 'logsBucket'
    assert bucket.has_lifecycle_policy is False
    assert bucket.versioning_enabled is True
    assert bucket.public_access is False


def test_add_lifecycle_rule_call_counts_as_lifecycle():
    """bucket.addLifecycleRule(...) after construction counts as a lifecycle policy."""
    content = """
    const archive = new s3.Bucket(this, 'Archive');
    archive.addLifecycleRule({ expiration: cdk.Duration.days(365) });
    """

    infra = parse_cdk(content)

    assert infra.s3_buckets[0].has_lifecycle_policy is True


def test_python_stack_is_parsed():
    """Python CDK keyword arguments are read like TypeScript props."""
    infra = parse_cdk(PYTHON_STACK)

    fn = infra.lambda_functions[0]
    assert fn.name == 'exporter'
    assert fn.memory == 3008
    assert fn.timeout == 900
    assert fn.runtime == 'PYTHON_3_12'

    table = infra.dynamodb_tables[0]
    assert table.name == 'table'
    assert table.billing_mode == 'PROVISIONED'
    assert table.read_capacity == 50
    assert table.write_capacity == 20

    instance = infra.ec2_instances[0]
    assert instance.name == 'LegacyWorker'
    assert instance.instance_type == 'm4.large'
    assert instance.env == 'staging'


def test_dynamodb_defaults_to_on_demand():
    """CDK tables without billingMode are PAY_PER_REQUEST."""
    content = "const sessions = new dynamodb.Table(this, 'Sessions', { partitionKey: { name: 'id', type: dynamodb.AttributeType.STRING } });"

    infra = parse_cdk(content)

    assert infra.dynamodb_tables[0].billing_mode == 'PAY_PER_REQUEST'
    assert infra.dynamodb_tables[0].read_capacity is None


def test_cloudfront_price_class_is_normalized():
    """PriceClass.PRICE_CLASS_ALL maps to PriceClass_All."""
    content = """
    const cdn = new cloudfront.Distribution(this, 'Cdn', {
      defaultBehavior: { origin: new origins.S3Origin(bucket) },
      priceClass: cloudfront.PriceClass.PRICE_CLASS_ALL,
    });
    """

    infra = parse_cdk(content)

    assert infra.cloudfront_distributions[0].price_class == 'PriceClass_All'


def test_elasticache_replication_group():
    """CfnReplicationGroup node type and node count are read."""
    content = """
    const cache = new elasticache.CfnReplicationGroup(this, 'SessionCache', {
      replicationGroupDescription: 'sessions',
      cacheNodeType: 'cache.r5.large',
      engine: 'redis',
      numCacheClusters: 3,
    });
    """

    infra = parse_cdk(content)

    cluster = infra.elasticache_clusters[0]
    assert cluster.node_type == 'cache.r5.large'
    assert cluster.num_nodes == 3
    assert cluster.engine == 'redis'


def test_commented_out_construct_is_ignored():
    """Constructs inside comments are not extracted."""
    content = """
    // const old = new lambda.Function(this, 'Old', { memorySize: 10240 });
    /* const older = new lambda.Function(this, 'Older', { memorySize: 10240 }); */
    """

    infra = parse_cdk(content)

    assert infra.lambda_functions == []


def test_construct_without_variable_uses_construct_id():
    """Names fall back to the construct id when the result is not assigned."""
    content = "new lambda.Function(this, 'ImageResizer', { memorySize: 2048 });"

    infra = parse_cdk(content)

    assert infra.lambda_functions[0].name == 'ImageResizer'


def test_construct_without_identity_gets_placeholder_name():
    """Names fall back to a generated placeholder."""
    content = "new lambda.Function(this, props.functionId, { memorySize: 2048 });"

    infra = parse_cdk(content)

    assert infra.lambda_functions[0].name == 'lambda-function-1'


def test_environment_tag_overrides_name_tokens():
    """Tags.of(resource).add('Environment', ...) wins over name tokens."""
    content = """
    const devDb = new rds.DatabaseInstance(this, 'DevDb', { multiAz: true });
    cdk.Tags.of(devDb).add('Environment', 'production');
    """

    infra = parse_cdk(content)

    assert infra.rds_instances[0].env == 'prod'


def test_stack_name_sets_environment_fallback():
    """Resources without environment hints inherit it from the stack class name."""
    content = """
    export class ProdStack extends cdk.Stack {
      constructor(scope: Construct, id: string) {
        super(scope, id);
        const db = new rds.DatabaseInstance(this, 'Db', { multiAz: true });
      }
    }
    """

    infra = parse_cdk(content)

    assert infra.rds_instances[0].env == 'prod'


def test_cloudfront_function_is_not_a_lambda():
    """cloudfront.Function is not mistaken for a Lambda function."""
    content = "const rewrite = new cloudfront.Function(this, 'Rewrite', { code: cloudfront.FunctionCode.fromInline('') });"

    infra = parse_cdk(content)

    assert infra.lambda_functions == []


def test_empty_source_yields_empty_model():
    """A file without constructs yields an empty model."""
    infra = parse_cdk("export const answer = 42;")

    assert infra.is_empty()


@pytest.mark.parametrize('expression,expected', [
    ('ec2.InstanceType.of(ec2.InstanceClass.BURSTABLE3, ec2.InstanceSize.MICRO)', 't3.micro'),
    ('InstanceType.of(InstanceClass.MEMORY5, InstanceSize.XLARGE2)', 'r5.2xlarge'),
    ("new ec2.InstanceType('m4.large')", 'm4.large'),
    ('ec2.InstanceType("c5.xlarge")', 'c5.xlarge'),
    ('props.instanceType', None),
])
def test_instance_type_expressions(expression, expected):
    """Instance type expressions resolve to instance type strings."""
    assert instance_type_from_expression(expression) == expected


def test_normalize_price_class():
    """CDK price class enum members map to CloudFormation values."""
    assert normalize_price_class('PRICE_CLASS_ALL') == 'PriceClass_All'
    assert normalize_price_class('PRICE_CLASS_100') == 'PriceClass_100'


def test_find_constructs_requires_new_or_scope_argument():
    """Factory calls without new and without a scope argument are ignored."""
    content = "const imported = lambda.Function(existingArn);"

    assert find_constructs(content, ('Function',), ('lambda',)) == []
