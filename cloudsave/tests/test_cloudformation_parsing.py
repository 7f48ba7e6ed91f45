"""
Tests for CloudFormation and SAM template parsing.
"""

import json
from cloudsave.parsers.cloudformation_parser import (
    parse_cloudformation,
    load_resources,
    scan_resources,
)


YAML_TEMPLATE = """
AWSTemplateFormatVersion: '2010-09-09'
Transform: AWS::Serverless-2016-10-31
Description: Orders platform

Parameters:
  Stage:
    Type: String
    Default: staging

Resources:
  StagingDatabase:
    Type: AWS::RDS::DBInstance
    Properties:
      DBInstanceClass: db.t3.medium
      Engine: postgres
      MultiAZ: true
      AllocatedStorage: '200'
      MasterUserPassword: !Sub '{{resolve:secretsmanager:${DbSecret}:SecretString:password}}'

  ReportsWorker:
    Type: AWS::Serverless::Function
    Properties:
      FunctionName: !Sub '${AWS::StackName}-reports'
      Runtime: python3.12
      Handler: app.handler
      MemorySize: 3008
      Timeout: 900
      Architectures:
        - arm64
      Environment:
        Variables:
          TABLE: !Ref ReportsTable
          QUEUE_ARN: !GetAtt ReportsQueue.Arn

  ArchiveBucket:
    Type: AWS::S3::Bucket
    Properties:
      VersioningConfiguration:
        Status: Enabled
      LifecycleConfiguration:
        Rules:
          - Id: archive
            Status: Enabled
            Transitions:
              - StorageClass: GLACIER
                TransitionInDays: 90
      PublicAccessBlockConfiguration:
        BlockPublicAcls: true
        BlockPublicPolicy: true

  NatGatewayA:
    Type: AWS::EC2::NatGateway
    Properties:
      SubnetId: !Ref PublicSubnetA
      AllocationId: !GetAtt EipA.AllocationId

  NatGatewayB:
    Type: AWS::EC2::NatGateway
    Properties:
      SubnetId: !Ref PublicSubnetB
      AllocationId: !GetAtt EipB.AllocationId

  Cdn:
    Type: AWS::CloudFront::Distribution
    Properties:
      DistributionConfig:
        Enabled: true
        PriceClass: PriceClass_All

Outputs:
  BucketName:
    Value: !Ref ArchiveBucket
"""


def test_yaml_with_intrinsic_tags_is_parsed():
    """Short-form intrinsic tags do not break YAML loading."""
    resources = load_resources(YAML_TEMPLATE)

    assert set(resources) == {
        'StagingDatabase', 'ReportsWorker', 'ArchiveBucket', 'NatGatewayA', 'NatGatewayB', 'Cdn',
    }
    env = resources['ReportsWorker']['Properties']['Environment']['Variables']
    assert env['TABLE'] == {'Ref': 'ReportsTable'}
    assert env['QUEUE_ARN'] == {'Fn::GetAtt': ['ReportsQueue', 'Arn']}


def test_rds_instance_from_yaml():
    """RDS properties are read and the logical id sets the environment."""
    infra = parse_cloudformation(YAML_TEMPLATE)

    db = infra.rds_instances[0]
    assert db.name == 'StagingDatabase'
    assert db.instance_class == 'db.t3.medium'
    assert db.engine == 'postgres'
    assert db.multi_az is True
    assert db.env == 'staging'
    assert db.storage == 200


def test_sam_function_uses_logical_id_when_name_is_intrinsic():
    """An intrinsic FunctionName falls back to the logical id."""
    infra = parse_cloudformation(YAML_TEMPLATE)

    fn = infra.lambda_functions[0]
    assert fn.name == 'ReportsWorker'
    assert fn.memory == 3008
    assert fn.timeout == 900
    assert fn.runtime == 'python3.12'
    assert fn.architecture == 'ARM64'


def test_s3_bucket_features_from_yaml():
    """Lifecycle, versioning and public access block are detected."""
    infra = parse_cloudformation(YAML_TEMPLATE)

    bucket = infra.s3_buckets[0]
    assert bucket.name == 'ArchiveBucket'
    assert bucket.has_lifecycle_policy is True
    assert bucket.has_intelligent_tiering is False
    assert bucket.versioning_enabled is True
    assert bucket.public_access is False


def test_nat_gateways_are_counted():
    """Each NatGateway resource adds one to the group count."""
    infra = parse_cloudformation(YAML_TEMPLATE)

    assert len(infra.nat_gateways) == 1
    assert infra.nat_gateways[0].name == 'nat-gateway'
    assert infra.nat_gateways[0].count == 2


def test_cloudfront_price_class_is_found_in_distribution_config():
    """PriceClass nested under DistributionConfig is read."""
    infra = parse_cloudformation(YAML_TEMPLATE)

    assert infra.cloudfront_distributions[0].price_class == 'PriceClass_All'


def test_json_template_is_parsed():
    """JSON templates are loaded with the json module."""
    template = {
        "AWSTemplateFormatVersion": "2010-09-09",
        "Resources": {
            "SessionsTable": {
                "Type": "AWS::DynamoDB::Table",
                "Properties": {
                    "TableName": "sessions",
                    "ProvisionedThroughput": {"ReadCapacityUnits": 25, "WriteCapacityUnits": 10},
                },
            },
            "LegacyWorker": {
                "Type": "AWS::EC2::Instance",
                "Properties": {"InstanceType": "m4.xlarge"},
            },
            "SessionCache": {
                "Type": "AWS::ElastiCache::ReplicationGroup",
                "Properties": {
                    "CacheNodeType": "cache.r5.large",
                    "NumCacheClusters": 3,
                    "Engine": "redis",
                },
            },
        },
    }

    infra = parse_cloudformation(json.dumps(template))

    table = infra.dynamodb_tables[0]
    assert table.name == 'sessions'
    assert table.billing_mode == 'PROVISIONED'
    assert table.read_capacity == 25
    assert table.write_capacity == 10

    assert infra.ec2_instances[0].name == 'LegacyWorker'
    assert infra.ec2_instances[0].instance_type == 'm4.xlarge'

    assert infra.elasticache_clusters[0].num_nodes == 3


def test_ecs_service_is_sized_by_referenced_task_definition():
    """A service's TaskDefinition Ref links it to the task's Cpu and Memory."""
    template = """
AWSTemplateFormatVersion: '2010-09-09'
Resources:
  ApiTask:
    Type: AWS::ECS::TaskDefinition
    Properties:
      Cpu: '4096'
      Memory: '16384'
      RequiresCompatibilities: [FARGATE]
  ApiService:
    Type: AWS::ECS::Service
    Properties:
      TaskDefinition: !Ref ApiTask
      DesiredCount: 4
      LaunchType: FARGATE
"""
    infra = parse_cloudformation(template)

    assert len(infra.ecs_services) == 1
    svc = infra.ecs_services[0]
    assert svc.name == 'ApiService'
    assert svc.cpu == 4096
    assert svc.memory == 16384
    assert svc.desired_count == 4


def test_rest_api_with_vpc_link_uses_nlb():
    """A REST API with an API Gateway VpcLink is reported as using an NLB."""
    template = """
Resources:
  Link:
    Type: AWS::ApiGateway::VpcLink
    Properties:
      Name: link
      TargetArns: [!Ref Nlb]
  OrdersApi:
    Type: AWS::ApiGateway::RestApi
    Properties:
      Name: orders
  PublicApi:
    Type: AWS::ApiGatewayV2::Api
    Properties:
      Name: public
      ProtocolType: HTTP
"""
    infra = parse_cloudformation(template)

    apis = {api.name: api for api in infra.api_gateway_apis}
    assert apis['orders'].type == 'REST'
    assert apis['orders'].uses_nlb is True
    assert apis['public'].type == 'HTTP'
    assert apis['public'].uses_nlb is False


def test_broken_yaml_falls_back_to_line_scanner():
    """A template PyYAML rejects is still scanned for resources."""
    template = """AWSTemplateFormatVersion: '2010-09-09'
Description: [unclosed
Resources:
  LegacyDatabase:
    Type: AWS::RDS::DBInstance
    Properties:
      DBInstanceClass: db.r5.xlarge
      MultiAZ: true
"""
    infra = parse_cloudformation(template)

    db = infra.rds_instances[0]
    assert db.name == 'LegacyDatabase'
    assert db.instance_class == 'db.r5.xlarge'
    assert db.multi_az is True
    assert db.env == 'dev'


def test_scanner_stops_at_next_top_level_section():
    """Keys after the Resources section are not treated as resources."""
    template = """Resources:
  Bucket:
    Type: AWS::S3::Bucket
    Properties:
      BucketName: assets
Outputs:
  Name:
    Value: assets
"""
    resources = scan_resources(template)

    assert list(resources) == ['Bucket']
    assert resources['Bucket']['Properties']['BucketName'] == 'assets'


def test_template_without_resources_is_empty():
    """A template with no Resources section yields an empty model."""
    infra = parse_cloudformation("AWSTemplateFormatVersion: '2010-09-09'\nDescription: nothing\n")

    assert infra.is_empty()


def test_infinite_yaml_numbers_use_defaults():
    """YAML .inf and .nan values fall back to the documented defaults."""
    template = """
Resources:
  Handler:
    Type: AWS::Lambda::Function
    Properties:
      MemorySize: .inf
      Timeout: .nan
"""
    infra = parse_cloudformation(template)

    fn = infra.lambda_functions[0]
    assert fn.name == 'Handler'
    assert fn.memory == 128
    assert fn.timeout == 30


def test_numeric_logical_ids_are_names():
    """Logical IDs that YAML loads as numbers are used as string names."""
    template = """
Resources:
  1234:
    Type: AWS::RDS::DBInstance
    Properties:
      DBInstanceClass: db.t3.medium
"""
    infra = parse_cloudformation(template)

    db = infra.rds_instances[0]
    assert db.name == '1234'
    assert db.env == 'dev'
